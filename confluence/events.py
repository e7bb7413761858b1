"""In-process event bus.

The engine publishes analysis, trade, status and config events here.  The
HTTP API reads the recent history; in-process consumers can subscribe to a
queue of live events.
"""

import asyncio
import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger("confluence.events")

ANALYSIS_UPDATE = "analysisUpdate"
NEW_TRADE = "newTrade"
TRADE_CLOSED = "tradeClosed"
BOT_STATUS = "botStatus"
BOT_CONFIG = "botConfig"
ACCOUNT_UPDATE = "accountUpdate"

EVENT_TYPES = (
    ANALYSIS_UPDATE,
    NEW_TRADE,
    TRADE_CLOSED,
    BOT_STATUS,
    BOT_CONFIG,
    ACCOUNT_UPDATE,
)


@dataclass(frozen=True)
class Event:
    seq: int
    type: str
    data: dict
    timestamp: str

    def to_dict(self) -> dict:
        return asdict(self)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventBus:
    """Fan-out of engine events with a bounded replay history.

    Args:
        history_size: Number of recent events kept for polling clients.
        queue_size: Capacity of each subscriber queue.  A full queue drops
            its oldest event to make room.
        clock: Timestamp source.
    """

    def __init__(
        self,
        history_size: int = 200,
        queue_size: int = 100,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._history: deque[Event] = deque(maxlen=history_size)
        self._queue_size = queue_size
        self._subscribers: list[asyncio.Queue] = []
        self._clock = clock
        self._seq = 0

    def publish(self, event_type: str, data: dict) -> Event:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        self._seq += 1
        event = Event(
            seq=self._seq,
            type=event_type,
            data=data,
            timestamp=self._clock().isoformat(),
        )
        self._history.append(event)

        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
                logger.debug("Subscriber queue full, dropped oldest event")
            queue.put_nowait(event)
        return event

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def recent(
        self,
        limit: int = 50,
        event_type: Optional[str] = None,
        since: int = 0,
    ) -> list[Event]:
        """Most recent events, oldest first.

        Args:
            limit: Maximum number of events returned.
            event_type: Only events of this type.
            since: Only events with ``seq`` greater than this.
        """
        events = [
            e for e in self._history
            if e.seq > since and (event_type is None or e.type == event_type)
        ]
        return events[-limit:] if limit > 0 else []
