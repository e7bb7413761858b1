"""Per-symbol runtime state owned by the trading engine."""

from collections import deque
from dataclasses import dataclass, field
from typing import Iterator, Optional

from confluence.analysis.models import AnalysisReport
from confluence.broker.models import BrokerPosition

HISTORY_SIZE = 100
RISK_WINDOW = 20


@dataclass
class SymbolState:
    """Runtime state of one active symbol.

    ``analysis_history`` is a ring buffer; the oldest report is dropped once
    it holds ``HISTORY_SIZE`` reports.
    """

    symbol: str
    is_trading: bool = True
    last_analysis: Optional[AnalysisReport] = None
    open_position: Optional[BrokerPosition] = None
    analysis_history: deque = field(
        default_factory=lambda: deque(maxlen=HISTORY_SIZE)
    )

    def record(self, report: AnalysisReport) -> None:
        self.analysis_history.append(report)
        self.last_analysis = report

    def recent_prices(self, count: int = RISK_WINDOW) -> list[float]:
        """Prices of the most recent *count* reports, oldest first."""
        reports = list(self.analysis_history)[-count:]
        return [r.price for r in reports]


class SymbolStore:
    """The set of active symbols, keyed by symbol, in activation order."""

    def __init__(self) -> None:
        self._states: dict[str, SymbolState] = {}

    def add(self, symbol: str) -> SymbolState:
        """Activate *symbol*, returning its existing state if already active."""
        state = self._states.get(symbol)
        if state is None:
            state = SymbolState(symbol=symbol)
            self._states[symbol] = state
        return state

    def remove(self, symbol: str) -> Optional[SymbolState]:
        return self._states.pop(symbol, None)

    def get(self, symbol: str) -> Optional[SymbolState]:
        return self._states.get(symbol)

    def symbols(self) -> list[str]:
        return list(self._states)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[SymbolState]:
        return iter(list(self._states.values()))
