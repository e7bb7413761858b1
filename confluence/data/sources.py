"""Market data sources.

``LiveDataSource`` reads bars from the brokerage; ``SyntheticDataSource``
generates a deterministic random walk per symbol.  ``FallbackDataSource``
names the degradation policy: use live bars unless the fetch fails or
returns too little history, then substitute synthetic bars.
"""

import logging
import random
import zlib
from datetime import datetime, timedelta, timezone
from typing import Callable, NamedTuple, Protocol

from confluence.analysis.models import Bar

logger = logging.getLogger("confluence.data")

MIN_LIVE_BARS = 50

_TIMEFRAME_MINUTES = {
    "1Min": 1,
    "5Min": 5,
    "15Min": 15,
    "30Min": 30,
    "1Hour": 60,
    "1H": 60,
    "1Day": 60 * 24,
    "1D": 60 * 24,
}

# Rough anchors so synthetic prices look like the instrument
_BASE_PRICES = {
    "BTC": 50_000.0,
    "ETH": 3_000.0,
    "AAPL": 170.0,
    "MSFT": 310.0,
    "AMZN": 130.0,
}


class DataSource(Protocol):
    """Anything that can supply bars for a symbol."""

    async def get_bars(self, symbol: str, timeframe: str, limit: int) -> list[Bar]: ...


class FetchedBars(NamedTuple):
    bars: list[Bar]
    source: str  # "live" or "synthetic"


class LiveDataSource:
    """Bars from the brokerage market-data API."""

    def __init__(self, broker) -> None:
        self._broker = broker

    async def get_bars(self, symbol: str, timeframe: str, limit: int) -> list[Bar]:
        return await self._broker.get_bars(symbol, timeframe, limit)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyntheticDataSource:
    """Deterministic synthetic bars.

    The random walk is seeded from the symbol, so the same symbol always
    yields the same prices.  Timestamps count back from *clock*.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock

    @staticmethod
    def _base_price(symbol: str) -> float:
        for key, price in _BASE_PRICES.items():
            if key in symbol.upper():
                return price
        return 100.0

    async def get_bars(self, symbol: str, timeframe: str, limit: int) -> list[Bar]:
        return self.generate(symbol, timeframe, limit)

    def generate(self, symbol: str, timeframe: str, limit: int) -> list[Bar]:
        rnd = random.Random(zlib.crc32(symbol.upper().encode()))
        minutes = _TIMEFRAME_MINUTES.get(timeframe, 5)
        now = self._clock()

        base = self._base_price(symbol)
        volatility = base * 0.01
        price = base
        trend = 1
        trend_strength = 0.0
        bars: list[Bar] = []

        for i in range(limit):
            # Regime change every 20 bars
            if i % 20 == 0:
                trend = 1 if rnd.random() > 0.5 else -1
                trend_strength = rnd.random() * 0.003

            price += (rnd.random() - 0.5) * volatility + trend * trend_strength * base
            price = max(price, base * 0.01)

            open_ = price
            close = open_ * (1 + (rnd.random() - 0.5) * 0.005)
            high = max(open_, close) * (1 + rnd.random() * 0.005)
            low = min(open_, close) * (1 - rnd.random() * 0.005)
            volume = float(rnd.randint(1_000, 11_000))
            t = now - timedelta(minutes=minutes * (limit - i))

            bars.append(
                Bar(
                    timestamp=t.isoformat(),
                    open=open_,
                    high=high,
                    low=low,
                    close=close,
                    volume=volume,
                )
            )
        return bars


class FallbackDataSource:
    """Live bars with an explicit synthetic fallback."""

    def __init__(
        self,
        primary: DataSource,
        fallback: DataSource,
        min_bars: int = MIN_LIVE_BARS,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._min_bars = min_bars

    async def fetch(self, symbol: str, timeframe: str, limit: int) -> FetchedBars:
        """Return bars and which source produced them."""
        try:
            bars = await self._primary.get_bars(symbol, timeframe, limit)
        except Exception as exc:
            logger.warning(
                "Bar fetch for %s failed (%s), using synthetic data", symbol, exc
            )
        else:
            if len(bars) >= self._min_bars:
                return FetchedBars(bars, "live")
            logger.info(
                "Only %d bars for %s (need %d), using synthetic data",
                len(bars), symbol, self._min_bars,
            )

        bars = await self._fallback.get_bars(symbol, timeframe, limit)
        return FetchedBars(bars, "synthetic")

    async def get_bars(self, symbol: str, timeframe: str, limit: int) -> list[Bar]:
        fetched = await self.fetch(symbol, timeframe, limit)
        return fetched.bars
