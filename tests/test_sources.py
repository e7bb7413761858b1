"""Tests for market data sources and the synthetic fallback."""

from datetime import datetime, timedelta, timezone

import pytest

from confluence.data.sources import (
    FallbackDataSource,
    LiveDataSource,
    SyntheticDataSource,
)

_FIXED_NOW = datetime(2025, 1, 10, 15, 0, tzinfo=timezone.utc)


class StubSource:
    """Duck-typed data source returning canned bars or raising."""

    def __init__(self, bars=None, error: Exception | None = None) -> None:
        self._bars = bars or []
        self._error = error
        self.calls: list[tuple] = []

    async def get_bars(self, symbol, timeframe, limit):
        self.calls.append((symbol, timeframe, limit))
        if self._error is not None:
            raise self._error
        return self._bars


def _synthetic() -> SyntheticDataSource:
    return SyntheticDataSource(clock=lambda: _FIXED_NOW)


# ── Synthetic ────────────────────────────────────────────────────────────


class TestSyntheticDataSource:
    def test_same_symbol_same_bars(self):
        assert _synthetic().generate("AAPL", "5Min", 100) == _synthetic().generate("AAPL", "5Min", 100)

    def test_different_symbols_differ(self):
        a = [b.close for b in _synthetic().generate("AAPL", "5Min", 50)]
        m = [b.close for b in _synthetic().generate("MSFT", "5Min", 50)]
        assert a != m

    def test_bar_shape(self):
        bars = _synthetic().generate("AAPL", "5Min", 250)
        assert len(bars) == 250
        for bar in bars:
            assert bar.high >= max(bar.open, bar.close)
            assert bar.low <= min(bar.open, bar.close)
            assert bar.low > 0
            assert 1_000 <= bar.volume <= 11_000

    def test_timestamps_step_by_timeframe(self):
        bars = _synthetic().generate("AAPL", "15Min", 3)
        times = [datetime.fromisoformat(b.timestamp) for b in bars]
        assert times[0] == _FIXED_NOW - timedelta(minutes=45)
        assert times[2] - times[1] == timedelta(minutes=15)
        assert times[-1] < _FIXED_NOW

    def test_base_price_follows_symbol(self):
        btc = _synthetic().generate("BTCUSD", "5Min", 1)[0]
        other = _synthetic().generate("ZZZ", "5Min", 1)[0]
        assert 45_000 < btc.close < 55_000
        assert 90 < other.close < 110

    @pytest.mark.asyncio
    async def test_async_interface(self):
        bars = await _synthetic().get_bars("AAPL", "5Min", 10)
        assert len(bars) == 10


# ── Live + fallback ──────────────────────────────────────────────────────


class TestFallbackDataSource:
    @pytest.mark.asyncio
    async def test_enough_live_bars_used(self):
        live_bars = _synthetic().generate("LIVE", "5Min", 60)
        source = FallbackDataSource(StubSource(live_bars), _synthetic())

        fetched = await source.fetch("AAPL", "5Min", 250)
        assert fetched.source == "live"
        assert fetched.bars == live_bars

    @pytest.mark.asyncio
    async def test_short_history_falls_back(self):
        primary = StubSource(_synthetic().generate("LIVE", "5Min", 49))
        source = FallbackDataSource(primary, _synthetic())

        fetched = await source.fetch("AAPL", "5Min", 250)
        assert fetched.source == "synthetic"
        assert len(fetched.bars) == 250
        assert primary.calls == [("AAPL", "5Min", 250)]

    @pytest.mark.asyncio
    async def test_error_falls_back(self):
        source = FallbackDataSource(StubSource(error=RuntimeError("down")), _synthetic())
        fetched = await source.fetch("AAPL", "5Min", 120)
        assert fetched.source == "synthetic"
        assert fetched.bars == _synthetic().generate("AAPL", "5Min", 120)

    @pytest.mark.asyncio
    async def test_custom_threshold(self):
        live_bars = _synthetic().generate("LIVE", "5Min", 10)
        source = FallbackDataSource(StubSource(live_bars), _synthetic(), min_bars=10)
        assert await source.get_bars("AAPL", "5Min", 10) == live_bars

    @pytest.mark.asyncio
    async def test_live_source_delegates_to_broker(self):
        broker = StubSource(_synthetic().generate("AAPL", "5Min", 5))
        bars = await LiveDataSource(broker).get_bars("AAPL", "1Hour", 5)
        assert len(bars) == 5
        assert broker.calls == [("AAPL", "1Hour", 5)]
