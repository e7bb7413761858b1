"""Candlestick pattern analyzer — single, two and three bar reversal patterns."""

from typing import Sequence

from confluence.analysis.base import score_signals
from confluence.analysis.models import BUY, NEUTRAL, SELL, AnalyzerResult, Bar, Signal


CAP = 85
WINDOW = 5
MIN_BARS = 1


def _body(bar: Bar) -> float:
    return abs(bar.open - bar.close)


def _is_bullish(bar: Bar) -> bool:
    return bar.close > bar.open


def _is_bearish(bar: Bar) -> bool:
    return bar.close < bar.open


def _single_bar_patterns(bar: Bar) -> list[Signal]:
    body = _body(bar)
    total = bar.high - bar.low
    upper_shadow = bar.high - max(bar.open, bar.close)
    lower_shadow = min(bar.open, bar.close) - bar.low
    found: list[Signal] = []

    if total > 0 and body / total < 0.1:
        found.append(Signal("Doji", NEUTRAL, 50))

    if body > 0 and lower_shadow > body * 2 and upper_shadow < body * 0.5:
        found.append(Signal("Hammer", BUY, 65))

    if body > 0 and upper_shadow > body * 2 and lower_shadow < body * 0.5:
        found.append(Signal("Shooting Star", SELL, 65))

    return found


def _engulfing(prev: Bar, last: Bar) -> list[Signal]:
    found: list[Signal] = []
    if (
        _is_bearish(prev)
        and _is_bullish(last)
        and last.open < prev.close
        and last.close > prev.open
    ):
        found.append(Signal("Bullish Engulfing", BUY, 70))
    if (
        _is_bullish(prev)
        and _is_bearish(last)
        and last.open > prev.close
        and last.close < prev.open
    ):
        found.append(Signal("Bearish Engulfing", SELL, 70))
    return found


def _stars(first: Bar, middle: Bar, last: Bar) -> list[Signal]:
    found: list[Signal] = []
    small_middle = _body(middle) < _body(first) * 0.3
    first_midpoint = (first.open + first.close) / 2

    if (
        _is_bearish(first)
        and small_middle
        and _is_bullish(last)
        and last.close > first_midpoint
    ):
        found.append(Signal("Morning Star", BUY, 75))
    if (
        _is_bullish(first)
        and small_middle
        and _is_bearish(last)
        and last.close < first_midpoint
    ):
        found.append(Signal("Evening Star", SELL, 75))
    return found


def analyze_candlesticks(bars: Sequence[Bar]) -> AnalyzerResult:
    """Detect patterns ending on the most recent bar of the last five."""
    recent = list(bars[-WINDOW:])
    last = recent[-1]

    signals = _single_bar_patterns(last)
    if len(recent) >= 2:
        signals.extend(_engulfing(recent[-2], last))
    if len(recent) >= 3:
        signals.extend(_stars(recent[-3], recent[-2], last))

    return score_signals(
        signals,
        CAP,
        values={"patterns": [s.name for s in signals]},
    )
