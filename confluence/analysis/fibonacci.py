"""Fibonacci analyzer and the retracement/extension level geometry it shares with risk."""

from typing import NamedTuple, Sequence

from confluence.analysis.base import closes_of, score_signals
from confluence.analysis.models import BUY, SELL, AnalyzerResult, Bar, Signal


CAP = 85
SWING_WINDOW = 30
TREND_LOOKBACK = 15
PROXIMITY = 0.01  # 1%
MIN_BARS = SWING_WINDOW

RETRACEMENT_RATIOS = (
    ("0", 0.0),
    ("0.236", 0.236),
    ("0.382", 0.382),
    ("0.5", 0.5),
    ("0.618", 0.618),
    ("0.786", 0.786),
    ("1", 1.0),
)

# Extension name → multiple of the range beyond the swing extreme
EXTENSION_RATIOS = (
    ("1.272", 0.272),
    ("1.618", 0.618),
    ("2.618", 1.618),
)

_KEY_RETRACEMENTS = {"0.5", "0.618"}


class FibLevel(NamedTuple):
    name: str
    price: float


def retracement_levels(high: float, low: float, is_uptrend: bool) -> list[FibLevel]:
    """Retracement levels measured against the trend.

    In an uptrend level ``0`` is the high and ``1`` the low; in a
    downtrend the order is mirrored.
    """
    span = high - low
    if is_uptrend:
        return [FibLevel(name, high - span * r) for name, r in RETRACEMENT_RATIOS]
    return [FibLevel(name, low + span * r) for name, r in RETRACEMENT_RATIOS]


def extension_levels(high: float, low: float, is_uptrend: bool) -> list[FibLevel]:
    """Extension levels projected beyond the swing in the trend direction."""
    span = high - low
    if is_uptrend:
        return [FibLevel(name, high + span * r) for name, r in EXTENSION_RATIOS]
    return [FibLevel(name, low - span * r) for name, r in EXTENSION_RATIOS]


def _nearest_level(levels: list[FibLevel], price: float) -> FibLevel | None:
    nearest = None
    nearest_distance = PROXIMITY
    for level in levels:
        distance = abs(price - level.price) / price
        if distance < nearest_distance:
            nearest = level
            nearest_distance = distance
    return nearest


def analyze_fibonacci(bars: Sequence[Bar]) -> AnalyzerResult:
    closes = closes_of(bars)
    recent = bars[-SWING_WINDOW:]
    high = max(b.high for b in recent)
    low = min(b.low for b in recent)
    price = closes[-1]
    prev_price = closes[-2]
    is_uptrend = price > closes[-TREND_LOOKBACK]

    levels = retracement_levels(high, low, is_uptrend)
    nearest = _nearest_level(levels, price)
    trend = "Uptrend" if is_uptrend else "Downtrend"
    signals: list[Signal] = []

    if nearest is not None:
        if nearest.name in _KEY_RETRACEMENTS:
            signals.append(
                Signal(
                    f"Price at {nearest.name} Retracement in {trend}",
                    BUY if is_uptrend else SELL,
                    65,
                )
            )
        if is_uptrend and prev_price < nearest.price < price:
            signals.append(Signal(f"Bounce Up from {nearest.name} Level", BUY, 70))
        elif not is_uptrend and prev_price > nearest.price > price:
            signals.append(Signal(f"Bounce Down from {nearest.name} Level", SELL, 70))

    shallow = next(lv for lv in levels if lv.name == "0.236")
    if is_uptrend and price > shallow.price and prev_price <= shallow.price:
        signals.append(Signal("Breaking through 0.236 in Uptrend", BUY, 60))
    elif not is_uptrend and price < shallow.price and prev_price >= shallow.price:
        signals.append(Signal("Breaking through 0.236 in Downtrend", SELL, 60))

    return score_signals(
        signals,
        CAP,
        values={
            "levels": {lv.name: lv.price for lv in levels},
            "nearestLevel": nearest.name if nearest else None,
            "trend": "up" if is_uptrend else "down",
        },
    )
