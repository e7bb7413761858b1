"""Support/Resistance analyzer — local extrema levels, proximity and breakouts."""

from dataclasses import dataclass
from typing import Optional, Sequence

from confluence.analysis.base import closes_of, score_signals
from confluence.analysis.models import BUY, SELL, AnalyzerResult, Bar, Signal


CAP = 90
LOOKBACK = 5
TOLERANCE = 0.005  # 0.5%
PROXIMITY = 0.01  # 1%
MIN_STRENGTH = 3
# One full ±LOOKBACK window plus the previous close
MIN_BARS = 2 * LOOKBACK + 2


@dataclass
class PriceLevel:
    """A horizontal level and the number of extrema that confirmed it."""

    price: float
    strength: int = 1


def _merge_level(levels: list[PriceLevel], price: float) -> None:
    for level in levels:
        if abs(level.price - price) / price < TOLERANCE:
            level.strength += 1
            return
    levels.append(PriceLevel(price))


def find_support_levels(lows: Sequence[float], lookback: int = LOOKBACK) -> list[PriceLevel]:
    """Identify support levels.

    A bar is a support point when no low within *lookback* bars on either
    side dips more than the tolerance below it.  Points within the
    tolerance of an existing level strengthen that level.
    """
    levels: list[PriceLevel] = []
    for i in range(lookback, len(lows) - lookback):
        current = lows[i]
        floor = current * (1 - TOLERANCE)
        neighbours = list(lows[i - lookback: i]) + list(lows[i + 1: i + lookback + 1])
        if all(low >= floor for low in neighbours):
            _merge_level(levels, current)
    return levels


def find_resistance_levels(highs: Sequence[float], lookback: int = LOOKBACK) -> list[PriceLevel]:
    """Identify resistance levels (mirror of :func:`find_support_levels`)."""
    levels: list[PriceLevel] = []
    for i in range(lookback, len(highs) - lookback):
        current = highs[i]
        ceiling = current * (1 + TOLERANCE)
        neighbours = list(highs[i - lookback: i]) + list(highs[i + 1: i + lookback + 1])
        if all(high <= ceiling for high in neighbours):
            _merge_level(levels, current)
    return levels


def _first_below(levels: list[PriceLevel], price: float) -> Optional[PriceLevel]:
    # levels sorted descending
    return next((lv for lv in levels if lv.price < price), None)


def _first_above(levels: list[PriceLevel], price: float) -> Optional[PriceLevel]:
    # levels sorted ascending
    return next((lv for lv in levels if lv.price > price), None)


def analyze_support_resistance(bars: Sequence[Bar]) -> AnalyzerResult:
    """Score proximity to strong levels and breaks through the nearest level.

    Proximity uses the nearest level on each side of the current close.
    Breakouts use the nearest level on each side of the previous close, so
    a close that moves through it registers.
    """
    closes = closes_of(bars)
    price = closes[-1]
    prev_price = closes[-2]

    supports = find_support_levels([b.low for b in bars])
    resistances = find_resistance_levels([b.high for b in bars])
    supports.sort(key=lambda lv: lv.price, reverse=True)
    resistances.sort(key=lambda lv: lv.price)

    signals: list[Signal] = []

    support = _first_below(supports, price)
    if support is not None and support.strength >= MIN_STRENGTH:
        if abs(price - support.price) / price < PROXIMITY:
            signals.append(
                Signal("Near Strong Support", BUY, 60 + support.strength * 3)
            )

    resistance = _first_above(resistances, price)
    if resistance is not None and resistance.strength >= MIN_STRENGTH:
        if abs(resistance.price - price) / price < PROXIMITY:
            signals.append(
                Signal("Near Strong Resistance", SELL, 60 + resistance.strength * 3)
            )

    broken_resistance = next(
        (lv for lv in resistances if lv.price >= prev_price), None
    )
    if broken_resistance is not None and price > broken_resistance.price:
        signals.append(
            Signal(
                "Breakout Above Resistance", BUY, 75 + broken_resistance.strength * 3
            )
        )

    broken_support = next(
        (lv for lv in supports if lv.price <= prev_price), None
    )
    if broken_support is not None and price < broken_support.price:
        signals.append(
            Signal(
                "Breakdown Below Support", SELL, 75 + broken_support.strength * 3
            )
        )

    return score_signals(
        signals,
        CAP,
        values={
            "supports": [lv.price for lv in supports[:3]],
            "resistances": [lv.price for lv in resistances[:3]],
            "nearestSupport": support.price if support else None,
            "nearestResistance": resistance.price if resistance else None,
        },
    )
