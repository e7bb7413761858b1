"""Bollinger Band analyzer — band breaches, re-entries and squeezes."""

from typing import Sequence

from confluence.analysis.base import closes_of, score_signals
from confluence.analysis.indicators import calculate_bollinger
from confluence.analysis.models import BUY, NEUTRAL, SELL, AnalyzerResult, Bar, Signal


PERIOD = 20
STD_DEV = 2.0
CAP = 90
SQUEEZE_RATIO = 0.8
# Squeeze compares against the bandwidth 4 bars earlier
MIN_BARS = PERIOD + 4


def _bandwidth(upper: float, middle: float, lower: float) -> float:
    if middle == 0:
        return 0.0
    return (upper - lower) / middle


def analyze_bollinger(bars: Sequence[Bar]) -> AnalyzerResult:
    closes = closes_of(bars)
    upper, middle, lower = calculate_bollinger(closes, PERIOD, STD_DEV)

    price = closes[-1]
    prev_price = closes[-2]
    width = upper[-1] - lower[-1]
    bandwidth = _bandwidth(upper[-1], middle[-1], lower[-1])
    percent_b = (price - lower[-1]) / width if width else 0.5
    signals: list[Signal] = []

    if price <= lower[-1]:
        signals.append(Signal("Price Below Lower Band", BUY, 70))
    if price >= upper[-1]:
        signals.append(Signal("Price Above Upper Band", SELL, 70))

    if price > lower[-1] and prev_price <= lower[-2]:
        signals.append(Signal("Price Crosses Above Lower Band", BUY, 65))
    if price < upper[-1] and prev_price >= upper[-2]:
        signals.append(Signal("Price Crosses Below Upper Band", SELL, 65))

    previous_bandwidth = _bandwidth(upper[-5], middle[-5], lower[-5])
    if bandwidth < previous_bandwidth * SQUEEZE_RATIO:
        signals.append(Signal("Bollinger Band Squeeze", NEUTRAL, 60))

    return score_signals(
        signals,
        CAP,
        values={
            "middle": middle[-1],
            "upper": upper[-1],
            "lower": lower[-1],
            "bandwidth": bandwidth,
            "percentB": percent_b,
        },
    )
