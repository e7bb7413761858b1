"""Trend-strength analyzer — ADX(14) with directional-indicator crosses."""

from typing import Sequence

from confluence.analysis.base import crossed_above, round_half_up, score_signals
from confluence.analysis.indicators import calculate_dmi
from confluence.analysis.models import BUY, NEUTRAL, SELL, AnalyzerResult, Bar, Signal


PERIOD = 14
CAP = 90
STRONG_TREND = 25
WEAK_TREND = 20
MIN_BARS = 2 * PERIOD + 2


def analyze_trend_strength(bars: Sequence[Bar]) -> AnalyzerResult:
    adx, plus_di, minus_di = calculate_dmi(bars, PERIOD)
    current_adx = adx[-1]
    signals: list[Signal] = []

    if current_adx > STRONG_TREND:
        strength = 60 + min(30, round_half_up((current_adx - STRONG_TREND) / 2))
        if plus_di[-1] > minus_di[-1]:
            signals.append(Signal("Strong Uptrend", BUY, strength))
        else:
            signals.append(Signal("Strong Downtrend", SELL, strength))

    if current_adx < WEAK_TREND:
        signals.append(Signal("Weak Trend", NEUTRAL, 50))

    if crossed_above(plus_di[-2], plus_di[-1], minus_di[-2], minus_di[-1]):
        signals.append(Signal("+DI Crosses Above -DI", BUY, 65))
    if crossed_above(minus_di[-2], minus_di[-1], plus_di[-2], plus_di[-1]):
        signals.append(Signal("-DI Crosses Above +DI", SELL, 65))

    return score_signals(
        signals,
        CAP,
        values={"adx": current_adx, "plusDI": plus_di[-1], "minusDI": minus_di[-1]},
    )
