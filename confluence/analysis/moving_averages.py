"""Moving-average analyzer — golden/death cross, MA alignment, EMA9/SMA20 cross."""

from typing import Sequence

from confluence.analysis.base import closes_of, crossed_above, crossed_below, score_signals
from confluence.analysis.indicators import calculate_ema, calculate_sma
from confluence.analysis.models import BUY, SELL, AnalyzerResult, Bar, Signal


CAP = 90
# SMA200 plus one prior bar for the cross check
MIN_BARS = 201


def analyze_moving_averages(bars: Sequence[Bar]) -> AnalyzerResult:
    closes = closes_of(bars)
    ema9 = calculate_ema(closes, 9)
    sma20 = calculate_sma(closes, 20)
    sma50 = calculate_sma(closes, 50)
    sma200 = calculate_sma(closes, 200)

    price = closes[-1]
    signals: list[Signal] = []

    if crossed_above(sma50[-2], sma50[-1], sma200[-2], sma200[-1]):
        signals.append(Signal("Golden Cross", BUY, 80))
    if crossed_below(sma50[-2], sma50[-1], sma200[-2], sma200[-1]):
        signals.append(Signal("Death Cross", SELL, 80))

    mas = (ema9[-1], sma20[-1], sma50[-1], sma200[-1])
    if all(price > ma for ma in mas):
        signals.append(Signal("Price Above All MAs", BUY, 70))
    elif all(price < ma for ma in mas):
        signals.append(Signal("Price Below All MAs", SELL, 70))

    if crossed_above(ema9[-2], ema9[-1], sma20[-2], sma20[-1]):
        signals.append(Signal("EMA9 Crosses Above SMA20", BUY, 60))
    elif crossed_below(ema9[-2], ema9[-1], sma20[-2], sma20[-1]):
        signals.append(Signal("EMA9 Crosses Below SMA20", SELL, 60))

    return score_signals(
        signals,
        CAP,
        values={
            "ema9": ema9[-1],
            "sma20": sma20[-1],
            "sma50": sma50[-1],
            "sma200": sma200[-1],
        },
    )
