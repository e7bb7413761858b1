"""Oscillator analyzers — RSI(14) and MACD(12, 26, 9)."""

from typing import Sequence

from confluence.analysis.base import closes_of, crossed_above, crossed_below, score_signals
from confluence.analysis.indicators import calculate_macd, calculate_rsi
from confluence.analysis.models import BUY, SELL, AnalyzerResult, Bar, Signal


RSI_PERIOD = 14
RSI_CAP = 90
# RSI ready at index 14, divergence looks 4 bars further back
RSI_MIN_BARS = RSI_PERIOD + 5

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
MACD_CAP = 90
# Signal line ready on the previous bar too
MACD_MIN_BARS = MACD_SLOW + MACD_SIGNAL

_DIVERGENCE_LOOKBACK = 5


def analyze_rsi(bars: Sequence[Bar]) -> AnalyzerResult:
    """Score RSI extremes, 30/70 boundary crosses and simple price/RSI divergence.

    Extreme strength scales with the distance past the threshold:
    ``70 + 2 × excess``.  Divergence compares the latest close and RSI
    with the values 4 bars earlier.
    """
    closes = closes_of(bars)
    rsi = calculate_rsi(closes, RSI_PERIOD)
    current = rsi[-1]
    previous = rsi[-2]
    signals: list[Signal] = []

    if current < 30:
        signals.append(Signal("RSI Oversold", BUY, 70 + (30 - current) * 2))
    if current > 70:
        signals.append(Signal("RSI Overbought", SELL, 70 + (current - 70) * 2))

    if current > 30 and previous <= 30:
        signals.append(Signal("RSI Crosses Above 30", BUY, 65))
    if current < 70 and previous >= 70:
        signals.append(Signal("RSI Crosses Below 70", SELL, 65))

    price_up = closes[-1] > closes[-_DIVERGENCE_LOOKBACK]
    rsi_up = rsi[-1] > rsi[-_DIVERGENCE_LOOKBACK]
    if price_up and not rsi_up:
        signals.append(Signal("Bearish RSI Divergence", SELL, 75))
    elif not price_up and rsi_up:
        signals.append(Signal("Bullish RSI Divergence", BUY, 75))

    return score_signals(signals, RSI_CAP, values={"rsi": current})


def analyze_macd(bars: Sequence[Bar]) -> AnalyzerResult:
    """Score signal-line crosses, histogram momentum and zero-line crosses."""
    closes = closes_of(bars)
    macd, signal_line, histogram = calculate_macd(
        closes, MACD_FAST, MACD_SLOW, MACD_SIGNAL
    )
    signals: list[Signal] = []

    if crossed_above(macd[-2], macd[-1], signal_line[-2], signal_line[-1]):
        signals.append(Signal("MACD Bullish Crossover", BUY, 70))
    if crossed_below(macd[-2], macd[-1], signal_line[-2], signal_line[-1]):
        signals.append(Signal("MACD Bearish Crossover", SELL, 70))

    if histogram[-1] > histogram[-2] and histogram[-1] > 0:
        signals.append(Signal("MACD Bullish Momentum", BUY, 60))
    elif histogram[-1] < histogram[-2] and histogram[-1] < 0:
        signals.append(Signal("MACD Bearish Momentum", SELL, 60))

    if macd[-1] > 0 and macd[-2] <= 0:
        signals.append(Signal("MACD Crosses Above Zero", BUY, 65))
    elif macd[-1] < 0 and macd[-2] >= 0:
        signals.append(Signal("MACD Crosses Below Zero", SELL, 65))

    return score_signals(
        signals,
        MACD_CAP,
        values={
            "macd": macd[-1],
            "signal": signal_line[-1],
            "histogram": histogram[-1],
        },
    )
