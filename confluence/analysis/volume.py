"""Volume analyzer — trend confirmation, weak moves and climaxes."""

from typing import Sequence

from confluence.analysis.base import closes_of, round_half_up, score_signals
from confluence.analysis.indicators import calculate_sma
from confluence.analysis.models import BUY, SELL, AnalyzerResult, Bar, Signal


PERIOD = 20
CAP = 85
HIGH_RATIO = 1.5
LOW_RATIO = 0.7
CLIMAX_MULTIPLE = 2.0
MIN_BARS = PERIOD


def analyze_volume(bars: Sequence[Bar]) -> AnalyzerResult:
    closes = closes_of(bars)
    volumes = [b.volume for b in bars]
    average = calculate_sma(volumes, PERIOD)[-1]
    current = volumes[-1]
    ratio = current / average if average > 0 else 0.0

    change = closes[-1] - closes[-2]
    moved_up = change > 0
    moved_down = change < 0
    signals: list[Signal] = []

    if ratio > HIGH_RATIO:
        strength = 60 + min(20, round_half_up((ratio - HIGH_RATIO) * 10))
        if moved_up:
            signals.append(Signal("High Volume Price Increase", BUY, strength))
        elif moved_down:
            signals.append(Signal("High Volume Price Decrease", SELL, strength))

    # Thin participation behind a move is read contrarian
    if ratio < LOW_RATIO and (moved_up or moved_down):
        signals.append(
            Signal("Low Volume Price Movement", SELL if moved_up else BUY, 55)
        )

    if (
        current > volumes[-2] * CLIMAX_MULTIPLE
        and current > volumes[-3] * CLIMAX_MULTIPLE
    ):
        signals.append(Signal("Volume Climax", SELL if moved_up else BUY, 70))

    return score_signals(
        signals,
        CAP,
        values={"volume": current, "averageVolume": average, "volumeRatio": ratio},
    )
