"""Analyzer registry — names, weights and history requirements of the bar analyzers.

The table order is the evaluation and report order.  Market Sentiment is
fed news rather than bars and is registered separately.
"""

from dataclasses import dataclass

from confluence.analysis import (
    bands,
    candlesticks,
    fibonacci,
    levels,
    moving_averages,
    oscillators,
    trend_strength,
    volume,
)
from confluence.analysis.base import AnalyzerProtocol


@dataclass(frozen=True)
class AnalyzerSpec:
    """A registered bar analyzer."""

    name: str
    weight: int
    min_bars: int
    analyze: AnalyzerProtocol


SENTIMENT_NAME = "Market Sentiment"
SENTIMENT_WEIGHT = 8

BAR_ANALYZERS: tuple[AnalyzerSpec, ...] = (
    AnalyzerSpec("Moving Averages", 15, moving_averages.MIN_BARS,
                 moving_averages.analyze_moving_averages),
    AnalyzerSpec("RSI", 10, oscillators.RSI_MIN_BARS, oscillators.analyze_rsi),
    AnalyzerSpec("MACD", 12, oscillators.MACD_MIN_BARS, oscillators.analyze_macd),
    AnalyzerSpec("Bollinger Bands", 10, bands.MIN_BARS, bands.analyze_bollinger),
    AnalyzerSpec("Support/Resistance", 12, levels.MIN_BARS,
                 levels.analyze_support_resistance),
    AnalyzerSpec("Volume", 8, volume.MIN_BARS, volume.analyze_volume),
    AnalyzerSpec("Candlestick Patterns", 10, candlesticks.MIN_BARS,
                 candlesticks.analyze_candlesticks),
    AnalyzerSpec("Fibonacci", 8, fibonacci.MIN_BARS, fibonacci.analyze_fibonacci),
    AnalyzerSpec("Trend Strength", 7, trend_strength.MIN_BARS,
                 trend_strength.analyze_trend_strength),
)


def get_analyzer(name: str) -> AnalyzerSpec:
    """Look up a bar analyzer by name.

    Raises ``KeyError`` if the analyzer name is not registered.
    """
    for spec in BAR_ANALYZERS:
        if spec.name == name:
            return spec
    raise KeyError(
        f"Unknown analyzer '{name}'. "
        f"Available: {', '.join(s.name for s in BAR_ANALYZERS)}"
    )


def total_weight() -> int:
    return sum(s.weight for s in BAR_ANALYZERS) + SENTIMENT_WEIGHT
