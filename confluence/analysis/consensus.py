"""Consensus engine — weighted vote across analyzers plus danger-signal extraction.

Pure functions, no I/O.
"""

from typing import Sequence

from confluence.analysis.base import round_half_up
from confluence.analysis.models import (
    BUY,
    NEUTRAL,
    SELL,
    DangerSignal,
    WeightedAnalysis,
)


DECISION_MARGIN = 0.10
MIN_CONFIDENCE = 50
MAX_CONFIDENCE = 100

# (analyzer, signal name, minimum strength) → danger signal
_DANGER_RULES: tuple[tuple[str, str, float, DangerSignal], ...] = (
    ("Bollinger Bands", "Price Above Upper Band", 70,
     DangerSignal("Extreme Overbought on Bollinger Bands", 8)),
    ("Bollinger Bands", "Price Below Lower Band", 70,
     DangerSignal("Extreme Oversold on Bollinger Bands", 8)),
    ("RSI", "RSI Overbought", 75,
     DangerSignal("Extreme Overbought on RSI", 7)),
    ("RSI", "RSI Oversold", 75,
     DangerSignal("Extreme Oversold on RSI", 7)),
    ("Volume", "Volume Climax", 70,
     DangerSignal("Volume Climax Detected", 9)),
)


def side_scores(analyses: Sequence[WeightedAnalysis]) -> tuple[float, float]:
    """Return ``(buy_score, sell_score)`` normalised by the total weight."""
    total = sum(a.weight for a in analyses)
    if total <= 0:
        return 0.0, 0.0

    buy = sum(
        a.weight * a.result.confidence / 100
        for a in analyses
        if a.result.direction == BUY
    )
    sell = sum(
        a.weight * a.result.confidence / 100
        for a in analyses
        if a.result.direction == SELL
    )
    return buy / total, sell / total


def compute_consensus(analyses: Sequence[WeightedAnalysis]) -> tuple[str, int]:
    """Combine weighted analyzer votes into ``(direction, confidence)``.

    A side wins only when it leads the other by more than
    ``DECISION_MARGIN``; near ties are NEUTRAL at 50.  Confidence is
    clamped to [50, 100].
    """
    buy, sell = side_scores(analyses)

    if buy > sell + DECISION_MARGIN:
        direction, confidence = BUY, round_half_up(buy * 100)
    elif sell > buy + DECISION_MARGIN:
        direction, confidence = SELL, round_half_up(sell * 100)
    else:
        direction, confidence = NEUTRAL, 50

    confidence = max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))
    return direction, confidence


def extract_danger_signals(
    analyses: Sequence[WeightedAnalysis],
) -> tuple[DangerSignal, ...]:
    """Scan analyzer signals for out-of-band risk flags.

    Runs independently of the consensus direction.
    """
    by_name = {a.name: a.result for a in analyses}
    dangers: list[DangerSignal] = []
    for analyzer, signal_name, min_strength, danger in _DANGER_RULES:
        result = by_name.get(analyzer)
        if result is None:
            continue
        if any(
            s.name == signal_name and s.strength >= min_strength
            for s in result.signals
        ):
            dangers.append(danger)
    return tuple(dangers)
