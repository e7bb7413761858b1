"""Shared analyzer plumbing — the analyzer protocol and the signal scoring rule."""

import math
from typing import Any, Iterable, Protocol, Sequence

from confluence.analysis.models import (
    BUY,
    NEUTRAL,
    SELL,
    AnalyzerResult,
    Bar,
    Signal,
)


class AnalyzerProtocol(Protocol):
    """Callable that turns a bar window into a directional vote."""

    def __call__(self, bars: Sequence[Bar]) -> AnalyzerResult: ...


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``Math.round`` semantics)."""
    return int(math.floor(value + 0.5))


def score_signals(
    signals: Iterable[Signal],
    cap: int,
    values: dict[str, Any] | None = None,
) -> AnalyzerResult:
    """Collapse a signal list into one directional vote.

    Strengths are summed per side.  The stronger side wins with confidence
    ``min(cap, 50 + round((winner - loser) / 2))``; a tie (including no
    directional signals at all) is NEUTRAL at 50.
    """
    signals = tuple(signals)
    buy = sum(s.strength for s in signals if s.direction == BUY)
    sell = sum(s.strength for s in signals if s.direction == SELL)

    if buy > sell:
        direction = BUY
        confidence = min(cap, 50 + round_half_up((buy - sell) / 2))
    elif sell > buy:
        direction = SELL
        confidence = min(cap, 50 + round_half_up((sell - buy) / 2))
    else:
        direction = NEUTRAL
        confidence = 50

    return AnalyzerResult(
        direction=direction,
        confidence=confidence,
        signals=signals,
        values=values or {},
    )


def closes_of(bars: Sequence[Bar]) -> list[float]:
    return [b.close for b in bars]


def crossed_above(a_prev: float, a_now: float, b_prev: float, b_now: float) -> bool:
    """True when series *a* moves from at-or-below *b* to above it."""
    return a_now > b_now and a_prev <= b_prev


def crossed_below(a_prev: float, a_now: float, b_prev: float, b_now: float) -> bool:
    """True when series *a* moves from at-or-above *b* to below it."""
    return a_now < b_now and a_prev >= b_prev
