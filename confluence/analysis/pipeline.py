"""Analysis pipeline — runs every analyzer over one symbol and builds the report.

Each analyzer is isolated: an exception or a malformed result is replaced
with a fallback vote so one broken analyzer never sinks the evaluation.
"""

import logging
from typing import Callable, Sequence

from confluence.analysis.consensus import compute_consensus, extract_danger_signals
from confluence.analysis.models import (
    NEUTRAL,
    AnalysisReport,
    AnalyzerResult,
    Bar,
    WeightedAnalysis,
)
from confluence.analysis.registry import (
    BAR_ANALYZERS,
    SENTIMENT_NAME,
    SENTIMENT_WEIGHT,
)
from confluence.analysis.sentiment import analyze_sentiment
from confluence.news.models import NewsItem

logger = logging.getLogger("confluence.analysis")

FALLBACK_CONFIDENCE = 70
INSUFFICIENT_HISTORY = "insufficient history"


def fallback_result(error: str) -> AnalyzerResult:
    """Vote substituted for an analyzer that raised or returned garbage."""
    return AnalyzerResult(
        direction=NEUTRAL,
        confidence=FALLBACK_CONFIDENCE,
        error=error,
    )


def _is_well_formed(result: object) -> bool:
    return (
        isinstance(result, AnalyzerResult)
        and result.direction in ("BUY", "SELL", NEUTRAL)
        and 50 <= result.confidence <= 100
    )


def _run_isolated(name: str, fn: Callable[[], AnalyzerResult]) -> AnalyzerResult:
    try:
        result = fn()
    except Exception as exc:
        logger.warning("Analyzer %s failed: %s", name, exc)
        return fallback_result(f"{type(exc).__name__}: {exc}")

    if not _is_well_formed(result):
        logger.warning("Analyzer %s returned a malformed result: %r", name, result)
        return fallback_result("malformed result")
    return result


def run_analyzers(
    bars: Sequence[Bar],
    news: Sequence[NewsItem],
) -> tuple[WeightedAnalysis, ...]:
    """Run all ten analyzers in report order.

    Bar analyzers whose minimum history is not met are skipped and vote
    NEUTRAL at 50, keeping their weight in the normaliser.
    """
    bars = tuple(bars)
    analyses: list[WeightedAnalysis] = []

    for spec in BAR_ANALYZERS:
        if len(bars) < spec.min_bars:
            result = AnalyzerResult(
                direction=NEUTRAL, confidence=50, error=INSUFFICIENT_HISTORY
            )
        else:
            result = _run_isolated(spec.name, lambda fn=spec.analyze: fn(bars))
        analyses.append(WeightedAnalysis(spec.name, result, spec.weight))

    sentiment = _run_isolated(SENTIMENT_NAME, lambda: analyze_sentiment(news))
    analyses.append(WeightedAnalysis(SENTIMENT_NAME, sentiment, SENTIMENT_WEIGHT))

    return tuple(analyses)


def run_analysis(
    symbol: str,
    bars: Sequence[Bar],
    news: Sequence[NewsItem] = (),
    *,
    timestamp: str,
    source: str = "live",
) -> AnalysisReport:
    """Evaluate *symbol* and return its consensus report.

    Raises ``ValueError`` if *bars* is empty.
    """
    if not bars:
        raise ValueError(f"No bars supplied for {symbol}")

    analyses = run_analyzers(bars, news)
    direction, confidence = compute_consensus(analyses)
    dangers = extract_danger_signals(analyses)

    return AnalysisReport(
        symbol=symbol,
        price=bars[-1].close,
        timestamp=timestamp,
        analyses=analyses,
        direction=direction,
        confidence=confidence,
        danger_signals=dangers,
        source=source,
    )
