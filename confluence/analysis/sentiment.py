"""Market-sentiment analyzer — averages recent news sentiment into a vote."""

from typing import Sequence

from confluence.analysis.base import round_half_up
from confluence.analysis.models import BUY, NEUTRAL, SELL, AnalyzerResult, Signal
from confluence.news.models import NewsItem


MAX_ITEMS = 5
THRESHOLD = 0.2
NOTABLE = 0.3
MAX_BOOST = 30


def _notable(items: Sequence[NewsItem]) -> list[dict]:
    notable = []
    for item in items:
        if abs(item.sentiment) > NOTABLE:
            notable.append({
                "source": item.source,
                "headline": item.headline,
                "sentiment": "positive" if item.sentiment > 0 else "negative",
            })
    return notable


def analyze_sentiment(news: Sequence[NewsItem]) -> AnalyzerResult:
    """Vote from the mean sentiment of up to five news items.

    Beyond ±0.2 the vote takes that side with confidence
    ``50 + min(30, round(|avg| × 100))``; otherwise NEUTRAL at 50.  No news
    is NEUTRAL.
    """
    items = list(news)[:MAX_ITEMS]
    if not items:
        return AnalyzerResult(
            direction=NEUTRAL,
            confidence=50,
            values={"sentiment": None, "recentNews": []},
        )

    average = sum(item.sentiment for item in items) / len(items)
    values = {"sentiment": average, "recentNews": _notable(items)}

    if average > THRESHOLD:
        confidence = 50 + min(MAX_BOOST, round_half_up(average * 100))
        signal = Signal("Positive Market Sentiment", BUY, confidence)
        return AnalyzerResult(BUY, confidence, (signal,), values)
    if average < -THRESHOLD:
        confidence = 50 + min(MAX_BOOST, round_half_up(abs(average) * 100))
        signal = Signal("Negative Market Sentiment", SELL, confidence)
        return AnalyzerResult(SELL, confidence, (signal,), values)

    return AnalyzerResult(NEUTRAL, 50, (), values)
