"""Alpha Vantage NEWS_SENTIMENT client.

News is advisory: any failure is logged and yields an empty list, which the
sentiment analyzer reads as NEUTRAL.
"""

import logging

import httpx

from confluence.config import Config
from confluence.news.models import NewsItem

logger = logging.getLogger("confluence.news")

_BASE_URL = "https://www.alphavantage.co/query"


def _clamp(score: float) -> float:
    return max(-1.0, min(1.0, score))


def _item_sentiment(item: dict, symbol: str) -> float:
    """Ticker-specific score when the feed carries one, else the overall score."""
    for ts in item.get("ticker_sentiment") or []:
        if ts.get("ticker", "").upper() == symbol.upper():
            return _clamp(float(ts.get("ticker_sentiment_score", 0)))
    return _clamp(float(item.get("overall_sentiment_score", 0)))


class NewsClient:
    """Async client for recent per-symbol news with sentiment scores."""

    def __init__(self, config: Config, base_url: str = _BASE_URL) -> None:
        self._api_key = config.alpha_vantage_api_key
        self._base_url = base_url

    async def get_recent_news(self, symbol: str, limit: int = 5) -> list[NewsItem]:
        """Return up to *limit* recent news items for *symbol*."""
        params = {
            "function": "NEWS_SENTIMENT",
            "tickers": symbol,
            "limit": limit,
            "apikey": self._api_key,
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(self._base_url, params=params, timeout=15.0)
            resp.raise_for_status()
            feed = resp.json().get("feed")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("News fetch for %s failed: %s", symbol, exc)
            return []

        if not feed:
            logger.info("No news found for %s", symbol)
            return []

        items: list[NewsItem] = []
        for item in feed[:limit]:
            try:
                sentiment = _item_sentiment(item, symbol)
            except (TypeError, ValueError):
                logger.debug("Skipping news item with bad sentiment: %r", item.get("title"))
                continue
            items.append(
                NewsItem(
                    headline=item.get("title", ""),
                    source=item.get("source", ""),
                    sentiment=sentiment,
                    url=item.get("url", ""),
                    published_at=item.get("time_published", ""),
                )
            )
        return items
