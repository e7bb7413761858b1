"""News data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class NewsItem:
    """A headline with a sentiment score in [-1, 1]."""

    headline: str
    source: str
    sentiment: float
    url: str = ""
    published_at: str = ""
