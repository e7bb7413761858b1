"""Confluence — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


_REQUIRED_VARS = [
    "ALPACA_API_KEY",
    "ALPACA_API_SECRET",
]

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    alpaca_api_key: str
    alpaca_api_secret: str
    alpaca_paper: bool
    alpaca_data_url: str
    alpha_vantage_api_key: str
    bar_timeframe: str
    bar_limit: int
    poll_interval_seconds: float
    error_backoff_seconds: float
    default_equity: float
    db_path: str
    log_level: str
    health_port: int

    @property
    def trading_base_url(self) -> str:
        """Return the Alpaca trading API base URL for paper or live mode."""
        if self.alpaca_paper:
            return "https://paper-api.alpaca.markets"
        return "https://api.alpaca.markets"


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    return Config(
        alpaca_api_key=os.environ["ALPACA_API_KEY"],
        alpaca_api_secret=os.environ["ALPACA_API_SECRET"],
        alpaca_paper=os.environ.get("ALPACA_PAPER", "true").lower() in _TRUTHY,
        alpaca_data_url=os.environ.get(
            "ALPACA_DATA_URL", "https://data.alpaca.markets"
        ),
        alpha_vantage_api_key=os.environ.get("ALPHA_VANTAGE_API_KEY", "demo"),
        bar_timeframe=os.environ.get("BAR_TIMEFRAME", "5Min"),
        bar_limit=int(os.environ.get("BAR_LIMIT", "250")),
        poll_interval_seconds=float(os.environ.get("POLL_INTERVAL_SECONDS", "60")),
        error_backoff_seconds=float(os.environ.get("ERROR_BACKOFF_SECONDS", "10")),
        default_equity=float(os.environ.get("DEFAULT_EQUITY", "10000")),
        db_path=os.environ.get("DB_PATH", "data/confluence.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
    )
