"""Trading config repository — persists the live TradingConfig as JSON."""

import json
import logging

from confluence.models.trading_config import TradingConfig
from confluence.repos.db import get_connection

logger = logging.getLogger("confluence.repos")


class ConfigRepo:
    """Data access layer for the single-row ``trading_config`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get_config(self) -> TradingConfig:
        """Return the stored config, or the defaults when none is stored.

        A stored config that no longer validates is ignored with a warning.
        """
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT settings FROM trading_config WHERE id = 1"
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return TradingConfig()
        try:
            return TradingConfig.from_dict(json.loads(row["settings"]))
        except ValueError as exc:
            logger.warning("Stored trading config is invalid, using defaults: %s", exc)
            return TradingConfig()

    def update_config(self, config: TradingConfig) -> None:
        """Store *config*, replacing any previous one."""
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO trading_config (id, settings, updated_at)
                VALUES (1, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                ON CONFLICT(id) DO UPDATE SET
                    settings = excluded.settings,
                    updated_at = excluded.updated_at
                """,
                (json.dumps(config.to_dict()),),
            )
            conn.commit()
        finally:
            conn.close()
