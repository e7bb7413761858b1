"""Active symbol repository — the set of symbols the engine evaluates."""

from confluence.repos.db import get_connection


class SymbolRepo:
    """Data access layer for the ``active_symbols`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get_active_symbols(self) -> list[str]:
        """Return active symbols in the order they were added."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT symbol FROM active_symbols ORDER BY added_at, rowid"
            ).fetchall()
            return [row["symbol"] for row in rows]
        finally:
            conn.close()

    def add(self, symbol: str) -> bool:
        """Activate *symbol*.  Returns ``False`` if it was already active."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                "INSERT OR IGNORE INTO active_symbols (symbol) VALUES (?)",
                (symbol,),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def remove(self, symbol: str) -> bool:
        """Deactivate *symbol*.  Returns ``False`` if it was not active."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                "DELETE FROM active_symbols WHERE symbol = ?", (symbol,)
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()
