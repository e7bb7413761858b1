"""Trade repository — SQLite CRUD for the trades table."""

from datetime import datetime, timezone
from typing import Iterable, Optional

from confluence.repos.db import get_connection
from confluence.trading.stats import calculate_statistics


class TradeRepo:
    """Data access layer for trade records.

    One row per position: an open inserts it with status ``OPEN``, a close
    fills in the exit fields and the closing status.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def save_trade(
        self,
        symbol: str,
        side: str,
        quantity: float,
        entry_price: float,
        stop_loss: float,
        take_profit: float,
        entry_time: str,
        confidence: Optional[int] = None,
        order_id: Optional[str] = None,
    ) -> int:
        """Insert a new open trade and return its ``id``."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO trades
                    (symbol, side, quantity, entry_price, stop_loss,
                     take_profit, status, confidence, order_id, entry_time)
                VALUES (?, ?, ?, ?, ?, ?, 'OPEN', ?, ?, ?)
                """,
                (
                    symbol, side, quantity, entry_price, stop_loss,
                    take_profit, confidence, order_id, entry_time,
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def close_trade(
        self,
        symbol: str,
        status: str,
        exit_price: float,
        pnl: float,
        exit_time: str,
        side: str = "long",
        quantity: float = 0.0,
        entry_price: Optional[float] = None,
    ) -> int:
        """Close the symbol's most recent open trade and return its ``id``.

        The exit price and P&L belong to the whole net position and go on the
        most recent row.  Any older open rows in the symbol are closed with
        the same status and exit time, leaving their P&L unset.

        When no open row exists (the position was opened outside the bot,
        or before the database was created) a closed row is inserted from
        *side*, *quantity* and *entry_price* instead.
        """
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT id FROM trades
                WHERE symbol = ? AND status = 'OPEN'
                ORDER BY id DESC LIMIT 1
                """,
                (symbol,),
            ).fetchone()

            if row is not None:
                conn.execute(
                    """
                    UPDATE trades
                    SET exit_price = ?, pnl = ?, status = ?, exit_time = ?
                    WHERE id = ?
                    """,
                    (exit_price, pnl, status, exit_time, row["id"]),
                )
                trade_id = row["id"]
                # Older open rows were part of the same net position
                conn.execute(
                    """
                    UPDATE trades SET status = ?, exit_time = ?
                    WHERE symbol = ? AND status = 'OPEN'
                    """,
                    (status, exit_time, symbol),
                )
            else:
                cur = conn.execute(
                    """
                    INSERT INTO trades
                        (symbol, side, quantity, entry_price, status,
                         exit_time, exit_price, pnl)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        symbol, side, quantity, entry_price, status,
                        exit_time, exit_price, pnl,
                    ),
                )
                trade_id = cur.lastrowid
            conn.commit()
            return trade_id
        finally:
            conn.close()

    def close_unheld_trades(
        self,
        held_symbols: Iterable[str],
        exit_time: str,
        status: str = "CLOSED",
    ) -> list[str]:
        """Close open trades in symbols the brokerage no longer holds.

        A bracket stop-loss or take-profit fills at the brokerage without
        passing through the bot, so exit price and P&L are left unset.

        Returns:
            The symbols whose rows were closed, sorted.
        """
        held = sorted(set(held_symbols))
        not_in = ""
        if held:
            not_in = f"AND symbol NOT IN ({', '.join('?' * len(held))})"

        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                f"SELECT DISTINCT symbol FROM trades WHERE status = 'OPEN' {not_in}",
                held,
            ).fetchall()
            closed = sorted(r["symbol"] for r in rows)
            if closed:
                conn.execute(
                    f"""
                    UPDATE trades SET status = ?, exit_time = ?
                    WHERE status = 'OPEN' {not_in}
                    """,
                    (status, exit_time, *held),
                )
                conn.commit()
            return closed
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_trades(
        self,
        limit: int = 50,
        status_filter: Optional[str] = None,
    ) -> dict:
        """Return recent trades, newest first.

        Returns:
            ``{"trades": [...], "total": int}``
        """
        conn = get_connection(self._db_path)
        try:
            where_clause = ""
            params: list = []
            if status_filter:
                where_clause = "WHERE status = ?"
                params.append(status_filter)

            rows = conn.execute(
                f"SELECT * FROM trades {where_clause} ORDER BY id DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
            total = conn.execute(
                f"SELECT COUNT(*) FROM trades {where_clause}",
                params,
            ).fetchone()[0]

            return {"trades": [dict(row) for row in rows], "total": total}
        finally:
            conn.close()

    def get_trades_by_symbol(self, symbol: str, limit: int = 50) -> list[dict]:
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM trades WHERE symbol = ? ORDER BY id DESC LIMIT ?",
                (symbol, limit),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def get_open_trades(self) -> list[dict]:
        """Return every trade still marked ``OPEN``, oldest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM trades WHERE status = 'OPEN' ORDER BY id"
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def get_statistics(self, now: Optional[datetime] = None) -> dict:
        """Aggregate statistics over every recorded trade."""
        now = now or datetime.now(timezone.utc)
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute("SELECT * FROM trades ORDER BY id").fetchall()
        finally:
            conn.close()
        return calculate_statistics([dict(r) for r in rows], now.date().isoformat())
