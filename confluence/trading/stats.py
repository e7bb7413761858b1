"""Trade statistics — pure functions over recorded trade rows."""

from datetime import datetime
from typing import Optional

OPEN = "OPEN"


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _duration_seconds(trade: dict) -> Optional[float]:
    opened = _parse_time(trade.get("entry_time"))
    closed = _parse_time(trade.get("exit_time"))
    if opened is None or closed is None:
        return None
    return (closed - opened).total_seconds()


def calculate_statistics(trades: list[dict], today: str) -> dict:
    """Summarise a list of trade rows.

    Args:
        trades: Rows from the ``trades`` table.  Closed rows carry ``pnl``.
        today: ISO date (``YYYY-MM-DD``) used for ``today_profit``.

    Returns:
        Dict with ``total_trades``, ``completed_trades``, ``open_trades``,
        ``win_rate`` (percent), ``avg_profit``, ``total_profit``,
        ``avg_duration`` (seconds), ``best_trade``, ``worst_trade``,
        ``today_profit``, ``profit_factor`` and ``max_drawdown``.
    """
    open_trades = [t for t in trades if t.get("status") == OPEN]
    completed = [
        t for t in trades
        if t.get("status") != OPEN and t.get("pnl") is not None
    ]

    if not completed:
        return {
            "total_trades": len(trades),
            "completed_trades": 0,
            "open_trades": len(open_trades),
            "win_rate": 0.0,
            "avg_profit": 0.0,
            "total_profit": 0.0,
            "avg_duration": 0.0,
            "best_trade": None,
            "worst_trade": None,
            "today_profit": 0.0,
            "profit_factor": None,
            "max_drawdown": 0.0,
        }

    # Chronological order for the drawdown curve
    completed.sort(key=lambda t: t.get("exit_time") or "")
    pnls = [float(t["pnl"]) for t in completed]
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p <= 0]

    total_profit = sum(pnls)
    gross_profit = sum(winners)
    gross_loss = abs(sum(losers))
    profit_factor: Optional[float] = (
        gross_profit / gross_loss if gross_loss > 0 else None
    )

    durations = [d for d in (_duration_seconds(t) for t in completed) if d is not None]
    avg_duration = sum(durations) / len(durations) if durations else 0.0

    today_profit = sum(
        float(t["pnl"]) for t in completed
        if (t.get("exit_time") or "")[:10] == today
    )

    return {
        "total_trades": len(trades),
        "completed_trades": len(completed),
        "open_trades": len(open_trades),
        "win_rate": round(len(winners) / len(pnls) * 100, 2),
        "avg_profit": round(total_profit / len(pnls), 2),
        "total_profit": round(total_profit, 2),
        "avg_duration": round(avg_duration, 1),
        "best_trade": round(max(pnls), 2),
        "worst_trade": round(min(pnls), 2),
        "today_profit": round(today_profit, 2),
        "profit_factor": round(profit_factor, 4) if profit_factor is not None else None,
        "max_drawdown": round(_max_drawdown(pnls), 2),
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _max_drawdown(pnls: list[float]) -> float:
    """Maximum drawdown from the cumulative P&L curve.

    Returns the largest peak-to-trough decline as a positive number.
    """
    cumulative = 0.0
    peak = 0.0
    max_dd = 0.0
    for p in pnls:
        cumulative += p
        if cumulative > peak:
            peak = cumulative
        dd = peak - cumulative
        if dd > max_dd:
            max_dd = dd
    return max_dd
