"""Internal API routers — /trading control, status, trades and analysis endpoints.

No business logic, no DB access of its own.  Delegates to the engine, the
trade repository and the event bus injected at startup.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from confluence.models.trading_config import ConfigValidationError

logger = logging.getLogger("confluence.api")
router = APIRouter(prefix="/trading")

# ── Shared state (set during app startup) ────────────────────────────────

_engine = None      # Set via configure_routers()
_trade_repo = None  # Set via configure_routers()
_events = None      # Set via configure_routers()


def configure_routers(engine=None, trade_repo=None, events=None) -> None:
    """Inject dependencies from the application startup.

    Args:
        engine: A ``TradingEngine`` instance (or duck-type for tests).
        trade_repo: A ``TradeRepo`` instance.
        events: The ``EventBus`` the engine publishes to.
    """
    global _engine, _trade_repo, _events  # noqa: PLW0603
    _engine = engine
    _trade_repo = trade_repo
    _events = events


def _report_summary(report) -> Optional[dict]:
    if report is None:
        return None
    return {
        "direction": report.direction,
        "confidence": report.confidence,
        "price": report.price,
        "timestamp": report.timestamp,
        "source": report.source,
    }


def _position_dict(position) -> Optional[dict]:
    if position is None:
        return None
    return {
        "side": position.side,
        "quantity": position.quantity,
        "entry_price": position.avg_entry_price,
        "unrealized_pnl": position.unrealized_pnl,
    }


# ── Engine control ───────────────────────────────────────────────────────


@router.post("/start")
async def start_trading():
    """Start the evaluation loop in the background."""
    if _engine is None:
        return {"error": "No engine"}
    if _engine.is_running:
        return {"status": "already_running"}
    _engine.start()
    logger.info("Trading started via API.")
    return {"status": "started"}


@router.post("/stop")
async def stop_trading():
    """Stop the loop after the current evaluation."""
    if _engine is None:
        return {"error": "No engine"}
    _engine.stop()
    logger.info("Trading stopped via API.")
    return {"status": "stopped"}


@router.get("/status")
async def get_status():
    if _engine is None:
        return {"running": False, "symbols": []}
    return {**_engine.status(), "config": _engine.trading_config.to_dict()}


# ── Symbols ──────────────────────────────────────────────────────────────


@router.get("/symbols")
async def get_symbols():
    """Active symbols with their latest consensus and open position."""
    if _engine is None:
        return {"symbols": []}
    symbols = [
        {
            "symbol": state.symbol,
            "is_trading": state.is_trading,
            "last_analysis": _report_summary(state.last_analysis),
            "open_position": _position_dict(state.open_position),
        }
        for state in _engine.store
    ]
    return {"symbols": symbols}


@router.post("/symbols")
async def add_symbol(body: dict):
    """Activate a symbol.  Body: ``{"symbol": "AAPL"}``."""
    if _engine is None:
        return {"error": "No engine"}
    symbol = str(body.get("symbol") or "")
    try:
        added = await _engine.add_symbol(symbol)
    except ValueError as exc:
        return {"status": "error", "errors": [str(exc)]}
    symbol = symbol.strip().upper()
    return {"status": "added" if added else "exists", "symbol": symbol}


@router.delete("/symbols/{symbol}")
async def remove_symbol(symbol: str):
    """Close any position in *symbol* and deactivate it."""
    if _engine is None:
        return {"error": "No engine"}
    removed = await _engine.remove_symbol(symbol)
    if not removed:
        return {"error": f"Unknown symbol: {symbol}"}
    return {"status": "removed", "symbol": symbol.strip().upper()}


# ── Config ───────────────────────────────────────────────────────────────


@router.get("/config")
async def get_config():
    if _engine is None:
        return {"error": "No engine"}
    return _engine.trading_config.to_dict()


@router.put("/config")
async def put_config(body: dict):
    """Merge a partial config.  Invalid updates are rejected as a whole."""
    if _engine is None:
        return {"error": "No engine"}
    try:
        updated = await _engine.update_config(body)
    except ConfigValidationError as exc:
        return {"status": "error", "errors": exc.errors}
    return {"status": "ok", **updated.to_dict()}


# ── Trades ───────────────────────────────────────────────────────────────


@router.get("/trades")
async def get_trades(
    limit: int = Query(default=50, ge=1, le=500),
    status: Optional[str] = Query(default=None),
):
    """Return recent trade records."""
    if _trade_repo is None:
        return {"trades": [], "total": 0}
    return _trade_repo.get_trades(limit=limit, status_filter=status)


@router.get("/trades/{symbol}")
async def get_symbol_trades(
    symbol: str,
    limit: int = Query(default=50, ge=1, le=500),
):
    if _trade_repo is None:
        return {"trades": []}
    return {"trades": _trade_repo.get_trades_by_symbol(symbol.upper(), limit=limit)}


@router.get("/statistics")
async def get_statistics():
    if _trade_repo is None:
        return {"error": "No trade repository"}
    return _trade_repo.get_statistics()


# ── Analysis and events ──────────────────────────────────────────────────


@router.get("/analysis/{symbol}")
async def get_analysis(
    symbol: str,
    history: int = Query(default=20, ge=0, le=100),
):
    """Latest full report for *symbol* plus a summary of recent ones."""
    if _engine is None:
        return {"error": "No engine"}
    state = _engine.get_state(symbol)
    if state is None:
        return {"error": f"Unknown symbol: {symbol}"}
    recent = list(state.analysis_history)[-history:] if history else []
    return {
        "symbol": state.symbol,
        "analysis": state.last_analysis.to_dict() if state.last_analysis else None,
        "history": [_report_summary(r) for r in recent],
    }


@router.get("/events")
async def get_events(
    limit: int = Query(default=50, ge=1, le=200),
    type: Optional[str] = Query(default=None),
    since: int = Query(default=0, ge=0),
):
    """Recent engine events, oldest first.  Poll with ``since`` for new ones."""
    if _events is None:
        return {"events": []}
    events = _events.recent(limit=limit, event_type=type, since=since)
    return {"events": [e.to_dict() for e in events]}
