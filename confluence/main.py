"""Confluence — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
paper and live trading.
"""

import logging

from fastapi import FastAPI

from confluence.api.routers import router

app = FastAPI(title="Confluence Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("confluence")


@app.get("/health")
async def health():
    return {"status": "ok"}


def warn_if_live(paper: bool) -> bool:
    """Log a prominent warning when trading a live account.

    Returns ``True`` when *paper* is false.
    """
    if not paper:
        logger.warning(
            "LIVE TRADING MODE — Real money at risk! Starting in 5 seconds..."
        )
        return True
    return False


def format_status(status: dict) -> str:
    """Format an engine status snapshot for the console.

    Args:
        status: Dict returned by ``TradingEngine.status()``.
    """
    equity = status.get("equity")
    equity_str = f"${equity:,.2f}" if equity is not None else "N/A"
    symbols = status.get("symbols") or []

    lines = [
        "─────────────── Confluence Status ───────────────",
        f"  Mode:            {'paper' if status.get('paper', True) else 'LIVE'}",
        f"  Running:         {status.get('running', False)}",
        f"  Symbols:         {', '.join(symbols) if symbols else 'none'}",
        f"  Equity:          {equity_str}",
        f"  Open Positions:  {status.get('open_positions', 0)}",
        f"  Cycles:          {status.get('cycle_count', 0)}",
        f"  Last Cycle:      {status.get('last_cycle_at') or 'N/A'}",
        "──────────────────────────────────────────────────",
    ]
    return "\n".join(lines)


# ── CLI ──────────────────────────────────────────────────────────────────


def build_engine(config):
    """Wire clients, repositories and the event bus into a ``TradingEngine``."""
    from confluence.api.routers import configure_routers
    from confluence.broker.alpaca_client import AlpacaClient
    from confluence.data.sources import (
        FallbackDataSource,
        LiveDataSource,
        SyntheticDataSource,
    )
    from confluence.engine import TradingEngine
    from confluence.events import EventBus
    from confluence.news.news_client import NewsClient
    from confluence.repos.config_repo import ConfigRepo
    from confluence.repos.symbol_repo import SymbolRepo
    from confluence.repos.trade_repo import TradeRepo

    broker = AlpacaClient(config)
    events = EventBus()
    trade_repo = TradeRepo(config.db_path)
    engine = TradingEngine(
        config=config,
        broker=broker,
        news=NewsClient(config),
        data_source=FallbackDataSource(LiveDataSource(broker), SyntheticDataSource()),
        trade_repo=trade_repo,
        symbol_repo=SymbolRepo(config.db_path),
        config_repo=ConfigRepo(config.db_path),
        events=events,
    )
    configure_routers(engine=engine, trade_repo=trade_repo, events=events)
    return engine


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio
    import dataclasses
    import signal
    import time

    from confluence.config import load_config
    from confluence.repos.db import init_db

    parser = argparse.ArgumentParser(description="Confluence consensus trading bot")
    parser.add_argument(
        "--mode",
        choices=["paper", "live"],
        default=None,
        help="Trading account (default: ALPACA_PAPER from the environment)",
    )
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the trading engine without the API server",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single evaluation cycle, print status and exit",
    )
    args = parser.parse_args()

    config = load_config()
    if args.mode is not None:
        config = dataclasses.replace(config, alpaca_paper=args.mode == "paper")

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)

    if warn_if_live(config.alpaca_paper):
        time.sleep(5)

    engine = build_engine(config)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        engine.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.once:
        asyncio.run(_run_once(engine))
    elif args.engine_only:
        asyncio.run(_run_engine_only(engine))
    else:
        asyncio.run(_run_with_api(engine, config.health_port))


async def _run_once(engine) -> None:
    await engine.initialize()
    result = await engine.run_once()
    for symbol, outcome in result["symbols"].items():
        logger.info("%s: %s (%s)", symbol, outcome.get("action"), outcome.get("reason"))
    print(format_status(engine.status()))


async def _run_engine_only(engine) -> None:
    await engine.initialize()
    logger.info("Starting Confluence engine (no API).")
    await engine.run()
    logger.info("Confluence engine stopped.")


async def _run_with_api(engine, port: int = 8080) -> None:
    """Start the API server and the trading engine concurrently."""
    import asyncio

    import uvicorn

    await engine.initialize()

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        server.serve(),
        engine.run(),
        return_exceptions=True,
    )
    logger.info("Confluence stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
