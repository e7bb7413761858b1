"""Confluence — trading engine (evaluation loop).

Connects market data, analysis, consensus and the position lifecycle into a
single polling loop.  Each cycle evaluates every active symbol in turn;
one symbol's failure is logged and never aborts the cycle.

Control commands (add/remove symbol, config update) arriving while the loop
runs are queued and applied between evaluations, so a cycle never sees the
symbol set or the trading config change underneath it.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from confluence.analysis.pipeline import run_analysis
from confluence.broker.models import BrokerPosition
from confluence.config import Config
from confluence.data.sources import FallbackDataSource
from confluence.events import ACCOUNT_UPDATE, ANALYSIS_UPDATE, BOT_CONFIG, BOT_STATUS, EventBus
from confluence.models.trading_config import TradingConfig
from confluence.repos.config_repo import ConfigRepo
from confluence.repos.symbol_repo import SymbolRepo
from confluence.repos.trade_repo import TradeRepo
from confluence.trading.lifecycle import (
    CLOSED,
    PositionManager,
    net_position,
    positions_from_trades,
)
from confluence.trading.symbol_state import SymbolState, SymbolStore

logger = logging.getLogger("confluence")

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TradingEngine:
    """Evaluates every active symbol once per cycle.

    Args:
        config: Application configuration.
        broker: An ``AlpacaClient`` (or compatible duck-type / mock).
        news: A ``NewsClient`` (or duck-type with ``get_recent_news``).
        data_source: Bar source with live-then-synthetic fallback.
        trade_repo: Trade records.
        symbol_repo: Persisted active symbol set.
        config_repo: Persisted ``TradingConfig``.
        events: Event bus the engine publishes to.
        store: Active symbol state.  A fresh store is created if omitted.
        clock: Current UTC time.
        sleep: Awaitable sleep, replaced in tests.
    """

    def __init__(
        self,
        config: Config,
        broker,
        news,
        data_source: FallbackDataSource,
        trade_repo: TradeRepo,
        symbol_repo: SymbolRepo,
        config_repo: ConfigRepo,
        events: EventBus,
        store: Optional[SymbolStore] = None,
        clock: Clock = _utc_now,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._broker = broker
        self._news = news
        self._data_source = data_source
        self._trade_repo = trade_repo
        self._symbol_repo = symbol_repo
        self._config_repo = config_repo
        self._events = events
        self._store = store if store is not None else SymbolStore()
        self._clock = clock
        self._sleep = sleep
        self._positions = PositionManager(broker, trade_repo, events, clock)

        self._trading_config = TradingConfig()
        self._commands: asyncio.Queue = asyncio.Queue()
        self._running: bool = False
        # True from loop entry until its final drain; stop() only clears _running
        self._loop_active: bool = False
        self._in_cycle: bool = False
        self._task: Optional[asyncio.Task] = None
        self._cycle_count: int = 0
        self._started_at: Optional[str] = None
        self._last_cycle_at: Optional[str] = None
        self._equity: Optional[float] = None

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def trading_config(self) -> TradingConfig:
        return self._trading_config

    @property
    def store(self) -> SymbolStore:
        return self._store

    def get_state(self, symbol: str) -> Optional[SymbolState]:
        return self._store.get(symbol.strip().upper())

    def status(self) -> dict:
        """Snapshot of the engine for the API and the CLI."""
        return {
            "running": self._running,
            "symbols": self._store.symbols(),
            "cycle_count": self._cycle_count,
            "started_at": self._started_at,
            "last_cycle_at": self._last_cycle_at,
            "equity": self._equity,
            "open_positions": sum(
                1 for s in self._store if s.open_position is not None
            ),
            "paper": self._config.alpaca_paper,
        }

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Restore the trading config and active symbols from the database."""
        self._trading_config = self._config_repo.get_config()
        for symbol in self._symbol_repo.get_active_symbols():
            self._store.add(symbol)
        logger.info(
            "Engine initialised with %d symbol(s): %s",
            len(self._store), ", ".join(self._store.symbols()) or "none",
        )
        self._events.publish(BOT_CONFIG, self._trading_config.to_dict())

    def start(self) -> asyncio.Task:
        """Run the loop as a background task.  Returns the running task.

        A start after ``stop()`` while the previous task is still finishing
        its cycle keeps that task looping; if it is already past its loop a
        fresh run is chained behind it.
        """
        self._running = True
        if self._task is not None and not self._task.done():
            if not self._loop_active:
                self._task = asyncio.create_task(self._run_after(self._task))
            return self._task
        self._task = asyncio.create_task(self.run())
        return self._task

    async def _run_after(self, previous: asyncio.Task) -> list[dict]:
        await asyncio.gather(previous, return_exceptions=True)
        if not self._running:
            # stop() arrived while waiting
            return []
        return await self.run()

    def stop(self) -> None:
        """Signal the engine to stop after the current evaluation."""
        if self._running:
            logger.info("Stop requested")
        self._running = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(self, max_cycles: int = 0) -> list[dict]:
        """Run the evaluation loop until stopped.

        Args:
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        self._running = True
        self._loop_active = True
        self._started_at = self._clock().isoformat()
        self._publish_status()
        results: list[dict] = []
        cycle = 0

        try:
            while self._running:
                cycle += 1
                try:
                    result = await self.run_once()
                    results.append(result)
                    delay = self._config.poll_interval_seconds
                except Exception as exc:
                    logger.exception("Cycle %d error: %s", cycle, exc)
                    results.append({"action": "error", "reason": str(exc)})
                    delay = self._config.error_backoff_seconds

                if max_cycles > 0 and cycle >= max_cycles:
                    break

                await self._interruptible_sleep(delay)
        finally:
            self._running = False
            self._loop_active = False
            # Anything queued after the last drain is applied now
            await self._drain_commands()
            self._publish_status()

        return results

    async def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep in 1 s ticks, applying commands and checking the stop flag."""
        remaining = seconds
        while remaining > 0 and self._running:
            await self._drain_commands()
            step = min(1.0, remaining)
            await self._sleep(step)
            remaining -= step

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(self) -> dict:
        """Evaluate every active symbol once.

        Returns ``{"cycle", "equity", "symbols": {symbol: result}}``.
        """
        await self._drain_commands()

        self._in_cycle = True
        try:
            self._cycle_count += 1
            equity = await self._fetch_equity()
            positions = await self._fetch_positions()

            outcomes: dict[str, dict] = {}
            for symbol in self._store.symbols():
                try:
                    outcomes[symbol] = await self._evaluate_symbol(symbol, equity, positions)
                except Exception as exc:
                    logger.exception("%s: evaluation failed: %s", symbol, exc)
                    outcomes[symbol] = {"action": "error", "reason": str(exc)}
        finally:
            self._in_cycle = False
            if not self._loop_active:
                await self._drain_commands()

        self._last_cycle_at = self._clock().isoformat()
        self._publish_status()
        return {"cycle": self._cycle_count, "equity": equity, "symbols": outcomes}

    async def _evaluate_symbol(
        self,
        symbol: str,
        equity: float,
        positions: list[BrokerPosition],
    ) -> dict:
        state = self._store.get(symbol)
        if state is None or not state.is_trading:
            return {"action": "skipped", "reason": "not trading"}

        fetched = await self._data_source.fetch(
            symbol, self._config.bar_timeframe, self._config.bar_limit
        )
        news = await self._news.get_recent_news(symbol)

        report = run_analysis(
            symbol,
            fetched.bars,
            news,
            timestamp=self._clock().isoformat(),
            source=fetched.source,
        )
        state.record(report)
        self._events.publish(ANALYSIS_UPDATE, report.to_dict())
        logger.info(
            "%s: %s %d%% (%s data, %d danger signal(s))",
            symbol, report.direction, report.confidence,
            report.source, len(report.danger_signals),
        )

        position = net_position(positions, symbol)
        outcome = await self._positions.apply(
            report,
            position,
            self._trading_config,
            equity,
            state.recent_prices(),
        )

        # Reflect the transition in the symbol's state
        if outcome.get("opened"):
            opened = outcome["opened"]
            state.open_position = BrokerPosition(
                symbol=symbol,
                side=opened["side"],
                quantity=opened["quantity"],
                avg_entry_price=opened["entry_price"],
                current_price=opened["entry_price"],
                unrealized_pnl=0.0,
            )
        elif outcome.get("closed"):
            state.open_position = None
        else:
            state.open_position = position

        outcome["direction"] = report.direction
        outcome["confidence"] = report.confidence
        return outcome

    async def _fetch_equity(self) -> float:
        try:
            summary = await self._broker.get_account_summary()
        except Exception as exc:
            logger.warning(
                "Account fetch failed (%s), using default equity %.2f",
                exc, self._config.default_equity,
            )
            equity = self._config.default_equity
        else:
            equity = summary.equity
            self._events.publish(ACCOUNT_UPDATE, {
                "equity": summary.equity,
                "cash": summary.cash,
                "buying_power": summary.buying_power,
                "status": summary.status,
            })
        self._equity = equity
        return equity

    async def _fetch_positions(self) -> list[BrokerPosition]:
        try:
            positions = await self._broker.get_open_positions()
        except Exception as exc:
            logger.warning(
                "Position fetch failed (%s), using locally recorded open trades", exc
            )
            return positions_from_trades(self._trade_repo.get_open_trades())

        # Bracket exits fill at the brokerage; settle the local rows they leave open
        closed = self._trade_repo.close_unheld_trades(
            (p.symbol for p in positions), self._clock().isoformat()
        )
        if closed:
            logger.info("Brokerage no longer holds %s, marked closed", ", ".join(closed))
        return positions

    def _publish_status(self) -> None:
        self._events.publish(BOT_STATUS, self.status())

    # ── Commands ─────────────────────────────────────────────────────────

    async def _submit(self, command: Callable[[], Awaitable[Any]]) -> Any:
        """Apply *command* now if no loop or cycle is active, else queue it.

        The stop flag is not consulted: after ``stop()`` the loop may still be
        finishing a cycle, and it drains the queue on its way out.
        """
        if not (self._loop_active or self._in_cycle):
            return await command()
        future = asyncio.get_running_loop().create_future()
        self._commands.put_nowait((command, future))
        return await future

    async def _drain_commands(self) -> None:
        while not self._commands.empty():
            command, future = self._commands.get_nowait()
            if future.cancelled():
                continue
            try:
                result = await command()
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

    async def add_symbol(self, symbol: str) -> bool:
        """Activate *symbol*.  Returns ``False`` if it was already active.

        Raises ``ValueError`` for a blank symbol.
        """
        symbol = symbol.strip().upper()
        if not symbol:
            raise ValueError("Symbol must not be empty")

        async def _add() -> bool:
            if symbol in self._store:
                return False
            self._store.add(symbol)
            self._symbol_repo.add(symbol)
            logger.info("Added symbol %s", symbol)
            return True

        return await self._submit(_add)

    async def remove_symbol(self, symbol: str) -> bool:
        """Close any open position in *symbol*, then deactivate it.

        Returns ``False`` if the symbol was not active.
        """
        symbol = symbol.strip().upper()

        async def _remove() -> bool:
            state = self._store.get(symbol)
            if state is None:
                return False
            state.is_trading = False

            position = net_position(await self._fetch_positions(), symbol)
            if position is not None:
                fallback = state.last_analysis.price if state.last_analysis else 0.0
                await self._positions.close_position(position, CLOSED, fallback)

            self._store.remove(symbol)
            self._symbol_repo.remove(symbol)
            logger.info("Removed symbol %s", symbol)
            return True

        return await self._submit(_remove)

    async def update_config(self, partial: dict) -> TradingConfig:
        """Merge *partial* into the live trading config.

        Raises ``ConfigValidationError`` and leaves the config unchanged
        when the merged result is invalid.
        """

        async def _update() -> TradingConfig:
            updated = self._trading_config.update(partial)
            self._trading_config = updated
            self._config_repo.update_config(updated)
            self._events.publish(BOT_CONFIG, updated.to_dict())
            logger.info("Trading config updated: %s", updated.to_dict())
            return updated

        return await self._submit(_update)
