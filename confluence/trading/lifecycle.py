"""Position lifecycle — per-symbol open / hold / reverse / close decisions.

``decide_transition`` is pure: given the held position and the latest
consensus report it names the transition.  ``PositionManager`` carries a
transition out against the brokerage, the trade repository and the event
bus.

Transitions, in priority order:

1. Flat and a directional consensus at or above ``OPEN_THRESHOLD``: open.
2. Holding and the consensus points the other way at or above
   ``REVERSAL_THRESHOLD``: close, refresh equity, open the opposite side.
3. Holding and any danger signal at or above ``DANGER_IMPORTANCE``: close.
4. Otherwise hold.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from confluence.analysis.models import BUY, NEUTRAL, SELL, AnalysisReport
from confluence.broker.alpaca_client import PositionNotFoundError
from confluence.broker.models import BracketOrderRequest, BrokerPosition
from confluence.events import NEW_TRADE, TRADE_CLOSED, EventBus
from confluence.models.trading_config import TradingConfig
from confluence.repos.trade_repo import TradeRepo
from confluence.risk.fibonacci import calculate_stop_loss_take_profit
from confluence.risk.position_sizer import calculate_position_size

logger = logging.getLogger("confluence.trading")

OPEN_THRESHOLD = 60
REVERSAL_THRESHOLD = 75
DANGER_IMPORTANCE = 7

# Trade statuses
OPEN = "OPEN"
CLOSED = "CLOSED"
CLOSED_REVERSAL = "CLOSED_REVERSAL"
CLOSED_DANGER = "CLOSED_DANGER"

# Transition actions
ACTION_OPEN = "open"
ACTION_REVERSE = "reverse"
ACTION_CLOSE_DANGER = "close_danger"
ACTION_HOLD = "hold"


@dataclass(frozen=True)
class Transition:
    action: str
    reason: str


def decide_transition(
    position: Optional[BrokerPosition],
    report: AnalysisReport,
) -> Transition:
    """Pick the lifecycle transition for one symbol this cycle."""
    if position is None:
        if report.direction != NEUTRAL and report.confidence >= OPEN_THRESHOLD:
            return Transition(
                ACTION_OPEN,
                f"{report.direction} consensus at {report.confidence}%",
            )
        return Transition(ACTION_HOLD, "no position and no actionable consensus")

    opposite = (
        (report.direction == BUY and position.side == "short")
        or (report.direction == SELL and position.side == "long")
    )
    if opposite and report.confidence >= REVERSAL_THRESHOLD:
        return Transition(
            ACTION_REVERSE,
            f"{report.direction} consensus at {report.confidence}% against {position.side}",
        )

    dangers = [d for d in report.danger_signals if d.importance >= DANGER_IMPORTANCE]
    if dangers:
        return Transition(
            ACTION_CLOSE_DANGER,
            ", ".join(d.name for d in dangers),
        )

    return Transition(ACTION_HOLD, f"holding {position.side}")


# ── Position reconciliation ──────────────────────────────────────────────


def net_position(
    positions: Iterable[BrokerPosition],
    symbol: str,
) -> Optional[BrokerPosition]:
    """Collapse every brokerage position in *symbol* into one net position.

    Signed quantities are summed, the entry price is quantity-weighted and
    P&L is summed.  Returns ``None`` when flat.
    """
    same = [p for p in positions if p.symbol == symbol]
    if not same:
        return None
    if len(same) == 1:
        return same[0]

    signed = sum(p.signed_quantity for p in same)
    if abs(signed) < 1e-9:
        return None

    total_qty = sum(p.quantity for p in same)
    entry = sum(p.avg_entry_price * p.quantity for p in same) / total_qty
    logger.info("Netting %d positions in %s into %.6f", len(same), symbol, signed)
    return BrokerPosition(
        symbol=symbol,
        side="long" if signed > 0 else "short",
        quantity=abs(signed),
        avg_entry_price=entry,
        current_price=same[-1].current_price,
        unrealized_pnl=sum(p.unrealized_pnl for p in same),
        market_value=sum(p.market_value for p in same),
    )


def positions_from_trades(trades: Iterable[dict]) -> list[BrokerPosition]:
    """Positions implied by locally recorded ``OPEN`` trades.

    Used when the brokerage cannot be reached for its position list.
    """
    positions: list[BrokerPosition] = []
    for t in trades:
        entry = float(t.get("entry_price") or 0)
        positions.append(
            BrokerPosition(
                symbol=t["symbol"],
                side=t["side"],
                quantity=float(t["quantity"]),
                avg_entry_price=entry,
                current_price=entry,
                unrealized_pnl=0.0,
            )
        )
    return positions


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Executor ─────────────────────────────────────────────────────────────


class PositionManager:
    """Carries out lifecycle transitions.

    Args:
        broker: An ``AlpacaClient`` (or duck-typed mock).
        trade_repo: Where trade records are written.
        events: Event bus for ``newTrade`` / ``tradeClosed``.
        clock: Timestamp source for trade records.
    """

    def __init__(
        self,
        broker,
        trade_repo: TradeRepo,
        events: EventBus,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._broker = broker
        self._trade_repo = trade_repo
        self._events = events
        self._clock = clock

    async def apply(
        self,
        report: AnalysisReport,
        position: Optional[BrokerPosition],
        config: TradingConfig,
        equity: float,
        history_prices: list[float],
    ) -> dict:
        """Decide and execute this cycle's transition for ``report.symbol``.

        Returns a result dict with at least ``action`` and ``reason``.
        """
        transition = decide_transition(position, report)
        result = {"action": transition.action, "reason": transition.reason}

        if transition.action == ACTION_HOLD:
            return result

        if transition.action == ACTION_OPEN:
            opened = await self.open_position(
                report.symbol, report.direction, report.confidence,
                equity, config, history_prices, report.price,
            )
            result["opened"] = opened
            return result

        if transition.action == ACTION_CLOSE_DANGER:
            logger.warning("%s: danger close (%s)", report.symbol, transition.reason)
            result["closed"] = await self.close_position(
                position, CLOSED_DANGER, report.price
            )
            return result

        # Reversal
        closed = await self.close_position(position, CLOSED_REVERSAL, report.price)
        result["closed"] = closed
        if closed is None:
            logger.warning("%s: reversal abandoned, close failed", report.symbol)
            result["opened"] = None
            return result

        equity = await self._refresh_equity(equity)
        result["opened"] = await self.open_position(
            report.symbol, report.direction, report.confidence,
            equity, config, history_prices, report.price,
        )
        return result

    # ── Open ─────────────────────────────────────────────────────────────

    async def open_position(
        self,
        symbol: str,
        direction: str,
        confidence: int,
        equity: float,
        config: TradingConfig,
        history_prices: list[float],
        fallback_price: float,
    ) -> Optional[dict]:
        """Size and submit a bracket order, then record the trade.

        Returns the recorded trade as a dict, or ``None`` when the open is
        skipped (bad sizing inputs or order rejection).
        """
        price = await self._entry_price(symbol, fallback_price)

        try:
            sizing = calculate_position_size(equity, price, confidence, config)
            levels = calculate_stop_loss_take_profit(history_prices, direction, price)
        except ValueError as exc:
            logger.warning("%s: open skipped, %s", symbol, exc)
            return None

        order = BracketOrderRequest(
            symbol=symbol,
            quantity=sizing.quantity,
            side="buy" if direction == BUY else "sell",
            stop_loss=levels.stop_loss,
            take_profit=levels.take_profit,
        )
        try:
            response = await self._broker.submit_bracket_order(order)
        except Exception as exc:
            logger.error("%s: order submission failed: %s", symbol, exc)
            return None

        side = "long" if direction == BUY else "short"
        entry_time = self._clock().isoformat()
        trade_id = self._trade_repo.save_trade(
            symbol=symbol,
            side=side,
            quantity=sizing.quantity,
            entry_price=price,
            stop_loss=levels.stop_loss,
            take_profit=levels.take_profit,
            entry_time=entry_time,
            confidence=confidence,
            order_id=response.order_id,
        )
        trade = {
            "id": trade_id,
            "symbol": symbol,
            "side": side,
            "quantity": sizing.quantity,
            "entry_price": price,
            "stop_loss": levels.stop_loss,
            "take_profit": levels.take_profit,
            "status": OPEN,
            "confidence": confidence,
            "order_id": response.order_id,
            "entry_time": entry_time,
        }
        logger.info(
            "%s: opened %s %.6f @ %.2f (SL %.2f, TP %.2f, conf %d%%)",
            symbol, side, sizing.quantity, price,
            levels.stop_loss, levels.take_profit, confidence,
        )
        self._events.publish(NEW_TRADE, trade)
        return trade

    async def _entry_price(self, symbol: str, fallback_price: float) -> float:
        """Quote midpoint, or *fallback_price* when no usable quote."""
        try:
            quote = await self._broker.get_latest_quote(symbol)
        except Exception as exc:
            logger.warning("%s: quote unavailable (%s), using last close", symbol, exc)
            return fallback_price
        return quote.mid if quote.mid > 0 else fallback_price

    async def _refresh_equity(self, equity: float) -> float:
        try:
            return await self._broker.get_account_equity()
        except Exception as exc:
            logger.warning("Equity refresh failed (%s), keeping %.2f", exc, equity)
            return equity

    # ── Close ────────────────────────────────────────────────────────────

    async def close_position(
        self,
        position: BrokerPosition,
        status: str,
        fallback_price: float,
    ) -> Optional[dict]:
        """Liquidate *position* and record the close.

        Returns the close record, or ``None`` if the brokerage refused.
        """
        symbol = position.symbol
        try:
            await self._broker.close_position(symbol)
        except PositionNotFoundError:
            logger.warning("%s: no brokerage position to close", symbol)
            return None
        except Exception as exc:
            logger.error("%s: close failed: %s", symbol, exc)
            return None

        exit_price = position.current_price if position.current_price > 0 else fallback_price
        pnl = round((exit_price - position.avg_entry_price) * position.signed_quantity, 2)
        exit_time = self._clock().isoformat()

        trade_id = self._trade_repo.close_trade(
            symbol=symbol,
            status=status,
            exit_price=exit_price,
            pnl=pnl,
            exit_time=exit_time,
            side=position.side,
            quantity=position.quantity,
            entry_price=position.avg_entry_price,
        )
        record = {
            "id": trade_id,
            "symbol": symbol,
            "side": position.side,
            "quantity": position.quantity,
            "entry_price": position.avg_entry_price,
            "exit_price": exit_price,
            "pnl": pnl,
            "status": status,
            "exit_time": exit_time,
        }
        logger.info("%s: closed %s (%s) P&L %.2f", symbol, position.side, status, pnl)
        self._events.publish(TRADE_CLOSED, record)
        return record
