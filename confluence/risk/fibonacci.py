"""Stop-loss and take-profit from Fibonacci geometry — pure math, no I/O.

Levels are built over recent analysis prices with the trade direction as
the trend.  Support is the level nearest below the current price, resistance
the level nearest above it; a BUY stops at support and targets resistance,
a SELL the reverse.
"""

from dataclasses import dataclass
from typing import Sequence

from confluence.analysis.fibonacci import extension_levels, retracement_levels
from confluence.analysis.models import BUY, SELL


PRICE_PRECISION = 2
HISTORY_WINDOW = 20

# Fallback distances when no level sits on the required side
_BUY_STOP = 0.98
_BUY_TARGET = 1.05
_SELL_STOP = 1.02
_SELL_TARGET = 0.95


@dataclass(frozen=True)
class FibonacciZones:
    """Support/resistance around the current price."""

    support: float
    resistance: float
    levels: dict[str, float]
    extensions: dict[str, float]
    trend: str  # "up" or "down"


@dataclass(frozen=True)
class RiskLevels:
    """Computed stop-loss and take-profit for a trade."""

    stop_loss: float
    take_profit: float
    stop_source: str  # "fibonacci" or "fallback"
    target_source: str


def calculate_fibonacci_zones(prices: Sequence[float], is_uptrend: bool) -> FibonacciZones:
    """Find the Fibonacci support and resistance nearest the last price.

    Candidates are the retracement and extension levels over the price
    range.  Support defaults to the range low and resistance to the range
    high when no level lies strictly on that side.

    Raises ``ValueError`` if *prices* is empty.
    """
    if not prices:
        raise ValueError("Need at least one price for Fibonacci levels")

    high = max(prices)
    low = min(prices)
    current = prices[-1]

    retracements = retracement_levels(high, low, is_uptrend)
    extensions = extension_levels(high, low, is_uptrend)

    support, support_gap = low, abs(current - low)
    resistance, resistance_gap = high, abs(high - current)

    for level in retracements + extensions:
        gap = abs(current - level.price)
        if level.price < current and gap < support_gap:
            support, support_gap = level.price, gap
        elif level.price > current and gap < resistance_gap:
            resistance, resistance_gap = level.price, gap

    return FibonacciZones(
        support=support,
        resistance=resistance,
        levels={lv.name: lv.price for lv in retracements},
        extensions={lv.name: lv.price for lv in extensions},
        trend="up" if is_uptrend else "down",
    )


def calculate_stop_loss_take_profit(
    history_prices: Sequence[float],
    direction: str,
    price: float,
) -> RiskLevels:
    """Bracket levels for a *direction* entry at *price*.

    Uses the last ``HISTORY_WINDOW`` analysis prices.  A stop or target
    that would not sit on the correct side of *price* falls back to a
    fixed percentage (BUY 2% / 5%, SELL 2% / 5%).  Prices are rounded to
    two decimals.

    Raises ``ValueError`` for a NEUTRAL direction.
    """
    if direction not in (BUY, SELL):
        raise ValueError(f"direction must be BUY or SELL, got '{direction}'")

    window = list(history_prices)[-HISTORY_WINDOW:] or [price]
    zones = calculate_fibonacci_zones(window, is_uptrend=(direction == BUY))

    if direction == BUY:
        stop, stop_source = zones.support, "fibonacci"
        if not stop < price:
            stop, stop_source = price * _BUY_STOP, "fallback"
        target, target_source = zones.resistance, "fibonacci"
        if not target > price:
            target, target_source = price * _BUY_TARGET, "fallback"
    else:
        stop, stop_source = zones.resistance, "fibonacci"
        if not stop > price:
            stop, stop_source = price * _SELL_STOP, "fallback"
        target, target_source = zones.support, "fibonacci"
        if not target < price:
            target, target_source = price * _SELL_TARGET, "fallback"

    return RiskLevels(
        stop_loss=round(stop, PRICE_PRECISION),
        take_profit=round(target, PRICE_PRECISION),
        stop_source=stop_source,
        target_source=target_source,
    )
