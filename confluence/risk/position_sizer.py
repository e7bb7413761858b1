"""Position sizing — pure math, no I/O.

Scales both the capital at risk and the lot multiplier linearly with the
consensus confidence, then clamps the quantity to the configured lot bounds.
"""

from dataclasses import dataclass

from confluence.models.trading_config import TradingConfig


QUANTITY_PRECISION = 6


@dataclass(frozen=True)
class SizingResult:
    """Sizing breakdown for one prospective order."""

    risk_percent: float
    risk_amount: float
    lot_multiplier: float
    quantity: float


def risk_percent_for(confidence: float, config: TradingConfig) -> float:
    """Percent of equity to put at risk for *confidence* (0–100)."""
    span = config.max_risk_percent - config.min_risk_percent
    return config.min_risk_percent + span * (confidence / 100.0)


def lot_multiplier_for(confidence: float, config: TradingConfig) -> float:
    span = config.max_lot - config.min_lot
    return config.min_lot + span * (confidence / 100.0)


def calculate_position_size(
    equity: float,
    price: float,
    confidence: float,
    config: TradingConfig,
) -> SizingResult:
    """Calculate order quantity from equity, price and confidence.

    Formula::

        risk_percent   = min_risk + (max_risk − min_risk) × c/100
        risk_amount    = equity × risk_percent/100
        lot_multiplier = min_lot + (max_lot − min_lot) × c/100
        quantity       = clamp(risk_amount/price × lot_multiplier,
                               min_lot, max_lot)

    Quantity is rounded to six decimals after clamping.

    Raises:
        ValueError: If equity or price is non-positive.
    """
    if equity <= 0:
        raise ValueError(f"equity must be positive, got {equity}")
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")

    risk_percent = risk_percent_for(confidence, config)
    risk_amount = equity * risk_percent / 100.0
    lot_multiplier = lot_multiplier_for(confidence, config)

    raw = risk_amount / price * lot_multiplier
    quantity = min(config.max_lot, max(config.min_lot, raw))

    return SizingResult(
        risk_percent=risk_percent,
        risk_amount=risk_amount,
        lot_multiplier=lot_multiplier,
        quantity=round(quantity, QUANTITY_PRECISION),
    )
