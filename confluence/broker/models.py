"""Broker data models — typed representations of Alpaca v2 API objects."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AccountSummary:
    """Summary of an Alpaca account."""

    account_id: str
    equity: float
    cash: float
    buying_power: float
    status: str
    currency: str = "USD"


@dataclass(frozen=True)
class Quote:
    """Latest top-of-book quote."""

    symbol: str
    bid: float
    ask: float

    @property
    def mid(self) -> float:
        """Midpoint, or whichever side is quoted when the other is zero."""
        if self.bid > 0 and self.ask > 0:
            return (self.bid + self.ask) / 2
        return max(self.bid, self.ask)


@dataclass(frozen=True)
class BracketOrderRequest:
    """A market entry with attached stop-loss and take-profit legs."""

    symbol: str
    quantity: float
    side: str  # "buy" or "sell"
    stop_loss: float
    take_profit: float


@dataclass(frozen=True)
class OrderResponse:
    """Response from submitting an order."""

    order_id: str
    symbol: str
    quantity: float
    side: str
    status: str
    submitted_at: str = ""


@dataclass(frozen=True)
class BrokerPosition:
    """An open position as reported by the brokerage."""

    symbol: str
    side: str  # "long" or "short"
    quantity: float  # always positive
    avg_entry_price: float
    current_price: float
    unrealized_pnl: float
    market_value: float = 0.0

    @property
    def signed_quantity(self) -> float:
        return self.quantity if self.side == "long" else -self.quantity
