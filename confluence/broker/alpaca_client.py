"""Alpaca v2 REST API async client.

Handles all communication with Alpaca: bar fetching, quotes, account
queries, bracket order placement, and position management.
"""

import asyncio
import logging
from typing import Optional

import httpx

from confluence.analysis.models import Bar
from confluence.broker.models import (
    AccountSummary,
    BracketOrderRequest,
    BrokerPosition,
    OrderResponse,
    Quote,
)
from confluence.config import Config

logger = logging.getLogger("confluence")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


class PositionNotFoundError(LookupError):
    """Raised when closing a position the brokerage does not hold."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"position does not exist: {symbol}")
        self.symbol = symbol


class AlpacaClient:
    """Async client wrapping the Alpaca trading and market-data REST APIs."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.trading_base_url
        self._data_url = config.alpaca_data_url
        self._headers = {
            "APCA-API-KEY-ID": config.alpaca_api_key,
            "APCA-API-SECRET-KEY": config.alpaca_api_secret,
            "Content-Type": "application/json",
        }

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Non-retryable errors are raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=self._headers,
                        timeout=30.0,
                        **kwargs,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = _RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        "Alpaca %s %s returned %d, retry %d/%d in %.1fs",
                        method.upper(), url, resp.status_code,
                        attempt + 1, _MAX_RETRIES, delay,
                    )
                    await asyncio.sleep(delay)
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Alpaca %s %s transport error (%s), retry %d/%d in %.1fs",
                    method.upper(), url, exc,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        # All retries exhausted
        raise last_exc  # type: ignore[misc]

    # ── Market data ──────────────────────────────────────────────────────

    async def get_bars(
        self,
        symbol: str,
        timeframe: str = "5Min",
        limit: int = 250,
    ) -> list[Bar]:
        """Fetch the most recent bars for *symbol*.

        Args:
            symbol: e.g. ``"AAPL"``
            timeframe: e.g. ``"5Min"``, ``"1Hour"``, ``"1Day"``
            limit: maximum number of bars to return

        Returns:
            List of ``Bar`` objects ordered oldest-first.  May be shorter
            than *limit*.
        """
        url = f"{self._data_url}/v2/stocks/{symbol}/bars"
        params = {
            "timeframe": timeframe,
            "limit": limit,
            "sort": "desc",  # newest first so the limit keeps the latest bars
        }

        resp = await self._request_with_retry("get", url, params=params)

        bars: list[Bar] = []
        for b in resp.json().get("bars") or []:
            bars.append(
                Bar(
                    timestamp=b["t"],
                    open=float(b["o"]),
                    high=float(b["h"]),
                    low=float(b["l"]),
                    close=float(b["c"]),
                    volume=float(b["v"]),
                )
            )
        bars.sort(key=lambda bar: bar.timestamp)
        return bars

    async def get_latest_quote(self, symbol: str) -> Quote:
        """Return the latest bid/ask for *symbol*."""
        url = f"{self._data_url}/v2/stocks/{symbol}/quotes/latest"

        resp = await self._request_with_retry("get", url)

        quote = resp.json()["quote"]
        return Quote(
            symbol=symbol,
            bid=float(quote.get("bp", 0)),
            ask=float(quote.get("ap", 0)),
        )

    # ── Account ──────────────────────────────────────────────────────────

    async def get_account_summary(self) -> AccountSummary:
        """Query Alpaca for equity, cash and buying power."""
        url = f"{self._base_url}/v2/account"

        resp = await self._request_with_retry("get", url)

        acct = resp.json()
        return AccountSummary(
            account_id=acct["id"],
            equity=float(acct["equity"]),
            cash=float(acct["cash"]),
            buying_power=float(acct.get("buying_power", 0)),
            status=acct.get("status", ""),
            currency=acct.get("currency", "USD"),
        )

    async def get_account_equity(self) -> float:
        summary = await self.get_account_summary()
        return summary.equity

    # ── Orders ───────────────────────────────────────────────────────────

    async def submit_bracket_order(self, order: BracketOrderRequest) -> OrderResponse:
        """Place a market order with stop-loss and take-profit legs.

        Args:
            order: ``BracketOrderRequest`` with symbol, quantity, side, SL
                and TP.

        Returns:
            ``OrderResponse`` with the accepted order details.
        """
        url = f"{self._base_url}/v2/orders"
        body = {
            "symbol": order.symbol,
            "qty": f"{order.quantity:.6f}".rstrip("0").rstrip("."),
            "side": order.side,
            "type": "market",
            "time_in_force": "gtc",
            "order_class": "bracket",
            "take_profit": {"limit_price": f"{order.take_profit:.2f}"},
            "stop_loss": {"stop_price": f"{order.stop_loss:.2f}"},
        }

        resp = await self._request_with_retry("post", url, json=body)

        data = resp.json()
        return OrderResponse(
            order_id=data["id"],
            symbol=data.get("symbol", order.symbol),
            quantity=float(data.get("qty") or order.quantity),
            side=data.get("side", order.side),
            status=data.get("status", ""),
            submitted_at=data.get("submitted_at") or "",
        )

    # ── Positions ────────────────────────────────────────────────────────

    async def get_open_positions(self) -> list[BrokerPosition]:
        """Return all open positions on the account."""
        url = f"{self._base_url}/v2/positions"

        resp = await self._request_with_retry("get", url)

        positions: list[BrokerPosition] = []
        for p in resp.json():
            positions.append(
                BrokerPosition(
                    symbol=p["symbol"],
                    side=p.get("side", "long"),
                    quantity=abs(float(p["qty"])),
                    avg_entry_price=float(p["avg_entry_price"]),
                    current_price=float(p.get("current_price") or 0),
                    unrealized_pnl=float(p.get("unrealized_pl") or 0),
                    market_value=float(p.get("market_value") or 0),
                )
            )
        return positions

    async def close_position(self, symbol: str) -> dict:
        """Liquidate the whole position in *symbol*.

        Returns the raw Alpaca order dict.

        Raises:
            PositionNotFoundError: If the account holds no such position.
        """
        url = f"{self._base_url}/v2/positions/{symbol}"

        try:
            resp = await self._request_with_retry("delete", url)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise PositionNotFoundError(symbol) from exc
            raise

        return resp.json()
