"""
Exchange Adapter - Bitso.

============================================================
PURPOSE
============================================================
Bitso REST API v3 adapter for a generic order-execution broker.

FLOW:
    operation -> transport -> (failure -> classifier -> retry)
              -> normalizer -> canonical record

SAFETY FEATURES:
- Classified, bounded retries on every request
- Truncating rounding (never exceeds balance or price limits)
- Order dispatch delay before every placement attempt
- Unknown order states are fatal, never silently mapped

============================================================
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import AdapterConfig
from ..markets import MarketCatalog, load_bitso_markets
from ..precision import MarketPrecision, format_plain
from ..types import (
    CancelResult,
    ExchangeCapabilities,
    FillLookupResult,
    FillLookupState,
    MarketConstraints,
    OrderSide,
    OrderState,
    OrderStatus,
    Pair,
    PortfolioEntry,
    Ticker,
    Trade,
)
from .base import ExchangeAdapter, Number
from .errors import (
    ErrorClassifier,
    ExchangeException,
    TransportError,
    create_fatal_error,
    create_market_not_found_error,
    error_from_envelope,
)
from .logging_utils import AdapterLogger
from .normalizer import BitsoNormalizer
from .retry import retry_call
from .transport import BitsoTransport, Transport


logger = logging.getLogger(__name__)


class BitsoAdapter(ExchangeAdapter):
    """
    Bitso exchange adapter for one pair.

    Public data works without credentials; private operations
    require `api_key` and `api_secret`.
    """

    NAME = "Bitso"
    SLUG = "bitso"

    DEFAULT_FEE = Decimal("0.005")
    """Used until `get_fee` returns the account's maker fee."""

    TRADES_LIMIT = 100

    def __init__(
        self,
        config: AdapterConfig,
        transport: Optional[Transport] = None,
        catalog: Optional[MarketCatalog] = None,
        classifier: Optional[ErrorClassifier] = None,
        status_map: Optional[Dict[str, OrderState]] = None,
    ):
        """
        Initialize Bitso adapter.

        Args:
            config: Adapter configuration
            transport: Request transport (BitsoTransport by default)
            catalog: Market metadata (bundled Bitso table by default)
            classifier: Error classifier (Bitso rules by default)
            status_map: Order status vocabulary override
        """
        self._config = config
        self._pair = config.pair
        self._log = AdapterLogger(self.SLUG)

        self._catalog = catalog or load_bitso_markets()
        self._constraints = self._catalog.find(self._pair)
        if self._constraints is None:
            logger.warning(f"No market metadata for {self._pair.book}")
        self._precision = MarketPrecision(self._constraints) if self._constraints else None

        self._transport = transport or BitsoTransport(
            rest_url=config.rest_url,
            credentials=config.credentials,
            timeout_seconds=config.request_timeout_seconds,
            adapter_logger=self._log,
        )
        self._classifier = classifier or ErrorClassifier(exchange_id=self.SLUG)
        self._normalizer = BitsoNormalizer(self._pair, status_map)

        self._fee: Optional[Decimal] = self.DEFAULT_FEE if config.has_credentials else None

        # Diagnostics only
        self._last_order_id: Optional[str] = None

    @property
    def exchange_id(self) -> str:
        return self.SLUG

    @property
    def pair(self) -> Pair:
        return self._pair

    @property
    def constraints(self) -> Optional[MarketConstraints]:
        return self._constraints

    @property
    def fee(self) -> Optional[Decimal]:
        """Last known maker fee rate."""
        return self._fee

    @property
    def last_order_id(self) -> Optional[str]:
        return self._last_order_id

    @property
    def is_authenticated(self) -> bool:
        return self._config.has_credentials

    @classmethod
    def get_capabilities(cls) -> ExchangeCapabilities:
        catalog = load_bitso_markets()
        return ExchangeCapabilities(
            name=cls.NAME,
            slug=cls.SLUG,
            currencies=catalog.currencies,
            assets=catalog.assets,
            markets=catalog.markets,
            requires=["key", "secret"],
            tid="tid",
            tradable=True,
            broker_version=0.6,
            limited_cancel_confirmation=True,
        )

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Open the transport; refresh the fee when authenticated."""
        await self._transport.connect()
        logger.info(f"Connected to {self.NAME} ({self._pair.book})")

        if self.is_authenticated:
            try:
                await self.get_fee()
            except ExchangeException as e:
                logger.warning(f"Fee lookup failed, keeping {self._fee}: {e}")

    async def disconnect(self) -> None:
        await self._transport.disconnect()
        logger.info(f"Disconnected from {self.NAME}")

    async def __aenter__(self) -> "BitsoAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    async def get_ticker(self) -> Ticker:
        if self._constraints is None:
            raise create_market_not_found_error(self._pair.book, operation="get_ticker")
        body = await self._request("get_ticker", "ticker", {"book": self._pair.book})
        return self._normalizer.ticker(body)

    async def get_trades(
        self,
        since: Optional[datetime] = None,
        descending: bool = False,
    ) -> List[Trade]:
        """
        Recent public trades.

        With `since`, the most recent page is fetched and trades
        older than `since` are dropped.
        """
        params: Dict[str, Any] = {"book": self._pair.book}
        if since is not None:
            params["limit"] = self.TRADES_LIMIT

        body = await self._request("get_trades", "trades", params)
        trades = self._normalizer.trades(body, descending=descending)

        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            cutoff = int(since.timestamp())
            trades = [t for t in trades if t.timestamp >= cutoff]

        return trades

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def get_portfolio(self) -> List[PortfolioEntry]:
        self._require_credentials("get_portfolio")
        body = await self._request("get_portfolio", "balance")
        return self._normalizer.portfolio(body)

    async def get_fee(self) -> Decimal:
        self._require_credentials("get_fee")
        body = await self._request("get_fee", "fees")
        self._fee = self._normalizer.fee(body)
        logger.debug(f"{self._pair.book} maker fee: {self._fee}")
        return self._fee

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def place_order(
        self,
        side: Union[OrderSide, str],
        amount: Number,
        price: Number,
    ) -> str:
        """
        Place a limit order.

        Each attempt waits `order_dispatch_delay_seconds` before it
        is sent.
        """
        self._require_credentials("place_order")
        try:
            side = OrderSide(side.value if isinstance(side, OrderSide) else str(side).lower())
        except ValueError:
            raise create_fatal_error(f"Invalid order side: {side!r}", "place_order")

        params = {
            "book": self._pair.book,
            "side": side.value,
            "type": "limit",
            "major": format_plain(amount),
            "price": format_plain(price),
        }

        try:
            body = await self._request(
                "place_order",
                "orders",
                params,
                method="POST",
                delay_seconds=self._config.timeouts.order_dispatch_delay_seconds,
            )
        except ExchangeException as e:
            self._log.log_order(
                "place", book=self._pair.book, side=side.value,
                amount=params["major"], price=params["price"], error_message=str(e),
            )
            raise

        order_id = self._normalizer.order_id(body)
        self._log.log_order(
            "place", book=self._pair.book, order_id=order_id, side=side.value,
            amount=params["major"], price=params["price"],
        )
        return order_id

    async def get_order_fills(self, order_id: str) -> FillLookupResult:
        """
        Aggregate the account's fills for one order.

        When no fill matches, the order itself is looked up once.
        NOT_FOUND is only returned for a cancelled order; anything
        else means fills may still appear.
        """
        self._require_credentials("get_order_fills")
        body = await self._request("get_order_fills", "user_trades", {"book": self._pair.book})

        fills = self._normalizer.aggregate_fills(body, order_id, fee_percent=self._fee)
        if fills is not None:
            return FillLookupResult(order_id=str(order_id), state=FillLookupState.FOUND, fills=fills)

        listed = [str(t.get("oid")) for t in (body.get("payload") or [])]
        logger.warning(f"Cannot find trades for order {order_id}, got: {list(reversed(listed))}")

        state = await self._diagnose_missing_fills(order_id)
        return FillLookupResult(order_id=str(order_id), state=state)

    async def check_order_status(self, order_id: str) -> OrderStatus:
        self._require_credentials("check_order")
        self._last_order_id = str(order_id)

        body = await self._request(
            "check_order",
            "orders/:oid:",
            {"oid": order_id},
            validate=_require_order_payload,
        )
        status = self._normalizer.order_status(body, order_id)
        self._log.log_order(
            "check", book=self._pair.book, order_id=str(order_id), status=status.state.value,
        )
        return status

    async def cancel_order(self, order_id: str) -> CancelResult:
        """
        Cancel one order.

        `filled=True` means the order executed in full before the
        cancel applied; it was NOT cancelled.
        """
        self._require_credentials("cancel_order")
        self._last_order_id = str(order_id)

        body = await self._request("cancel_order", "orders/:oid:", {"oid": order_id}, method="DELETE")
        result = self._normalizer.cancel_result(body, order_id)
        self._log.log_order(
            "cancel", book=self._pair.book, order_id=str(order_id),
            status="FILLED" if result.filled else "CANCELLED",
        )
        return result

    # --------------------------------------------------------
    # PRECISION
    # --------------------------------------------------------

    def _market_precision(self) -> MarketPrecision:
        if self._precision is None:
            raise create_market_not_found_error(self._pair.book)
        return self._precision

    def round_amount(self, amount: Number) -> Decimal:
        return self._market_precision().round_amount(amount)

    def round_price(self, price: Number) -> Decimal:
        return self._market_precision().round_price(price)

    def is_valid_price(self, price: Number) -> bool:
        return self._market_precision().is_valid_price(price)

    def is_valid_lot(self, price: Number, amount: Number) -> bool:
        return self._market_precision().is_valid_lot(price, amount)

    def outbid_price(self, price: Number, is_up: bool) -> Decimal:
        return self._market_precision().outbid_price(price, is_up)

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    def _require_credentials(self, operation: str) -> None:
        if not self.is_authenticated:
            raise create_fatal_error(
                f"{operation} requires API credentials (key, secret)", operation,
            )

    async def _request(
        self,
        operation: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        delay_seconds: float = 0,
        validate: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        """
        One logical request with classified retries.

        Envelope errors and `validate` failures are raised inside the
        attempt so the classifier sees them.
        """
        async def attempt() -> Any:
            if delay_seconds:
                await asyncio.sleep(delay_seconds)

            body = await self._transport.invoke(endpoint, dict(params or {}), method)

            envelope_error = error_from_envelope(body)
            if envelope_error is not None:
                raise envelope_error
            if validate is not None:
                validate(body)
            return body

        return await retry_call(
            attempt,
            lambda error: self._classifier.classify(operation, error),
            self._config.retry,
            name=f"{self.SLUG}.{operation}",
        )

    async def _diagnose_missing_fills(self, order_id: str) -> FillLookupState:
        """
        Single order lookup, no retries.

        Only a closed order without fills is NOT_FOUND; a missing or
        empty lookup means the exchange has not caught up yet.
        """
        try:
            body = await self._transport.invoke("orders/:oid:", {"oid": order_id}, "GET")
            envelope_error = error_from_envelope(body)
            if envelope_error is not None:
                raise envelope_error
            _require_order_payload(body)
        except TransportError as e:
            logger.warning(f"Order {order_id} not visible on {self.NAME} yet: {e.message}")
            return FillLookupState.NOT_YET_VISIBLE

        status = self._normalizer.order_status(body, order_id)
        logger.info(f"No trades yet for order {order_id}, order is {status.raw_status}")

        if status.state == OrderState.CANCELLED:
            return FillLookupState.NOT_FOUND
        return FillLookupState.NOT_YET_VISIBLE


def _require_order_payload(body: Any) -> None:
    """An empty order lookup means the order is not visible yet."""
    payload = body.get("payload") if isinstance(body, dict) else None
    if not payload:
        raise TransportError("Order does not exist.", payload=body)
