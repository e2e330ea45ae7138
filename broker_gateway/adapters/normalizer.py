"""
Exchange Adapter - Bitso Response Normalization.

============================================================
PURPOSE
============================================================
Maps Bitso payload shapes into canonical records.

Every successful Bitso response is an envelope:
    {"success": true, "payload": ...}

Nothing returned from this module exposes the envelope or the
payload shape.

============================================================
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from ..types import (
    CancelResult,
    OrderFills,
    OrderState,
    OrderStatus,
    Pair,
    PortfolioEntry,
    Ticker,
    Trade,
)
from .errors import (
    create_fatal_error,
    create_market_not_found_error,
    create_unexpected_state_error,
)


logger = logging.getLogger(__name__)


# ============================================================
# STATUS MAPPING
# ============================================================

# Vendor-supplied vocabulary. Keys are lowercase; lookups are
# case-insensitive. Confirm against the live API before extending.
BITSO_STATUS_MAP: Dict[str, OrderState] = {
    "open": OrderState.OPEN,
    "queued": OrderState.OPEN,
    "partial-fill": OrderState.PARTIALLY_FILLED,
    "partially filled": OrderState.PARTIALLY_FILLED,
    "completed": OrderState.FILLED,
    "closed": OrderState.FILLED,
    "cancelled": OrderState.CANCELLED,
    "rejected": OrderState.CANCELLED,
    "expired": OrderState.CANCELLED,
}


# ============================================================
# VALUE PARSING
# ============================================================

TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)


def parse_decimal(value: Any, default: Optional[Decimal] = None) -> Decimal:
    """
    Parse a numeric string.

    Missing, malformed or NaN values give `default` (zero if unset).
    """
    fallback = default if default is not None else Decimal("0")
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return fallback
    if not number.is_finite():
        return fallback
    return number


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a Bitso timestamp (e.g., "2016-04-08T17:52:31.000+0000").

    Naive timestamps are taken as UTC. Epoch numbers are accepted.
    """
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    if isinstance(value, str):
        for fmt in TIMESTAMP_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed

    raise create_fatal_error(f"Unparseable timestamp: {value!r}")


def to_unix(value: Any) -> int:
    """Timestamp to unix seconds."""
    return int(parse_timestamp(value).timestamp())


def _payload(body: Any) -> Any:
    if isinstance(body, Mapping):
        return body.get("payload")
    return None


# ============================================================
# NORMALIZER
# ============================================================

class BitsoNormalizer:
    """
    Per-endpoint payload normalization for one pair.
    """

    def __init__(
        self,
        pair: Pair,
        status_map: Optional[Mapping[str, OrderState]] = None,
    ):
        self._pair = pair
        self._status_map = {
            key.lower(): state
            for key, state in (status_map or BITSO_STATUS_MAP).items()
        }

    @property
    def pair(self) -> Pair:
        return self._pair

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    def trades(self, body: Any, descending: bool = False) -> List[Trade]:
        """Public trades, ascending unless `descending`."""
        parsed = [
            Trade(
                tid=str(item.get("tid")),
                timestamp=to_unix(item.get("created_at")),
                price=parse_decimal(item.get("price")),
                amount=parse_decimal(item.get("amount")),
            )
            for item in (_payload(body) or [])
        ]

        if descending:
            parsed.reverse()
        return parsed

    def ticker(self, body: Any) -> Ticker:
        payload = _payload(body)

        if isinstance(payload, list):
            payload = next(
                (item for item in payload if item.get("book") == self._pair.book),
                None,
            )

        if not payload:
            raise create_market_not_found_error(self._pair.book, operation="get_ticker")

        return Ticker(
            ask=parse_decimal(payload.get("ask")),
            bid=parse_decimal(payload.get("bid")),
        )

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    def portfolio(self, body: Any) -> List[PortfolioEntry]:
        """
        Available balances of the pair's asset and currency.

        A missing entry or an unparseable amount gives zero.
        """
        balances = (_payload(body) or {}).get("balances") or []

        def available(code: str) -> Decimal:
            entry = next(
                (
                    item for item in balances
                    if str(item.get("currency", "")).lower() == code.lower()
                ),
                None,
            )
            if entry is None:
                logger.debug(f"No balance entry for {code}, using 0")
                return Decimal("0")
            return parse_decimal(entry.get("available"))

        return [
            PortfolioEntry(name=self._pair.asset, amount=available(self._pair.asset)),
            PortfolioEntry(name=self._pair.currency, amount=available(self._pair.currency)),
        ]

    def fee(self, body: Any) -> Decimal:
        """
        Maker fee for the pair as a decimal fraction.

        Bitso reports `maker_fee_decimal` directly, no basis points.
        """
        fees = (_payload(body) or {}).get("fees") or []
        entry = next((item for item in fees if item.get("book") == self._pair.book), None)

        if entry is None:
            raise create_market_not_found_error(self._pair.book, operation="get_fee")

        return parse_decimal(entry.get("maker_fee_decimal"))

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    def order_id(self, body: Any) -> str:
        payload = _payload(body) or {}
        oid = payload.get("oid")
        if not oid:
            raise create_fatal_error("Order placement returned no order id", "place_order")
        return str(oid)

    def aggregate_fills(
        self,
        body: Any,
        order_id: str,
        fee_percent: Optional[Decimal] = None,
    ) -> Optional[OrderFills]:
        """
        Aggregate the fills of one order.

        Returns None when no fill matches the order id.
        """
        # The API returns the oid as a string after creating.
        trades = [
            item for item in (_payload(body) or [])
            if str(item.get("oid")) == str(order_id)
        ]

        if not trades:
            return None

        volume = Decimal("0")
        notional = Decimal("0")
        net_amount = Decimal("0")
        fees: Dict[str, Decimal] = {}
        date = None

        for trade in trades:
            major = abs(parse_decimal(trade.get("major")))
            price = parse_decimal(trade.get("price"))

            # Average price is weighted by absolute volume, not by the
            # signed amount, so it stays defined when buys and sells net out.
            volume += major
            notional += price * major
            net_amount += major if trade.get("side") == "buy" else -major

            if trade.get("created_at") is not None:
                date = parse_timestamp(trade["created_at"])

            currency = trade.get("fees_currency")
            if currency:
                fees[currency] = fees.get(currency, Decimal("0")) + parse_decimal(
                    trade.get("fees_amount")
                )

        return OrderFills(
            order_id=str(order_id),
            price=notional / volume if volume else Decimal("0"),
            amount=net_amount,
            date=date,
            fees=fees,
            fee_percent=fee_percent,
        )

    def order_status(self, body: Any, order_id: str) -> OrderStatus:
        """
        Map an order lookup to a canonical state.

        Raises:
            ExchangeException: UNEXPECTED_STATE for unknown statuses
        """
        payload = _payload(body)
        if isinstance(payload, list):
            payload = payload[0] if payload else None

        if not payload:
            raise create_fatal_error(f"Order {order_id} lookup returned no data", "check_order")

        raw_status = payload.get("status")
        state = self._status_map.get(str(raw_status).lower())

        if state is None:
            logger.error(f"Unexpected status {raw_status!r} for order {order_id}")
            raise create_unexpected_state_error(raw_status, order_id)

        filled_amount = None
        if state in (OrderState.OPEN, OrderState.PARTIALLY_FILLED):
            filled_amount = (
                parse_decimal(payload.get("original_amount"))
                - parse_decimal(payload.get("unfilled_amount"))
            )

        return OrderStatus(
            order_id=str(order_id),
            state=state,
            raw_status=str(raw_status),
            filled_amount=filled_amount,
        )

    def cancel_result(self, body: Any, order_id: str) -> CancelResult:
        """
        Cancel outcome.

        `filled` is True when the order executed before the cancel
        applied (synthesized by the classifier as {"filled": True}).
        """
        if isinstance(body, Mapping) and body.get("filled"):
            return CancelResult(order_id=str(order_id), filled=True)

        payload = _payload(body)
        filled = isinstance(payload, Mapping) and bool(payload.get("filled"))
        return CancelResult(order_id=str(order_id), filled=filled)
