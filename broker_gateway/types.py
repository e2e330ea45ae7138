"""
Broker Gateway - Types.

============================================================
PURPOSE
============================================================
Canonical records produced by exchange adapters.

CRITICAL PRINCIPLE:
    "Raw exchange payload shapes never leave the adapter."
    Callers only ever see the types defined here.

============================================================
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum
from decimal import Decimal


# ============================================================
# MARKET IDENTIFIERS
# ============================================================

@dataclass(frozen=True)
class Pair:
    """
    A tradable two-asset market, e.g. BTC priced in MXN.

    Codes are stored uppercase; the wire-level key is the lowercase
    `book` identifier.
    """

    asset: str
    """Traded asset code (e.g., BTC)."""

    currency: str
    """Quote currency code (e.g., MXN)."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "asset", self.asset.upper())
        object.__setattr__(self, "currency", self.currency.upper())

    @property
    def book(self) -> str:
        """Wire-level market key."""
        return f"{self.asset.lower()}_{self.currency.lower()}"

    def __str__(self) -> str:
        return f"{self.asset}/{self.currency}"


@dataclass(frozen=True)
class MarketConstraints:
    """Per-pair precision and minimum order constraints."""

    pair: Pair

    min_price: Decimal
    """Minimum price increment (tick size)."""

    min_amount: Decimal
    """Minimum amount increment."""

    min_order: Decimal
    """Minimum notional order value (price * amount)."""


@dataclass(frozen=True)
class Credentials:
    """API credentials for private operations."""

    key: str
    secret: str

    def __repr__(self) -> str:
        # Never render the secret
        return f"Credentials(key={self.key[:4]}...)"


# ============================================================
# ORDER TYPES
# ============================================================

class OrderSide(Enum):
    """Order side as sent on the wire."""

    BUY = "buy"
    SELL = "sell"


class OrderState(Enum):
    """
    Canonical order state.

    Derived per request from the exchange status string. There is
    no persisted state machine.
    """

    OPEN = "OPEN"
    """Resting on the book, nothing filled."""

    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    """Resting on the book, some amount filled."""

    FILLED = "FILLED"
    """Fully executed."""

    CANCELLED = "CANCELLED"
    """Cancelled, rejected or expired."""


class FillLookupState(Enum):
    """Outcome of a fill lookup for one order."""

    FOUND = "FOUND"
    """Fills were found and aggregated."""

    NOT_YET_VISIBLE = "NOT_YET_VISIBLE"
    """Order exists but fills are not visible yet. Retry later."""

    NOT_FOUND = "NOT_FOUND"
    """The exchange does not know the order."""


# ============================================================
# MARKET DATA RECORDS
# ============================================================

@dataclass(frozen=True)
class Ticker:
    """Best ask/bid."""

    ask: Decimal
    bid: Decimal


@dataclass(frozen=True)
class Trade:
    """Public trade record."""

    tid: str
    timestamp: int
    """Unix seconds."""

    price: Decimal
    amount: Decimal


@dataclass(frozen=True)
class PortfolioEntry:
    """Available balance of one asset."""

    name: str
    amount: Decimal = Decimal("0")


# ============================================================
# ORDER RECORDS
# ============================================================

@dataclass
class OrderStatus:
    """Normalized order status."""

    order_id: str
    state: OrderState
    raw_status: str
    filled_amount: Optional[Decimal] = None
    """Only reported for orders still on the book."""

    @property
    def open(self) -> bool:
        return self.state in (OrderState.OPEN, OrderState.PARTIALLY_FILLED)

    @property
    def executed(self) -> bool:
        return self.state == OrderState.FILLED


@dataclass
class OrderFills:
    """Aggregate of all fills belonging to one order."""

    order_id: str
    price: Decimal
    """Volume-weighted average fill price."""

    amount: Decimal
    """Net signed amount: buys positive, sells negative."""

    date: Optional[datetime] = None
    """Timestamp of the last fill."""

    fees: Dict[str, Decimal] = field(default_factory=dict)
    """Fee totals keyed by fee currency."""

    fee_percent: Optional[Decimal] = None
    """Maker fee rate known to the adapter at lookup time."""


@dataclass
class FillLookupResult:
    """Tri-state result of `get_order_fills`."""

    order_id: str
    state: FillLookupState
    fills: Optional[OrderFills] = None

    @property
    def found(self) -> bool:
        return self.state == FillLookupState.FOUND


@dataclass
class CancelResult:
    """Result of a cancel request."""

    order_id: str
    filled: bool = False
    """True when the order filled before the cancel could apply."""

    def to_dict(self) -> Dict[str, Any]:
        return {"order_id": self.order_id, "filled": self.filled}


# ============================================================
# CAPABILITIES
# ============================================================

@dataclass
class MarketInfo:
    """One entry of the capability descriptor's market list."""

    pair: List[str]
    """[currency, asset] as listed by the metadata table."""

    minimal_order: Dict[str, Decimal]
    """Keys: amount, price, order."""


@dataclass
class ExchangeCapabilities:
    """Static description of what an adapter supports."""

    name: str
    slug: str
    currencies: List[str]
    assets: List[str]
    markets: List[MarketInfo]
    requires: List[str]
    tid: str = "tid"
    tradable: bool = True
    broker_version: float = 0.6
    limited_cancel_confirmation: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "slug": self.slug,
            "currencies": list(self.currencies),
            "assets": list(self.assets),
            "markets": [
                {
                    "pair": list(m.pair),
                    "minimalOrder": {k: format(v, "f") for k, v in m.minimal_order.items()},
                }
                for m in self.markets
            ],
            "requires": list(self.requires),
            "tid": self.tid,
            "tradable": self.tradable,
            "brokerVersion": self.broker_version,
            "limitedCancelConfirmation": self.limited_cancel_confirmation,
        }
