"""
Exchange Adapter - Base Interface.

============================================================
PURPOSE
============================================================
Exchange-agnostic capability interface consumed by a generic
order-execution broker.

DESIGN PRINCIPLES:
- Canonical records in, canonical records out
- Every failure surfaces as ExchangeException
- Fully testable with a scripted transport

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from ..types import (
    CancelResult,
    ExchangeCapabilities,
    FillLookupResult,
    OrderSide,
    OrderStatus,
    PortfolioEntry,
    Ticker,
    Trade,
)


Number = Union[Decimal, int, float, str]


class ExchangeAdapter(ABC):
    """
    Abstract interface for exchange adapters.

    Implementations:
    - BitsoAdapter: Bitso REST API v3
    """

    @property
    @abstractmethod
    def exchange_id(self) -> str:
        """Get exchange identifier."""
        pass

    @classmethod
    @abstractmethod
    def get_capabilities(cls) -> ExchangeCapabilities:
        """Static capability descriptor."""
        pass

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None:
        """Open the transport and load private state if authenticated."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the transport."""
        pass

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    @abstractmethod
    async def get_ticker(self) -> Ticker:
        """
        Best ask/bid for the adapter's pair.

        Raises:
            ExchangeException: MARKET_NOT_FOUND if the pair is not listed
        """
        pass

    @abstractmethod
    async def get_trades(
        self,
        since: Optional[datetime] = None,
        descending: bool = False,
    ) -> List[Trade]:
        """Recent public trades."""
        pass

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    @abstractmethod
    async def get_portfolio(self) -> List[PortfolioEntry]:
        """Available balances: [asset, currency]."""
        pass

    @abstractmethod
    async def get_fee(self) -> Decimal:
        """Refresh and return the maker fee rate."""
        pass

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    @abstractmethod
    async def place_order(self, side: OrderSide, amount: Number, price: Number) -> str:
        """
        Place a limit order.

        Returns:
            Exchange order id
        """
        pass

    async def buy(self, amount: Number, price: Number) -> str:
        return await self.place_order(OrderSide.BUY, amount, price)

    async def sell(self, amount: Number, price: Number) -> str:
        return await self.place_order(OrderSide.SELL, amount, price)

    @abstractmethod
    async def get_order_fills(self, order_id: str) -> FillLookupResult:
        """Aggregated fills of one order."""
        pass

    @abstractmethod
    async def check_order_status(self, order_id: str) -> OrderStatus:
        """Current canonical state of one order."""
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str) -> CancelResult:
        """Cancel one order."""
        pass

    # --------------------------------------------------------
    # PRECISION
    # --------------------------------------------------------

    @abstractmethod
    def round_amount(self, amount: Number) -> Decimal:
        pass

    @abstractmethod
    def round_price(self, price: Number) -> Decimal:
        pass

    @abstractmethod
    def is_valid_price(self, price: Number) -> bool:
        pass

    @abstractmethod
    def is_valid_lot(self, price: Number, amount: Number) -> bool:
        pass

    @abstractmethod
    def outbid_price(self, price: Number, is_up: bool) -> Decimal:
        pass
