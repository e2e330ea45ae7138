"""
Broker Gateway.

============================================================
PURPOSE
============================================================
Normalizes an exchange REST API into the uniform trading
interface a generic order-execution broker consumes.

CRITICAL PRINCIPLE:
    "Callers see a canonical result or a terminal error."
    Raw transport exceptions and exchange codes never leak.

============================================================
"""

from .types import (
    CancelResult,
    Credentials,
    ExchangeCapabilities,
    FillLookupResult,
    FillLookupState,
    MarketConstraints,
    MarketInfo,
    OrderFills,
    OrderSide,
    OrderState,
    OrderStatus,
    Pair,
    PortfolioEntry,
    Ticker,
    Trade,
)
from .config import AdapterConfig, RetryConfig, TimeoutConfig
from .markets import MarketCatalog, load_bitso_markets
from .precision import (
    MarketPrecision,
    format_plain,
    precision_of,
    round_to_tick,
)
from .adapters import (
    BitsoAdapter,
    ClassifiedError,
    ErrorCategory,
    ErrorClassifier,
    ExchangeAdapter,
    ExchangeException,
)


__version__ = "0.1.0"

__all__ = [
    # Types
    "CancelResult",
    "Credentials",
    "ExchangeCapabilities",
    "FillLookupResult",
    "FillLookupState",
    "MarketConstraints",
    "MarketInfo",
    "OrderFills",
    "OrderSide",
    "OrderState",
    "OrderStatus",
    "Pair",
    "PortfolioEntry",
    "Ticker",
    "Trade",
    # Config
    "AdapterConfig",
    "RetryConfig",
    "TimeoutConfig",
    # Markets
    "MarketCatalog",
    "load_bitso_markets",
    # Precision
    "MarketPrecision",
    "format_plain",
    "precision_of",
    "round_to_tick",
    # Adapters
    "BitsoAdapter",
    "ClassifiedError",
    "ErrorCategory",
    "ErrorClassifier",
    "ExchangeAdapter",
    "ExchangeException",
]
