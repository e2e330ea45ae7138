"""
Broker Gateway - Adapters Package.

============================================================
PURPOSE
============================================================
Exchange adapter implementations.

AVAILABLE ADAPTERS:
- BitsoAdapter: Bitso REST API v3

PIPELINE:
- Transport: request seam (BitsoTransport over aiohttp)
- ErrorClassifier: table-driven failure verdicts
- retry_call: classified, bounded retries
- BitsoNormalizer: payloads to canonical records

============================================================
"""

# Base
from .base import ExchangeAdapter

# Adapters
from .bitso import BitsoAdapter

# Errors
from .errors import (
    BITSO_RULES,
    RECOVERABLE_ERRORS,
    ClassificationRule,
    ClassifiedError,
    ErrorCategory,
    ErrorClassifier,
    ExchangeException,
    TransportError,
    create_fatal_error,
    create_market_not_found_error,
    create_unexpected_state_error,
    error_from_envelope,
)

# Normalization
from .normalizer import BITSO_STATUS_MAP, BitsoNormalizer

# Retry
from .retry import retry_call

# Transport
from .transport import BitsoTransport, Transport

# Logging
from .logging_utils import AdapterLogger, mask_headers, mask_params, mask_value


__all__ = [
    # Base
    "ExchangeAdapter",
    # Adapters
    "BitsoAdapter",
    # Errors
    "BITSO_RULES",
    "RECOVERABLE_ERRORS",
    "ClassificationRule",
    "ClassifiedError",
    "ErrorCategory",
    "ErrorClassifier",
    "ExchangeException",
    "TransportError",
    "create_fatal_error",
    "create_market_not_found_error",
    "create_unexpected_state_error",
    "error_from_envelope",
    # Normalization
    "BITSO_STATUS_MAP",
    "BitsoNormalizer",
    # Retry
    "retry_call",
    # Transport
    "BitsoTransport",
    "Transport",
    # Logging
    "AdapterLogger",
    "mask_headers",
    "mask_params",
    "mask_value",
]
