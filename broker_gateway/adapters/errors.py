"""
Exchange Adapter - Error Classification.

============================================================
PURPOSE
============================================================
Turns transport failures and exchange error messages into a
single verdict per failure:
- Recoverable (retried transparently)
- Fatal (propagated to the caller unchanged)
- Synthetic success (an error that actually means "done")

Classification is table-driven: an ordered list of rules, first
match wins. Exchanges supply their own rule list without touching
control flow.

============================================================
ERROR CATEGORIES
============================================================
1. TRANSIENT_INFRA       - Network, 5xx, rate limits
2. EVENTUAL_CONSISTENCY  - Order not visible yet
3. RACE_WINDOW           - Funds not settled right after a trade
4. DOMAIN_SYNTHETIC      - Error that signals a successful outcome
5. UNEXPECTED_STATE      - Order status outside the known set
6. MARKET_NOT_FOUND      - Pair not listed by the exchange
7. FATAL                 - Everything else

============================================================
"""

import logging
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple, FrozenSet, Sequence
from dataclasses import dataclass, field


logger = logging.getLogger(__name__)


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Standardized error categories."""

    TRANSIENT_INFRA = "TRANSIENT_INFRA"
    EVENTUAL_CONSISTENCY = "EVENTUAL_CONSISTENCY"
    RACE_WINDOW = "RACE_WINDOW"
    DOMAIN_SYNTHETIC = "DOMAIN_SYNTHETIC"
    UNEXPECTED_STATE = "UNEXPECTED_STATE"
    MARKET_NOT_FOUND = "MARKET_NOT_FOUND"
    FATAL = "FATAL"


# ============================================================
# CLASSIFIED ERROR
# ============================================================

@dataclass
class ClassifiedError:
    """
    Verdict on one failure.
    """

    message: str
    category: ErrorCategory

    # Retry info
    recoverable: bool = False
    retry_override: Optional[int] = None
    """Attempt limit applied when this verdict is the latest failure."""

    backoff_override_ms: Optional[int] = None
    """Fixed delay before the next attempt."""

    synthetic_result: Optional[Any] = None
    """Result to return instead of raising."""

    # Context
    operation: Optional[str] = None
    http_status: Optional[int] = None
    exchange_code: Optional[str] = None

    @property
    def has_synthetic_result(self) -> bool:
        return self.synthetic_result is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "message": self.message,
            "category": self.category.value,
            "recoverable": self.recoverable,
            "retry_override": self.retry_override,
            "backoff_override_ms": self.backoff_override_ms,
            "synthetic_result": self.synthetic_result,
            "operation": self.operation,
            "http_status": self.http_status,
            "exchange_code": self.exchange_code,
        }

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"


class ExchangeException(Exception):
    """Exception wrapper for ClassifiedError."""

    def __init__(self, error: ClassifiedError, attempts: int = 1):
        self.error = error
        self.attempts = attempts
        super().__init__(error.message)

    @property
    def category(self) -> ErrorCategory:
        return self.error.category

    @property
    def recoverable(self) -> bool:
        return self.error.recoverable


class TransportError(Exception):
    """
    Raw failure reported by the transport or the exchange.

    Carries the message the classifier matches on.
    """

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        code: Optional[str] = None,
        payload: Any = None,
    ):
        self.message = message
        self.http_status = http_status
        self.code = code
        self.payload = payload
        super().__init__(message)


# ============================================================
# ENVELOPE HANDLING
# ============================================================

def error_from_envelope(body: Any) -> Optional[TransportError]:
    """
    Detect an error embedded in a success envelope.

    Handles `{"success": false, "error": {"code", "message"}}` and a
    payload that carries a `code` field.

    Returns:
        TransportError, or None if the body is a real success
    """
    if not isinstance(body, dict):
        return None

    error = None
    if body.get("success") is False:
        error = body.get("error") or {}
    elif isinstance(body.get("payload"), dict) and body["payload"].get("code"):
        error = body["payload"]

    if error is None:
        return None

    if not isinstance(error, dict):
        return TransportError(str(error), payload=body)

    code = error.get("code")
    message = error.get("message") or error.get("msg") or "Unknown error"
    return TransportError(f"Error {code}: {message}", code=code, payload=body)


def error_message(error: BaseException) -> str:
    """Best-effort message text for matching."""
    if isinstance(error, ExchangeException):
        return error.error.message
    if isinstance(error, TransportError):
        return error.message
    return str(error) or error.__class__.__name__


# ============================================================
# RULE TABLE
# ============================================================

@dataclass(frozen=True)
class ClassificationRule:
    """
    One (predicate, verdict) row.

    Matches when the message contains any pattern and, if
    `operations` is set, the operation is one of them.
    """

    name: str
    patterns: Tuple[str, ...]
    category: ErrorCategory
    operations: Optional[FrozenSet[str]] = None
    recoverable: bool = False
    retry_override: Optional[int] = None
    backoff_override_ms: Optional[int] = None
    synthetic_result: Optional[Dict[str, Any]] = field(default=None, hash=False)
    log_message: Optional[str] = None

    def matches(self, operation: str, message: str) -> bool:
        if self.operations is not None and operation not in self.operations:
            return False
        return any(pattern in message for pattern in self.patterns)

    def verdict(
        self,
        operation: str,
        message: str,
        error: Optional[BaseException] = None,
    ) -> ClassifiedError:
        return ClassifiedError(
            message=message,
            category=self.category,
            recoverable=self.recoverable,
            retry_override=self.retry_override,
            backoff_override_ms=self.backoff_override_ms,
            synthetic_result=(
                dict(self.synthetic_result)
                if self.synthetic_result is not None else None
            ),
            operation=operation,
            http_status=getattr(error, "http_status", None),
            exchange_code=getattr(error, "code", None),
        )


# Substrings denoting transient network / infrastructure failures
RECOVERABLE_ERRORS: Tuple[str, ...] = (
    "SOCKETTIMEDOUT",
    "TIMEDOUT",
    "CONNRESET",
    "CONNREFUSED",
    "NOTFOUND",
    "Error -1021",
    "Response code 429",
    "Response code 5",
    "Response code 403",
    "ETIMEDOUT",
    "EHOSTUNREACH",
    # DNS: getaddrinfo EAI_AGAIN
    "EAI_AGAIN",
    "ENETUNREACH",
)

TRANSIENT_RULE = ClassificationRule(
    name="transient_infra",
    patterns=RECOVERABLE_ERRORS,
    category=ErrorCategory.TRANSIENT_INFRA,
    recoverable=True,
)

BITSO_RULES: List[ClassificationRule] = [
    TRANSIENT_RULE,
    ClassificationRule(
        name="unknown_book",
        patterns=("Unknown OrderBook",),
        category=ErrorCategory.MARKET_NOT_FOUND,
    ),
    # Filled in full before the cancel could apply: NOT cancelled.
    ClassificationRule(
        name="cancel_unknown_order",
        patterns=("UNKNOWN_ORDER",),
        category=ErrorCategory.DOMAIN_SYNTHETIC,
        operations=frozenset({"cancel_order"}),
        synthetic_result={"filled": True},
        log_message="cancel_order UNKNOWN_ORDER, order was filled",
    ),
    ClassificationRule(
        name="check_order_not_visible",
        patterns=("Order does not exist",),
        category=ErrorCategory.EVENTUAL_CONSISTENCY,
        operations=frozenset({"check_order"}),
        recoverable=True,
        retry_override=10,
        log_message="Bitso doesn't know this order yet, retrying up to 10 times",
    ),
    ClassificationRule(
        name="place_order_insufficient_funds",
        patterns=("exceeds available", "Insufficient funds"),
        category=ErrorCategory.RACE_WINDOW,
        operations=frozenset({"place_order"}),
        recoverable=True,
        retry_override=2,
        backoff_override_ms=1000,
        log_message="Insufficient funds, balance may not be settled yet",
    ),
]


# ============================================================
# CLASSIFIER
# ============================================================

class ErrorClassifier:
    """
    Applies an ordered rule table to failures.
    """

    def __init__(
        self,
        rules: Optional[Sequence[ClassificationRule]] = None,
        exchange_id: str = "bitso",
    ):
        self._rules = list(rules if rules is not None else BITSO_RULES)
        self._exchange_id = exchange_id

    @property
    def rules(self) -> List[ClassificationRule]:
        return list(self._rules)

    def classify(
        self,
        operation: str,
        error: BaseException,
        message: Optional[str] = None,
    ) -> ClassifiedError:
        """
        Classify one failure.

        Args:
            operation: Adapter operation name (e.g., "cancel_order")
            error: Raw error
            message: Message to match; derived from `error` if omitted

        Returns:
            ClassifiedError
        """
        if isinstance(error, ExchangeException):
            return error.error

        if message is None:
            message = error_message(error)

        for rule in self._rules:
            if rule.matches(operation, message):
                if rule.log_message:
                    logger.info(f"[{self._exchange_id}] {operation}: {rule.log_message}")
                else:
                    logger.debug(
                        f"[{self._exchange_id}] {operation}: {rule.name} matched: {message}"
                    )
                return rule.verdict(operation, message, error)

        return ClassifiedError(
            message=message,
            category=ErrorCategory.FATAL,
            operation=operation,
            http_status=getattr(error, "http_status", None),
            exchange_code=getattr(error, "code", None),
        )


# ============================================================
# ERROR HELPERS
# ============================================================

def create_market_not_found_error(
    book: str,
    exchange_name: str = "Bitso",
    operation: str = None,
) -> ExchangeException:
    """Fatal error for a pair the exchange does not list."""
    return ExchangeException(ClassifiedError(
        message=f"Market {book} not found on {exchange_name}",
        category=ErrorCategory.MARKET_NOT_FOUND,
        operation=operation,
    ))


def create_unexpected_state_error(
    status: Any,
    order_id: str = None,
    operation: str = "check_order",
) -> ExchangeException:
    """Fatal error for an order status outside the known vocabulary."""
    return ExchangeException(ClassifiedError(
        message=f"Unexpected order status {status!r} for order {order_id}",
        category=ErrorCategory.UNEXPECTED_STATE,
        operation=operation,
    ))


def create_fatal_error(message: str, operation: str = None) -> ExchangeException:
    """Generic fatal error."""
    return ExchangeException(ClassifiedError(
        message=message,
        category=ErrorCategory.FATAL,
        operation=operation,
    ))
