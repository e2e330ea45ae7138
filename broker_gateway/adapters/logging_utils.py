"""
Exchange Adapter - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Structured logging for adapter requests with credential masking.

SECURITY REQUIREMENTS:
1. NEVER log raw API keys or secrets
2. Mask the Authorization header and signed parameters
3. Truncate response previews

============================================================
"""

import json
import logging
import re
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

SENSITIVE_HEADERS = {
    "authorization",
    "api-key",
    "secret",
    "signature",
}

SENSITIVE_PARAMS = {
    "key",
    "apikey",
    "api_key",
    "secret",
    "api_secret",
    "signature",
    "nonce",
}

# Bitso auth header: "Bitso <key>:<nonce>:<signature>"
BITSO_AUTH_PATTERN = re.compile(r"(Bitso\s+)[^:\s]+:[^:\s]+:[a-f0-9]+", re.IGNORECASE)


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask sensitive headers."""
    if not headers:
        return {}

    masked = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = BITSO_AUTH_PATTERN.sub(r"\1***", str(value))
            if masked[key] == str(value):
                masked[key] = mask_value(str(value))
        else:
            masked[key] = value
    return masked


def mask_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Mask sensitive parameters, recursing into nested dicts."""
    if not params:
        return {}

    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        elif isinstance(value, dict):
            masked[key] = mask_params(value)
        else:
            masked[key] = value
    return masked


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_json(entry: Any) -> str:
    data = {k: v for k, v in asdict(entry).items() if v is not None}
    return json.dumps(data, default=str)


# ============================================================
# LOG ENTRY STRUCTURES
# ============================================================

@dataclass
class RequestLogEntry:
    """Structured log entry for requests."""

    timestamp: str
    exchange_id: str
    operation: str
    method: str
    endpoint: str
    request_id: str
    headers: Dict[str, str] = None
    params: Dict[str, Any] = None


@dataclass
class ResponseLogEntry:
    """Structured log entry for responses."""

    timestamp: str
    exchange_id: str
    operation: str
    request_id: str
    latency_ms: float
    success: bool
    http_status: int = None
    error_message: str = None
    response_preview: str = None


@dataclass
class OrderLogEntry:
    """Structured log entry for order operations."""

    timestamp: str
    exchange_id: str
    operation: str  # place, cancel, check
    book: str = None
    order_id: str = None
    side: str = None
    amount: str = None
    price: str = None
    status: str = None
    error_message: str = None


# ============================================================
# ADAPTER LOGGER
# ============================================================

class AdapterLogger:
    """
    Secure logger for exchange adapter operations.
    """

    def __init__(self, exchange_id: str, logger_name: str = None):
        self._exchange_id = exchange_id
        self._logger = logging.getLogger(
            logger_name or f"broker_gateway.adapters.{exchange_id}"
        )
        self._request_counter = 0

    def _generate_request_id(self) -> str:
        self._request_counter += 1
        return f"{self._exchange_id}-{self._request_counter}"

    def log_request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        params: Dict[str, Any] = None,
        headers: Dict[str, str] = None,
    ) -> str:
        """
        Log outgoing request.

        Returns:
            Request ID for correlation
        """
        request_id = self._generate_request_id()

        entry = RequestLogEntry(
            timestamp=_utcnow(),
            exchange_id=self._exchange_id,
            operation=operation,
            method=method,
            endpoint=endpoint,
            request_id=request_id,
            headers=mask_headers(headers) if headers else None,
            params=mask_params(params) if params else None,
        )

        self._logger.debug(f"REQUEST: {_to_json(entry)}")
        return request_id

    def log_response(
        self,
        operation: str,
        request_id: str,
        latency_ms: float,
        success: bool,
        http_status: int = None,
        error_message: str = None,
        response_body: Any = None,
    ) -> None:
        """Log incoming response or failure."""
        preview = None
        if response_body is not None:
            try:
                preview = json.dumps(response_body, default=str)[:200]
            except (TypeError, ValueError):
                preview = "<unserializable>"

        entry = ResponseLogEntry(
            timestamp=_utcnow(),
            exchange_id=self._exchange_id,
            operation=operation,
            request_id=request_id,
            latency_ms=round(latency_ms, 2),
            success=success,
            http_status=http_status,
            error_message=error_message[:200] if error_message else None,
            response_preview=preview,
        )

        if success:
            self._logger.debug(f"RESPONSE: {_to_json(entry)}")
        else:
            self._logger.warning(f"RESPONSE_ERROR: {_to_json(entry)}")

    def log_order(
        self,
        operation: str,
        book: str = None,
        order_id: str = None,
        side: str = None,
        amount: str = None,
        price: str = None,
        status: str = None,
        error_message: str = None,
    ) -> None:
        """Log order operation."""
        entry = OrderLogEntry(
            timestamp=_utcnow(),
            exchange_id=self._exchange_id,
            operation=operation,
            book=book,
            order_id=order_id,
            side=side,
            amount=amount,
            price=price,
            status=status,
            error_message=error_message[:200] if error_message else None,
        )

        if error_message:
            self._logger.warning(f"ORDER_ERROR: {_to_json(entry)}")
        else:
            self._logger.info(f"ORDER: {_to_json(entry)}")
