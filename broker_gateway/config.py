"""
Broker Gateway - Configuration.

============================================================
PURPOSE
============================================================
All configuration for exchange adapters.

CRITICAL CONSTRAINTS:
- No blind retries
- No infinite loops
- Credentials only from explicit config or environment

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .types import Credentials, Pair


# ============================================================
# RETRY CONFIGURATION
# ============================================================

@dataclass
class RetryConfig:
    """
    Retry configuration for exchange requests.

    SAFETY: Bounded attempts with capped backoff. A classified error
    may override the attempt budget or the delay.
    """

    max_attempts: int = 5
    """Total attempts, including the first one."""

    initial_delay_seconds: float = 1.0
    """Delay before the first retry."""

    max_delay_seconds: float = 3.0
    """Maximum delay between retries."""

    backoff_multiplier: float = 1.2
    """Backoff multiplier applied after each retry."""


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """
    Timeout configuration.
    """

    total_timeout_seconds: float = 6.0
    """Deadline handed to the transport per request."""

    optimized_timeout_seconds: float = 0.5
    """Deadline used when `optimized_connection` is enabled."""

    order_dispatch_delay_seconds: float = 1.0
    """Delay before every order placement attempt."""


# ============================================================
# ADAPTER CONFIGURATION
# ============================================================

DEFAULT_REST_URL = "https://api.bitso.com/v3"


@dataclass
class AdapterConfig:
    """
    Configuration for one adapter instance (one pair).
    """

    currency: str = "MXN"
    asset: str = "BTC"

    # Credentials (None restricts the adapter to public data)
    api_key: Optional[str] = None
    api_secret: Optional[str] = None

    optimized_connection: bool = False
    """Use the short transport deadline."""

    rest_url: str = DEFAULT_REST_URL

    retry: RetryConfig = field(default_factory=RetryConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    @property
    def pair(self) -> Pair:
        return Pair(asset=self.asset, currency=self.currency)

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) and bool(self.api_secret)

    @property
    def credentials(self) -> Optional[Credentials]:
        if not self.has_credentials:
            return None
        return Credentials(key=self.api_key, secret=self.api_secret)

    @property
    def request_timeout_seconds(self) -> float:
        if self.optimized_connection:
            return self.timeouts.optimized_timeout_seconds
        return self.timeouts.total_timeout_seconds

    @classmethod
    def from_env(cls, prefix: str = "BITSO", **overrides) -> "AdapterConfig":
        """
        Create config from environment variables.

        Reads `.env` first. Keyword overrides win over the environment.

        Args:
            prefix: Environment variable prefix

        Returns:
            AdapterConfig
        """
        load_dotenv()

        values = {
            "api_key": os.environ.get(f"{prefix}_API_KEY") or None,
            "api_secret": os.environ.get(f"{prefix}_API_SECRET") or None,
            "currency": os.environ.get(f"{prefix}_CURRENCY", "MXN"),
            "asset": os.environ.get(f"{prefix}_ASSET", "BTC"),
            "rest_url": os.environ.get(f"{prefix}_REST_URL", DEFAULT_REST_URL),
            "optimized_connection": os.environ.get(
                f"{prefix}_OPTIMIZED_CONNECTION", "false"
            ).lower() in ("1", "true", "yes"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**values)
