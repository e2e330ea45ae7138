"""
Exchange Adapter - Retry Driver.

============================================================
PURPOSE
============================================================
Re-invokes an exchange request until it succeeds or the error
classifier returns a fatal verdict.

SAFETY:
- Bounded attempts (config, or the verdict's override)
- Sequential retries with capped backoff, no fan-out
- Only recoverable verdicts are retried

============================================================
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .errors import ClassifiedError, ExchangeException
from ..config import RetryConfig


logger = logging.getLogger(__name__)


async def retry_call(
    operation: Callable[[], Awaitable[Any]],
    classify: Callable[[BaseException], ClassifiedError],
    config: Optional[RetryConfig] = None,
    name: str = "request",
) -> Any:
    """
    Run `operation` with classified retries.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        classify: Turns a raised exception into a ClassifiedError
        config: Attempt budget and backoff
        name: Operation name used in log lines

    Returns:
        The operation's result, or a verdict's synthetic result

    Raises:
        ExchangeException: On a fatal verdict or when attempts run out
    """
    config = config or RetryConfig()
    delay = config.initial_delay_seconds
    attempt = 0

    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            verdict = classify(e)

            if verdict.has_synthetic_result:
                logger.info(f"{name}: resolved as success: {verdict.message}")
                return verdict.synthetic_result

            if not verdict.recoverable:
                logger.warning(f"{name} failed: {verdict}")
                raise ExchangeException(verdict, attempts=attempt) from e

            limit = verdict.retry_override or config.max_attempts
            if attempt >= limit:
                logger.error(f"{name} failed after {attempt} attempts: {verdict}")
                raise ExchangeException(verdict, attempts=attempt) from e

            if verdict.backoff_override_ms is not None:
                wait = verdict.backoff_override_ms / 1000.0
            else:
                wait = delay
                delay = min(
                    delay * config.backoff_multiplier,
                    config.max_delay_seconds,
                )

            logger.warning(
                f"{name} failed (attempt {attempt}/{limit}): "
                f"{verdict.message}. Retrying in {wait:.1f}s..."
            )

        await asyncio.sleep(wait)
