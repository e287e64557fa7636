"""Retry utilities for agent API calls."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transient failures worth retrying. Rate/usage limits are deliberately
# absent: they surface to the caller as a session-limit result.
RETRYABLE_PATTERN = re.compile(
    r"overloaded|500|502|503|504|529|"
    r"service.?unavailable|server error|internal error|"
    r"connection.?error|timed? ?out",
    re.IGNORECASE,
)

LIMIT_PATTERN = re.compile(
    r"session limit|usage limit|rate.?limit|too many requests|429", re.IGNORECASE
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    enabled: bool = True
    max_retries: int = 3
    base_delay_ms: int = 2000  # 2 seconds
    max_delay_ms: int = 30000  # 30 seconds


def is_limit_error(error: Exception) -> bool:
    """Check if an error means the account or session hit its usage limit."""
    if getattr(error, "status_code", None) == 429:
        return True
    error_type = type(error).__name__.lower()
    if "ratelimit" in error_type or "rate_limit" in error_type:
        return True
    return bool(LIMIT_PATTERN.search(str(error)))


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is transient and worth retrying.

    Retryable errors include:
    - Server errors (500, 502, 503, 504) and overloaded (529)
    - Connection/timeout errors

    Limit errors are never retryable.
    """
    if is_limit_error(error):
        return False

    if RETRYABLE_PATTERN.search(str(error)):
        return True

    error_type = type(error).__name__.lower()
    if any(t in error_type for t in ["timeout", "connection", "overloaded"]):
        return True

    status_code = getattr(error, "status_code", None)
    return status_code in (500, 502, 503, 504, 529)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "API call",
) -> T:
    """Execute an async function with exponential backoff retry.

    Raises:
        The last exception if all retries fail or the error is not retryable.
    """
    config = config or RetryConfig()

    if not config.enabled:
        return await func()

    for attempt in range(config.max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": config.max_retries + 1,
                        "error.message": str(e),
                        "error.type": type(e).__name__,
                    },
                )
                raise

            delay_s = min(
                config.base_delay_ms * (2**attempt),
                config.max_delay_ms,
            ) / 1000

            logger.info(
                "retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_attempts": config.max_retries + 1,
                    "retry_delay_s": round(delay_s, 1),
                    "error.message": str(e),
                    "error.type": type(e).__name__,
                },
            )
            await asyncio.sleep(delay_s)

    raise AssertionError("unreachable")
