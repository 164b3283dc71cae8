"""
Retry logic with exponential backoff for voice platform calls.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_status_codes: set[int] = field(
        default_factory=lambda: {408, 429, 500, 502, 503, 504}
    )


class RetryableError(Exception):
    """Error that should trigger a retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NonRetryableError(Exception):
    """Error that should not be retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay before next retry using exponential backoff.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = config.initial_delay * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        # Up to 25% extra
        delay += delay * 0.25 * random.random()

    return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    name: str = "operation",
) -> T:
    """
    Run an async operation, retrying retryable failures.

    Network errors (httpx.RequestError) count as retryable. After the last
    attempt the final RetryableError is raised.

    Args:
        operation: Zero-argument coroutine factory
        config: Retry configuration
        name: Label for log lines

    Raises:
        RetryableError: When retries are exhausted
        NonRetryableError: Immediately, on a non-retryable failure
    """
    last_exception: Optional[RetryableError] = None

    for attempt in range(config.max_retries + 1):
        try:
            return await operation()
        except NonRetryableError:
            raise
        except RetryableError as e:
            last_exception = e
        except httpx.RequestError as e:
            last_exception = RetryableError(f"Network error: {e}")

        if attempt < config.max_retries:
            delay = calculate_delay(attempt, config)
            logger.warning(
                f"Retry {attempt + 1}/{config.max_retries} for {name}: "
                f"{last_exception}, waiting {delay:.2f}s"
            )
            await asyncio.sleep(delay)
        else:
            logger.error(
                f"Max retries ({config.max_retries}) exceeded for {name}: {last_exception}"
            )

    raise last_exception or RuntimeError("Unexpected retry loop exit")


def check_response(response: httpx.Response, config: RetryConfig) -> None:
    """
    Check HTTP response and raise appropriate error.

    Args:
        response: HTTP response to check
        config: Retry configuration

    Raises:
        RetryableError: If the error should be retried
        NonRetryableError: If the error should not be retried
    """
    if response.is_success:
        return

    status_code = response.status_code
    message = f"HTTP {status_code}: {response.text[:200]}"

    if status_code in config.retryable_status_codes or status_code >= 500:
        raise RetryableError(message, status_code=status_code)
    raise NonRetryableError(message, status_code=status_code)
