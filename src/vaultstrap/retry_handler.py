"""Retry logic with exponential backoff for transient failures.

Only read-only Azure queries go through this decorator. Mutating calls
(create, secret set, set-policy) run once and surface their error.

Usage:
    @retry_with_exponential_backoff(max_attempts=3)
    def show_vault():
        return run_az(["az", "keyvault", "show", "--name", "SpinnakerVault"])
"""

import functools
import logging
import random
import time
from typing import Any, Callable, TypeVar

from vaultstrap.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def compute_backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    jitter: bool = False,
) -> float:
    """Delay before the retry that follows ``attempt`` (1-based).

    Args:
        attempt: Attempt number that just failed
        initial_delay: Delay after the first failure in seconds
        max_delay: Upper bound for any single delay
        jitter: Add +/-25% random jitter

    Returns:
        Delay in seconds, never above max_delay
    """
    delay = initial_delay * (2 ** (attempt - 1))
    if jitter:
        jitter_amount = delay * 0.25
        delay = delay + random.uniform(-jitter_amount, jitter_amount)
    return max(0.0, min(delay, max_delay))


def retry_with_exponential_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable[[F], F]:
    """Decorator for retrying operations with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 30.0)
        jitter: Add random jitter to delays (default: True)
        retryable_exceptions: Tuple of exception types to retry
            (default: timeouts and connection errors)

    Returns:
        Decorated function that will retry on transient failures
    """
    if retryable_exceptions is None:
        retryable_exceptions = _get_default_retryable_exceptions()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    result = func(*args, **kwargs)

                    if attempt > 1:
                        logger.info(
                            f"{func.__name__} succeeded on attempt {attempt}/{max_attempts}"
                        )

                    return result

                except retryable_exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts: "
                            f"{LogSanitizer.truncate(LogSanitizer.sanitize(str(e)))}"
                        )
                        raise

                    actual_delay = compute_backoff_delay(attempt, initial_delay, max_delay, jitter)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt}/{max_attempts}, "
                        f"retrying in {actual_delay:.2f}s: "
                        f"{LogSanitizer.truncate(LogSanitizer.sanitize(str(e)))}"
                    )

                    time.sleep(actual_delay)

            raise RuntimeError(f"{func.__name__} called with max_attempts < 1")

        return wrapper  # type: ignore

    return decorator


def _get_default_retryable_exceptions() -> tuple[type[Exception], ...]:
    """Default retryable exception types (network and subprocess timeouts)."""
    import subprocess

    return (TimeoutError, ConnectionError, subprocess.TimeoutExpired)


__all__ = [
    "compute_backoff_delay",
    "retry_with_exponential_backoff",
]
