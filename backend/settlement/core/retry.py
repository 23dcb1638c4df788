"""Retry with exponential backoff and jitter for calls with transient failures.

Standalone on purpose: no settings, no database. Callers inject ``sleep`` and
``random`` so tests can drive it with a fake clock.
"""

import asyncio
import random as _random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Successful outcome of ``with_retry``."""

    value: T
    attempts: int


def calculate_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter_factor: float,
    random: Callable[[], float] = _random.random,
) -> float:
    """
    Delay before the retry that follows ``attempt`` (1-based).

    Formula: min(base * 2^(attempt-1), max) * (1 + U[0, 1) * jitter_factor)

    Args:
        attempt: Number of the attempt that just failed
        base_delay: Delay after the first failure, in seconds
        max_delay: Cap for the exponential part, in seconds
        jitter_factor: Upper bound of the random extra, as a fraction of the delay
        random: Source of uniform [0, 1) values

    Returns:
        Delay in seconds
    """
    exponential = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return exponential * (1 + random() * jitter_factor)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    is_retryable: Callable[[BaseException], bool],
    base_delay: float = 0.2,
    max_delay: float = 30.0,
    jitter_factor: float = 0.5,
    on_retry: Optional[Callable[[int, BaseException, float], Any]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    random: Callable[[], float] = _random.random,
) -> RetryResult[T]:
    """
    Call ``fn`` until it succeeds, a non-retryable error occurs, or the budget runs out.

    Args:
        fn: Zero-argument coroutine function to call
        max_attempts: Maximum number of calls, including the first one
        is_retryable: Returns True for errors that should trigger another attempt
        base_delay: Backoff base in seconds
        max_delay: Backoff cap in seconds
        jitter_factor: Fraction of the delay added as random jitter
        on_retry: Called with (attempt, error, delay) before each wait
        sleep: Awaitable sleep function
        random: Source of uniform [0, 1) values

    Returns:
        RetryResult with the value and the number of attempts made

    Raises:
        The first non-retryable error immediately, or the last retryable error
        once ``max_attempts`` calls have failed.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            value = await fn()
            return RetryResult(value=value, attempts=attempt)
        except Exception as error:
            if not is_retryable(error) or attempt >= max_attempts:
                raise

            delay = calculate_backoff(attempt, base_delay, max_delay, jitter_factor, random)
            if on_retry is not None:
                on_retry(attempt, error, delay)
            await sleep(delay)
