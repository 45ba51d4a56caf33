"""Retry with capped exponential backoff for transport calls."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Optional, TypeVar, Union

from errors import HttpError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
MAX_JITTER = 0.2


@dataclass
class RetryPolicy:
    """Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    exponential: bool = True
    retryable_status_codes: FrozenSet[int] = field(default_factory=lambda: DEFAULT_RETRYABLE_STATUS_CODES)
    on_retry: Optional[Callable[[int, Exception], None]] = None


def resolve_policy(retry: Union[None, bool, dict, RetryPolicy]) -> Optional[RetryPolicy]:
    if retry is None or retry is False:
        return None
    if retry is True:
        return RetryPolicy()
    if isinstance(retry, RetryPolicy):
        return retry
    if isinstance(retry, dict):
        return RetryPolicy(**retry)
    raise TypeError(f"Unsupported retry option: {retry!r}")


def calculate_delay(attempt: int, policy: RetryPolicy) -> float:
    if not policy.exponential:
        return policy.base_delay
    delay = policy.base_delay * (2 ** attempt) + random.uniform(0, MAX_JITTER)
    return min(delay, policy.max_delay)


def is_retryable(error: Exception, policy: RetryPolicy) -> bool:
    if isinstance(error, HttpError):
        return error.status in policy.retryable_status_codes
    # Any other transport failure is network level.
    return isinstance(error, TransportError)


def with_retry(fn: Callable[[], T], policy: Optional[RetryPolicy] = None,
               sleep: Callable[[float], Any] = time.sleep) -> T:
    """Call ``fn`` until it succeeds, a non-retryable error occurs, or retries run out.

    The last error is re-raised unchanged.
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return fn()
        except TransportError as exc:
            if attempt >= policy.max_retries or not is_retryable(exc, policy):
                raise
            delay = calculate_delay(attempt, policy)
            logger.debug("Retrying after %s (attempt %d, %.2fs)", exc, attempt + 1, delay)
            if policy.on_retry:
                policy.on_retry(attempt + 1, exc)
            sleep(delay)
            attempt += 1


def make_retryable(fn: Callable[..., T], policy: Optional[RetryPolicy] = None,
                   sleep: Callable[[float], Any] = time.sleep) -> Callable[..., T]:
    def wrapper(*args, **kwargs):
        return with_retry(lambda: fn(*args, **kwargs), policy, sleep=sleep)

    wrapper.__name__ = getattr(fn, "__name__", "retryable")
    wrapper.__doc__ = getattr(fn, "__doc__", None)
    return wrapper
