"""
storage/retry.py

Retry-with-classification primitive shared by the store and the sync manager.

Callers supply a predicate that decides which exceptions are transient and
a tenacity wait strategy.  The last exception is re-raised unchanged once
the error is classified as permanent or the attempt ceiling is reached, so
each caller decides how a failure is reported.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")


def message_predicate(*needles: str) -> Callable[[BaseException], bool]:
    """Return a predicate matching exceptions whose text contains any needle."""
    lowered = tuple(n.lower() for n in needles)

    def _matches(exc: BaseException) -> bool:
        text = str(exc).lower()
        return any(n in text for n in lowered)

    return _matches


def linear_wait(delay: float) -> wait_base:
    """Wait ``attempt * delay`` seconds after each failed attempt."""
    return wait_incrementing(start=delay, increment=delay)


def exponential_wait(base_delay: float) -> wait_base:
    """Wait ``2 ** (attempt - 1) * base_delay`` seconds after each failed attempt."""
    return wait_exponential(multiplier=base_delay, exp_base=2)


def call_with_retry(
    operation: Callable[[], T],
    *,
    is_retriable: Callable[[BaseException], bool],
    wait: wait_base,
    max_attempts: int,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """
    Run *operation*, retrying transient failures.

    Args:
        operation:     Zero-argument callable to execute.
        is_retriable:  Classifies an exception as transient.
        wait:          tenacity wait strategy between attempts.
        max_attempts:  Attempt ceiling (>= 1).
        sleep:         Sleep function, injectable for tests.
        label:         Name used in log messages.

    Returns:
        The operation's return value.

    Raises:
        Exception: The last error, when permanent or after exhaustion.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait,
        retry=retry_if_exception(is_retriable),
        sleep=sleep,
        reraise=True,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    try:
        return retrying(operation)
    except Exception as exc:
        logger.error("%s failed: %s", label, exc)
        raise
