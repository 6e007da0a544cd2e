"""Bounded, fixed-delay retries for transient failures."""
from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T")


class RetryError(RuntimeError):
    """Raised when every attempt failed; chains the last failure."""

    def __init__(self, message: str, *, attempts: int) -> None:
        """Record how many attempts were made."""
        super().__init__(message)
        self.attempts = attempts


def retry_call(
    fn: Callable[[], T],
    *,
    attempts: int,
    delay: float,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *fn* up to *attempts* times, sleeping *delay* seconds between tries.

    The delay is fixed and only taken between attempts, never after the last
    one. *on_retry* receives the failed attempt number and its exception
    before each delay.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    last_exc: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            last_exc = exc
            if attempt == attempts:
                break
            if on_retry is not None:
                on_retry(attempt, exc)
            sleep(delay)
    raise RetryError(f"gave up after {attempts} attempts", attempts=attempts) from last_exc


__all__ = ["RetryError", "retry_call"]
