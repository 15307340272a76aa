# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
from dataclasses import dataclass
from typing import Callable, Tuple, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Backoff:
    """Exponential backoff: base, base*factor, base*factor**2 ... capped."""

    base: float = 1.0
    factor: float = 2.0
    cap: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.cap, self.base * (self.factor ** (attempt - 1)))


def retry_call(
    fn: Callable[[], T],
    *,
    attempts: int,
    backoff: Backoff,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception, float], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[T, int]:
    """
    Call *fn* until it succeeds or the attempt budget is spent.

    attempts: total number of calls, at least one
    retry_on: exception types worth another attempt; anything else propagates at once
    on_retry: callback(attempt, exception, delay) before sleeping

    Returns (result, attempts_used). The last exception propagates unchanged.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn(), attempt
        except retry_on as exc:
            if attempt == attempts:
                raise
            delay = backoff.delay(attempt)
            if on_retry:
                on_retry(attempt, exc, delay)
            sleep(delay)
    raise AssertionError("unreachable")
