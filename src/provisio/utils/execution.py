# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import threading
from typing import Callable, Optional, TypeVar

from ..errors import CallTimeout

T = TypeVar("T")


class _Call:
    def __init__(self, fn: Callable[[], T]):
        self.fn = fn
        self.done = threading.Event()
        self.value = None
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.value = self.fn()
        except BaseException as exc:  # re-raised in the caller's thread
            self.error = exc
        finally:
            self.done.set()


def call_with_timeout(fn: Callable[[], T], timeout: Optional[float], *, what: str) -> T:
    """
    Run *fn* and wait at most *timeout* seconds for it.

    Exceeding the timeout raises CallTimeout (a transient error); the call
    itself is left to finish on its daemon thread.
    """
    if not timeout or timeout <= 0:
        return fn()

    call = _Call(fn)
    worker = threading.Thread(target=call.run, name=f"provisio-{what}", daemon=True)
    worker.start()
    if not call.done.wait(timeout):
        raise CallTimeout(f"{what} timed out after {timeout:g}s")
    if call.error is not None:
        raise call.error
    return call.value
