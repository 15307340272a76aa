# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent

_CONTEXT_FIELDS = ("ts", "run_id", "env", "context")


class LoggerObserver:
    """Mirrors every event into the run log at DEBUG."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = {k: v for k, v in event.dict().items() if k not in _CONTEXT_FIELDS}
        self.logger.debug(
            "[EVENT] %s: %s",
            type(event).__name__,
            ", ".join(f"{k}={v}" for k, v in fields.items()),
        )
