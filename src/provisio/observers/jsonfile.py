# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/observers/jsonfile.py
from __future__ import annotations

import json
import threading
from pathlib import Path

from ..utils.serialize import to_jsonable
from .events import BaseEvent


class JsonFileObserver:
    """Appends one JSON object per event (JSONL), keyed by event type."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def notify(self, event: BaseEvent) -> None:
        record = {"type": type(event).__name__, **to_jsonable(event)}
        line = json.dumps(record, sort_keys=True, default=str)
        with self._lock, self.path.open("a") as f:
            f.write(line + "\n")
