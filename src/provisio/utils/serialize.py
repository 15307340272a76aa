# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/utils/serialize.py

from dataclasses import is_dataclass, asdict
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel

def to_jsonable(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")

    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple, set, frozenset)):
        items = [to_jsonable(v) for v in obj]
        return sorted(items, key=str) if isinstance(obj, (set, frozenset)) else items

    if isinstance(obj, Enum):
        return obj.value

    return obj


def redact(value: Any, secrets: Iterable[str], mask: str = "***") -> Any:
    """Copy *value* with every occurrence of a secret string masked."""
    secrets = sorted({str(s) for s in secrets if s}, key=len, reverse=True)
    if not secrets:
        return value
    if isinstance(value, str):
        for s in secrets:
            value = value.replace(s, mask)
        return value
    if isinstance(value, dict):
        return {k: redact(v, secrets, mask) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(v, secrets, mask) for v in value]
    return value
