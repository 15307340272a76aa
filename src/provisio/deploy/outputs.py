# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/deploy/outputs.py
from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Any, Dict, Mapping

from ..config.models import OutputRef
from ..errors import MissingOutput, SchedulerInvariantViolated


class OutputStore:
    """
    Outputs of applied descriptors, published once and read-only afterwards.

    Reading a resource that has not been published means a descriptor ran
    before its dependency finished, which the wave ordering rules out.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outputs: Dict[str, Mapping[str, Any]] = {}

    def publish(self, resource_id: str, outputs: Mapping[str, Any]) -> Mapping[str, Any]:
        with self._lock:
            if resource_id in self._outputs:
                raise SchedulerInvariantViolated(
                    f"Outputs of '{resource_id}' were already published", [resource_id]
                )
            frozen = MappingProxyType(dict(outputs or {}))
            self._outputs[resource_id] = frozen
            return frozen

    def outputs_of(self, resource_id: str) -> Mapping[str, Any]:
        with self._lock:
            try:
                return self._outputs[resource_id]
            except KeyError:
                raise SchedulerInvariantViolated(
                    f"Outputs of '{resource_id}' were read before it was applied", [resource_id]
                ) from None

    def read(self, ref: OutputRef) -> Any:
        outputs = self.outputs_of(ref.resource)
        if ref.output in outputs:
            return outputs[ref.output]
        if ref.has_default:
            return ref.default
        raise MissingOutput(f"Resource '{ref.resource}' has no output '{ref.output}'")

