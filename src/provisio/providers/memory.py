# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/providers/memory.py
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Tuple

from ..errors import SecretNotFound, SecretStoreUnavailable
from .interface import ResourceState


class InMemoryControlPlane:
    """
    A control plane that remembers what was applied to it.

    Re-running the same deployment against the same instance converges,
    which makes it the reference environment for --simulate and tests.
    """

    def __init__(self, outputs: Optional[Dict[str, Dict[str, Any]]] = None):
        self._lock = threading.Lock()
        self.resources: Dict[Tuple[str, str], ResourceState] = {}
        self.outputs = outputs or {}
        self.apply_calls: List[Tuple[str, str]] = []
        self.exists_calls: List[Tuple[str, str]] = []
        self._failures: Dict[str, List[Exception]] = {}

    def fail(self, resource_id: str, *errors: Exception) -> None:
        """Queue errors raised by the next apply calls for *resource_id*."""
        with self._lock:
            self._failures.setdefault(resource_id, []).extend(errors)

    def seed(self, kind: str, resource_id: str, parameters: Dict[str, Any], outputs: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self.resources[(kind, resource_id)] = ResourceState(dict(parameters), dict(outputs or {}))

    def _outputs_for(self, kind: str, resource_id: str) -> Dict[str, Any]:
        out = {"id": f"{kind}/{resource_id}", "name": resource_id}
        out.update(self.outputs.get(resource_id, {}))
        return out

    def exists(self, kind: str, resource_id: str) -> Optional[ResourceState]:
        with self._lock:
            self.exists_calls.append((kind, resource_id))
            return self.resources.get((kind, resource_id))

    def apply(self, kind: str, resource_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self.apply_calls.append((kind, resource_id))
            queued = self._failures.get(resource_id)
            if queued:
                raise queued.pop(0)
            outputs = self._outputs_for(kind, resource_id)
            self.resources[(kind, resource_id)] = ResourceState(dict(parameters), outputs)
            return dict(outputs)


class InMemorySecretStore:
    """
    Secrets keyed by store then name. With *fallback* set, unknown secrets
    resolve to it instead of raising SecretNotFound.
    """

    def __init__(
        self,
        secrets: Optional[Dict[str, Dict[str, str]]] = None,
        *,
        fallback: Optional[str] = None,
        unavailable: int = 0,
    ):
        self._lock = threading.Lock()
        self.secrets = secrets or {}
        self.fallback = fallback
        self.unavailable = unavailable
        self.calls: List[Tuple[str, str]] = []

    def get(self, store: str, name: str) -> str:
        with self._lock:
            self.calls.append((store, name))
            if self.unavailable > 0:
                self.unavailable -= 1
                raise SecretStoreUnavailable(f"secret store '{store}' is unreachable")
            try:
                return self.secrets[store][name]
            except KeyError:
                if self.fallback is not None:
                    return self.fallback
                raise SecretNotFound(store, name) from None
