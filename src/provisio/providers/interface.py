# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/providers/interface.py

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class ResourceState:
    """What the target environment reports for an existing resource."""

    parameters: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)


class ControlPlane(Protocol):
    """
    Contract for the cloud API that owns the resources.
    apply() must behave as create-or-update so a retried call converges.
    """

    def exists(self, kind: str, resource_id: str) -> Optional[ResourceState]:
        """Observed state of the resource, or None when it is absent."""
        ...

    def apply(self, kind: str, resource_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update the resource and return its outputs.
        Must raise TransientError or PermanentError on failure.
        """
        ...


class SecretStore(Protocol):
    def get(self, store: str, name: str) -> str:
        """
        Return the secret value.
        Must raise SecretNotFound or SecretStoreUnavailable.
        """
        ...
