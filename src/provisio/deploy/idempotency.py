# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/deploy/idempotency.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..config.models import ResourceDescriptor
from ..errors import ConfigurationDrift
from ..providers.interface import ControlPlane, ResourceState
from ..utils.execution import call_with_timeout


class DriftPolicy(str, Enum):
    UPDATE = "update"     # re-apply in place
    STRICT = "strict"     # fail with ConfigurationDrift


class Existence(str, Enum):
    ABSENT = "absent"
    EQUIVALENT = "equivalent"
    DRIFTED = "drifted"


@dataclass
class IdempotencyCheck:
    outcome: Existence
    state: Optional[ResourceState] = None
    drifted: List[str] = field(default_factory=list)


_MISSING = object()


def diverging_keys(
    desired: Dict[str, Any],
    observed: Dict[str, Any],
    unobservable: Iterable[str] = (),
) -> List[str]:
    """
    Keys whose desired value differs from what the environment reports.

    Keys in *unobservable* (secret-backed parameters) only count when the
    environment echoes a value back; a missing or null value is not drift.
    """
    hidden = set(unobservable)
    out = []
    for key, want in desired.items():
        have = observed.get(key, _MISSING)
        if key in hidden and (have is _MISSING or have is None):
            continue
        if have is _MISSING or have != want:
            out.append(key)
    return sorted(out)


class IdempotencyChecker:
    """
    Asks the control plane whether a descriptor's resource already exists
    in the desired state. The environment is the only source of truth; no
    local state is consulted.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        *,
        policy: DriftPolicy = DriftPolicy.UPDATE,
        timeout: Optional[float] = None,
    ) -> None:
        self.control_plane = control_plane
        self.policy = DriftPolicy(policy)
        self.timeout = timeout

    def check(
        self,
        descriptor: ResourceDescriptor,
        desired: Dict[str, Any],
        secret_keys: Iterable[str] = (),
    ) -> IdempotencyCheck:
        state = call_with_timeout(
            lambda: self.control_plane.exists(descriptor.kind, descriptor.id),
            self.timeout,
            what=f"exists {descriptor.idempotency_key}",
        )
        if state is None:
            return IdempotencyCheck(Existence.ABSENT)

        drifted = diverging_keys(desired, dict(state.parameters or {}), secret_keys)
        if not drifted:
            return IdempotencyCheck(Existence.EQUIVALENT, state)
        if self.policy is DriftPolicy.STRICT:
            raise ConfigurationDrift(descriptor.id, drifted)
        return IdempotencyCheck(Existence.DRIFTED, state, drifted)
