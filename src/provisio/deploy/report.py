# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/deploy/report.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.serialize import to_jsonable


class ResourceStatus(str, Enum):
    PENDING = "Pending"
    RESOLVING_SECRETS = "Resolving-Secrets"
    CHECKING_IDEMPOTENCY = "Checking-Idempotency"
    APPLYING = "Applying"
    CREATED = "Created"
    UPDATED = "Updated"
    SKIPPED = "Skipped-AlreadyExists"
    FAILED = "Failed"
    FAILED_UPSTREAM = "Failed-UpstreamFailure"
    EXCLUDED = "Excluded"
    CANCELLED = "Cancelled"
    ABORTED = "Aborted"

    @property
    def terminal(self) -> bool:
        return self not in _IN_FLIGHT

    @property
    def succeeded(self) -> bool:
        return self in (ResourceStatus.CREATED, ResourceStatus.UPDATED, ResourceStatus.SKIPPED)

    @property
    def failed(self) -> bool:
        return self in (ResourceStatus.FAILED, ResourceStatus.FAILED_UPSTREAM)


_IN_FLIGHT = {
    ResourceStatus.PENDING,
    ResourceStatus.RESOLVING_SECRETS,
    ResourceStatus.CHECKING_IDEMPOTENCY,
    ResourceStatus.APPLYING,
}

# statuses that do not fail a run
_OK_STATUSES = {
    ResourceStatus.CREATED,
    ResourceStatus.UPDATED,
    ResourceStatus.SKIPPED,
    ResourceStatus.EXCLUDED,
}


@dataclass
class ResourceOutcome:
    name: str
    kind: str
    status: ResourceStatus = ResourceStatus.PENDING
    wave: Optional[int] = None
    attempts: int = 0
    error_kind: Optional[str] = None
    error: Optional[str] = None      # already scrubbed of secret values
    reason: Optional[str] = None
    secrets: List[str] = field(default_factory=list)      # "store/name" labels only
    outputs: Dict[str, Any] = field(default_factory=dict)
    upstream: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d = to_jsonable(self)
        return {k: v for k, v in d.items() if v not in (None, [], {})}


@dataclass
class RunFault:
    kind: str
    message: str
    ids: List[str] = field(default_factory=list)


@dataclass
class DeployReport:
    deployment: str = "deployment"
    environment: str = "dev"
    waves: List[List[str]] = field(default_factory=list)
    outcomes: List[ResourceOutcome] = field(default_factory=list)
    fault: Optional[RunFault] = None
    cancelled: bool = False

    def add(self, outcome: ResourceOutcome) -> None:
        self.outcomes.append(outcome)

    def get(self, name: str) -> ResourceOutcome:
        for o in self.outcomes:
            if o.name == name:
                return o
        raise KeyError(name)

    def statuses(self) -> Dict[str, str]:
        return {o.name: o.status.value for o in sorted(self.outcomes, key=lambda o: o.name)}

    def counts(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for o in self.outcomes:
            out[o.status.value] = out.get(o.status.value, 0) + 1
        return dict(sorted(out.items()))

    @property
    def succeeded(self) -> bool:
        if self.fault is not None:
            return False
        return all(o.status in _OK_STATUSES for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def summary(self) -> str:
        counts = self.counts()
        return " ".join(f"{k}={v}" for k, v in counts.items()) or "empty"

    def failures(self) -> List[ResourceOutcome]:
        return [o for o in self.outcomes if o.status not in _OK_STATUSES]

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "deployment": self.deployment,
            "environment": self.environment,
            "succeeded": self.succeeded,
            "cancelled": self.cancelled,
            "summary": self.counts(),
            "waves": [list(w) for w in self.waves],
            "resources": [o.to_dict() for o in sorted(self.outcomes, key=lambda o: o.name)],
        }
        if self.fault is not None:
            d["fault"] = to_jsonable(self.fault)
        return d

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True, default=str)
