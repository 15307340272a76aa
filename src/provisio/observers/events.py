# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict, field
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single deploy invocation
    env: str          # dev/staging/prod
    context: Optional[str]  # deployment name

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


def stamp(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Same run context with a fresh timestamp."""
    return {**ctx, "ts": new_ctx(ctx["env"], ctx["context"], ctx["run_id"])["ts"]}


# ---------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    waves: List[List[str]]
    excluded: List[str] = field(default_factory=list)

@dataclass(frozen=True)
class PlanFailed(BaseEvent):
    error: str
    kind: str = "ValidationError"
    ids: List[str] = field(default_factory=list)

@dataclass(frozen=True)
class ResourceExcluded(BaseEvent):
    name: str
    reason: str


# ---------------------------------------------------------------------
# Waves
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class WaveStarted(BaseEvent):
    index: int
    resources: List[str]

@dataclass(frozen=True)
class WaveCompleted(BaseEvent):
    index: int
    statuses: Dict[str, str]


# ---------------------------------------------------------------------
# Resource lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ResourceStarted(BaseEvent):
    name: str
    kind: str
    wave: int

@dataclass(frozen=True)
class SecretsResolved(BaseEvent):
    name: str
    secrets: List[str]    # "store/name" labels, never values

@dataclass(frozen=True)
class RetryScheduled(BaseEvent):
    name: str
    operation: str
    attempt: int
    delay_s: float
    error: str

@dataclass(frozen=True)
class ApplyAttempt(BaseEvent):
    name: str
    attempt: int
    mode: str         # "create" | "update"

@dataclass(frozen=True)
class ResourceSkipped(BaseEvent):
    name: str
    reason: str

@dataclass(frozen=True)
class ResourceSucceeded(BaseEvent):
    name: str
    status: str
    attempts: int
    duration_ms: int

@dataclass(frozen=True)
class ResourceFailed(BaseEvent):
    name: str
    error_kind: str
    error: str
    attempts: int = 0

@dataclass(frozen=True)
class ResourceUpstreamFailed(BaseEvent):
    name: str
    upstream: List[str]

@dataclass(frozen=True)
class ResourceCancelled(BaseEvent):
    name: str


# ---------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunCancelled(BaseEvent):
    pending: int

@dataclass(frozen=True)
class RunAborted(BaseEvent):
    error: str
    kind: str

@dataclass(frozen=True)
class DeploySummary(BaseEvent):
    counts: Dict[str, int]
    ok: bool
