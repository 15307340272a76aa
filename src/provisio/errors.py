# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/errors.py
from __future__ import annotations

from typing import Iterable, List


class ProvisioError(RuntimeError):
    """Base class for orchestration failures."""

    kind = "ProvisioError"


class TemplateError(ProvisioError):
    """Raised when a template or config file cannot be loaded."""

    kind = "TemplateError"


# ---------------------------------------------------------------------
# Validation: fatal to the whole run
# ---------------------------------------------------------------------
class ValidationError(ProvisioError):
    kind = "ValidationError"

    def __init__(self, message: str, ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.ids: List[str] = list(ids)


class DuplicateResource(ValidationError):
    kind = "DuplicateResource"


class SelfDependency(ValidationError):
    kind = "SelfDependency"


class UnknownDependency(ValidationError):
    kind = "UnknownDependency"


class InvalidCondition(ValidationError):
    kind = "InvalidCondition"


class CycleDetected(ValidationError):
    kind = "CycleDetected"

    def __init__(self, cycle: Iterable[str]) -> None:
        cycle = list(cycle)
        super().__init__(f"Cyclic dependency detected: {' -> '.join(cycle + cycle[:1])}", cycle)

    @property
    def cycle(self) -> List[str]:
        return self.ids


class SchedulerInvariantViolated(ValidationError):
    kind = "SchedulerInvariantViolated"


# ---------------------------------------------------------------------
# Resolution: fatal to the owning descriptor
# ---------------------------------------------------------------------
class ResolutionError(ProvisioError):
    kind = "ResolutionError"


class SecretNotFound(ResolutionError):
    kind = "SecretNotFound"

    def __init__(self, store: str, name: str) -> None:
        super().__init__(f"Secret '{name}' not found in store '{store}'")
        self.store = store
        self.name = name


class SecretStoreUnavailable(ResolutionError):
    kind = "SecretStoreUnavailable"


# ---------------------------------------------------------------------
# Application: raised by the control plane or the executor
# ---------------------------------------------------------------------
class ApplicationError(ProvisioError):
    kind = "ApplicationError"
    transient = False


class TransientError(ApplicationError):
    """Timeouts, throttling, eventual-consistency races. Retried."""

    kind = "Transient"
    transient = True


class CallTimeout(TransientError):
    kind = "Timeout"


class PermanentError(ApplicationError):
    """Malformed descriptor, authorization denial, quota. Never retried."""

    kind = "Permanent"


class ConfigurationDrift(ApplicationError):
    kind = "ConfigurationDrift"

    def __init__(self, resource_id: str, keys: Iterable[str]) -> None:
        keys = sorted(keys)
        super().__init__(
            f"Resource '{resource_id}' exists with diverging configuration: {', '.join(keys)}"
        )
        self.resource_id = resource_id
        self.keys = keys


class MissingOutput(ApplicationError):
    kind = "MissingOutput"
