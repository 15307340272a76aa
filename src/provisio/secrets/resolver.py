# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/secrets/resolver.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..config.models import ResourceDescriptor, SecretRef
from ..errors import CallTimeout, SecretStoreUnavailable
from ..providers.interface import SecretStore
from ..utils.execution import call_with_timeout
from ..utils.retry import Backoff, retry_call

log = logging.getLogger("provisio")


@dataclass
class ResolvedSecrets:
    """
    Secret values for one descriptor's apply call.

    Lives only as long as that call. ``labels`` is what reports and events
    may show; ``values`` must never reach a report, event or log line.
    """

    values: Dict[str, str] = field(default_factory=dict, repr=False)
    labels: List[str] = field(default_factory=list)

    def value_for(self, ref: SecretRef) -> str:
        return self.values[ref.label()]


class SecretResolver:
    """
    Fetches secret references right before a descriptor is applied.

    A missing secret (SecretNotFound) fails the descriptor at once. An
    unreachable store (SecretStoreUnavailable, or a call timeout) is
    retried with exponential backoff before it becomes fatal. Nothing is
    cached across descriptors.
    """

    def __init__(
        self,
        store: SecretStore,
        *,
        attempts: int = 3,
        backoff: Backoff = Backoff(),
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.attempts = attempts
        self.backoff = backoff
        self.timeout = timeout
        self.sleep = sleep

    def _fetch(self, ref: SecretRef) -> str:
        try:
            return call_with_timeout(
                lambda: self.store.get(ref.store, ref.name),
                self.timeout,
                what=f"secret {ref.label()}",
            )
        except CallTimeout as exc:
            raise SecretStoreUnavailable(str(exc)) from exc

    def resolve(
        self,
        descriptor: ResourceDescriptor,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    ) -> ResolvedSecrets:
        resolved = ResolvedSecrets()
        for ref in descriptor.secret_refs():
            label = ref.label()
            if label in resolved.values:
                continue
            value, attempts = retry_call(
                lambda: self._fetch(ref),
                attempts=self.attempts,
                backoff=self.backoff,
                retry_on=(SecretStoreUnavailable,),
                on_retry=on_retry,
                sleep=self.sleep,
            )
            log.debug("resolved secret %s for %s (attempts=%d)", label, descriptor.id, attempts)
            resolved.values[label] = value
            resolved.labels.append(label)
        return resolved
