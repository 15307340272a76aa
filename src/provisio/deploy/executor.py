# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from ..config.models import (
    ConfigRef,
    DeploymentConfig,
    LiteralValue,
    OutputRef,
    ResourceDescriptor,
    SecretRef,
)
from ..errors import (
    ProvisioError,
    SchedulerInvariantViolated,
    TransientError,
)
from ..providers.interface import ControlPlane, SecretStore
from ..secrets.resolver import ResolvedSecrets, SecretResolver
from ..utils.execution import call_with_timeout
from ..utils.retry import Backoff, retry_call
from ..utils.serialize import redact
from .idempotency import DriftPolicy, Existence, IdempotencyChecker
from .outputs import OutputStore
from .planner import DeploymentPlan
from .report import ResourceOutcome, ResourceStatus, RunFault

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    ApplyAttempt,
    ResourceCancelled,
    ResourceFailed,
    ResourceSkipped,
    ResourceStarted,
    ResourceSucceeded,
    ResourceUpstreamFailed,
    RetryScheduled,
    SecretsResolved,
    WaveCompleted,
    WaveStarted,
    stamp,
)

log = logging.getLogger("provisio")


@dataclass
class DeployOptions:
    max_concurrency: int = 4
    retries: int = 3                      # extra attempts after a transient failure
    backoff_seconds: float = 2.0
    backoff_factor: float = 2.0
    backoff_max_seconds: float = 60.0
    secret_retries: int = 3
    secret_timeout_seconds: Optional[float] = 30.0
    exists_timeout_seconds: Optional[float] = 60.0
    apply_timeout_seconds: Optional[float] = 1800.0
    drift_policy: DriftPolicy = DriftPolicy.UPDATE

    def backoff(self) -> Backoff:
        return Backoff(
            base=self.backoff_seconds,
            factor=self.backoff_factor,
            cap=self.backoff_max_seconds,
        )


class Executor:
    """
    Runs a DeploymentPlan wave by wave.

    Members of a wave run concurrently (bounded by max_concurrency); the
    next wave starts only once every member has reached a terminal status.
    Each task writes only its own ResourceOutcome; outputs go through the
    publish-once OutputStore.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        secret_store: SecretStore,
        config: DeploymentConfig,
        *,
        options: Optional[DeployOptions] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.options = options or DeployOptions()
        self.control_plane = control_plane
        self.config = config
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or {"ts": "", "run_id": "", "env": config.environment, "context": config.name}
        self.cancel_event = cancel_event or threading.Event()
        self.sleep = sleep
        self.outputs = OutputStore()
        self.resolver = SecretResolver(
            secret_store,
            attempts=self.options.secret_retries + 1,
            backoff=self.options.backoff(),
            timeout=self.options.secret_timeout_seconds,
            sleep=sleep,
        )
        self.checker = IdempotencyChecker(
            control_plane,
            policy=self.options.drift_policy,
            timeout=self.options.exists_timeout_seconds,
        )
        self._fault: Optional[RunFault] = None
        self._fault_lock = threading.Lock()
        # every secret value resolved during this run; never leaves the executor
        self._secret_values: Set[str] = set()
        self._secret_lock = threading.Lock()

    # ------------------------- events -------------------------

    def _emit(self, event_cls, **kwargs) -> None:
        self.bus.emit(event_cls(**kwargs, **stamp(self.run_ctx)))

    def _retry_hook(self, name: str, operation: str) -> Callable[[int, Exception, float], None]:
        def _on_retry(attempt: int, exc: Exception, delay: float) -> None:
            error = self.scrub(str(exc))
            log.warning("%s: %s attempt %d failed (%s), retrying in %.1fs", name, operation, attempt, error, delay)
            self._emit(RetryScheduled, name=name, operation=operation, attempt=attempt, delay_s=delay, error=error)
        return _on_retry

    # ------------------------- redaction -------------------------

    def _remember(self, secrets: ResolvedSecrets) -> None:
        with self._secret_lock:
            self._secret_values.update(secrets.values.values())

    def scrub(self, value: Any) -> Any:
        """Mask every secret value resolved so far in this run, whichever descriptor resolved it."""
        with self._secret_lock:
            known = list(self._secret_values)
        return redact(value, known)

    # ------------------------- run -------------------------

    @property
    def fault(self) -> Optional[RunFault]:
        return self._fault

    def run(self, plan: DeploymentPlan, outcomes: Dict[str, ResourceOutcome]) -> None:
        with ThreadPoolExecutor(
            max_workers=max(1, self.options.max_concurrency),
            thread_name_prefix="provisio-wave",
        ) as pool:
            for index, wave in enumerate(plan.waves):
                if self.cancel_event.is_set() or self._fault is not None:
                    break
                self._emit(WaveStarted, index=index, resources=list(wave))
                log.info("wave %d: %s", index, ", ".join(wave))

                futures = [
                    pool.submit(self._execute, plan.descriptors[rid], outcomes[rid], plan, outcomes)
                    for rid in wave
                ]
                wait(futures)
                for f in futures:
                    f.result()

                self._emit(
                    WaveCompleted,
                    index=index,
                    statuses={rid: outcomes[rid].status.value for rid in wave},
                )

    # ------------------------- one descriptor -------------------------

    def _execute(
        self,
        d: ResourceDescriptor,
        outcome: ResourceOutcome,
        plan: DeploymentPlan,
        outcomes: Dict[str, ResourceOutcome],
    ) -> None:
        if self.cancel_event.is_set():
            self._cancel(outcome)
            return

        upstream = sorted(
            p for p in plan.graph.predecessors[d.id] if not outcomes[p].status.succeeded
        )
        unfinished = [p for p in upstream if not outcomes[p].status.terminal]
        if unfinished:
            exc = SchedulerInvariantViolated(
                f"Resource '{d.id}' scheduled before {', '.join(unfinished)} finished",
                [d.id, *unfinished],
            )
            self._fail(d, outcome, exc.kind, str(exc))
            self._set_fault(RunFault(kind=exc.kind, message=str(exc), ids=list(exc.ids)))
            return
        if upstream:
            if any(outcomes[p].status.failed for p in upstream):
                outcome.status = ResourceStatus.FAILED_UPSTREAM
                outcome.upstream = upstream
                outcome.reason = f"upstream failed: {', '.join(upstream)}"
                self._emit(ResourceUpstreamFailed, name=d.id, upstream=upstream)
            else:
                self._cancel(outcome)
            return

        self._emit(ResourceStarted, name=d.id, kind=d.kind, wave=outcome.wave if outcome.wave is not None else -1)
        secrets = ResolvedSecrets()
        t0 = time.time()
        try:
            outcome.status = ResourceStatus.RESOLVING_SECRETS
            secrets = self.resolver.resolve(d, on_retry=self._retry_hook(d.id, "secret"))
            self._remember(secrets)
            outcome.secrets = list(secrets.labels)
            if secrets.labels:
                self._emit(SecretsResolved, name=d.id, secrets=list(secrets.labels))

            desired = self._materialize(d, secrets)
            secret_keys = [k for k, v in d.parameters.items() if isinstance(v, SecretRef)]

            outcome.status = ResourceStatus.CHECKING_IDEMPOTENCY
            check, _ = retry_call(
                lambda: self.checker.check(d, desired, secret_keys),
                attempts=self.options.retries + 1,
                backoff=self.options.backoff(),
                retry_on=(TransientError,),
                on_retry=self._retry_hook(d.id, "exists"),
                sleep=self.sleep,
            )

            if check.outcome is Existence.EQUIVALENT:
                published = self.outputs.publish(d.id, check.state.outputs if check.state else {})
                outcome.outputs = self.scrub(dict(published))
                outcome.status = ResourceStatus.SKIPPED
                outcome.reason = "already exists with equivalent configuration"
                self._emit(ResourceSkipped, name=d.id, reason=outcome.reason)
                return

            if self.cancel_event.is_set():
                self._cancel(outcome)
                return

            mode = "update" if check.outcome is Existence.DRIFTED else "create"
            if check.drifted:
                outcome.reason = f"drifted: {', '.join(check.drifted)}"
            outcome.status = ResourceStatus.APPLYING

            attempt_no = [0]

            def _apply() -> Dict[str, Any]:
                attempt_no[0] += 1
                self._emit(ApplyAttempt, name=d.id, attempt=attempt_no[0], mode=mode)
                return call_with_timeout(
                    lambda: self.control_plane.apply(d.kind, d.id, desired),
                    self.options.apply_timeout_seconds,
                    what=f"apply {d.idempotency_key}",
                )

            try:
                result, attempts = retry_call(
                    _apply,
                    attempts=self.options.retries + 1,
                    backoff=self.options.backoff(),
                    retry_on=(TransientError,),
                    on_retry=self._retry_hook(d.id, "apply"),
                    sleep=self.sleep,
                )
            finally:
                outcome.attempts = attempt_no[0]

            published = self.outputs.publish(d.id, result or {})
            outcome.outputs = self.scrub(dict(published))
            outcome.status = ResourceStatus.UPDATED if mode == "update" else ResourceStatus.CREATED
            self._emit(
                ResourceSucceeded,
                name=d.id,
                status=outcome.status.value,
                attempts=attempts,
                duration_ms=int((time.time() - t0) * 1000),
            )

        except ProvisioError as exc:
            self._fail(d, outcome, exc.kind, str(exc))
            if isinstance(exc, SchedulerInvariantViolated):
                self._set_fault(RunFault(kind=exc.kind, message=self.scrub(str(exc)), ids=list(exc.ids)))
        except Exception as exc:
            # unclassified control-plane errors are treated as permanent
            log.debug("%s: unexpected %s from control plane", d.id, type(exc).__name__)
            self._fail(d, outcome, type(exc).__name__, str(exc))

    def _materialize(self, d: ResourceDescriptor, secrets: ResolvedSecrets) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for key, value in d.parameters.items():
            if isinstance(value, LiteralValue):
                params[key] = value.value
            elif isinstance(value, ConfigRef):
                params[key] = self.config.lookup(value.flag, value.default)
            elif isinstance(value, SecretRef):
                params[key] = secrets.value_for(value)
            elif isinstance(value, OutputRef):
                params[key] = self.outputs.read(value)
        return params

    def _fail(self, d: ResourceDescriptor, outcome: ResourceOutcome, kind: str, message: str) -> None:
        message = self.scrub(message)
        outcome.status = ResourceStatus.FAILED
        outcome.error_kind = kind
        outcome.error = message
        log.error("%s failed (%s): %s", d.id, kind, message)
        self._emit(ResourceFailed, name=d.id, error_kind=kind, error=message, attempts=outcome.attempts)

    def _cancel(self, outcome: ResourceOutcome) -> None:
        outcome.status = ResourceStatus.CANCELLED
        outcome.reason = "run cancelled before this resource started"
        self._emit(ResourceCancelled, name=outcome.name)

    def _set_fault(self, fault: RunFault) -> None:
        with self._fault_lock:
            if self._fault is None:
                self._fault = fault
