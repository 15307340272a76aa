# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/deploy/orchestrator.py
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from ..config.models import Deployment
from ..errors import ValidationError
from ..providers.interface import ControlPlane, SecretStore
from .executor import DeployOptions, Executor
from .planner import DeploymentPlan, plan
from .report import DeployReport, ResourceOutcome, ResourceStatus, RunFault

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.interface import Observer
from ..observers.events import DeploySummary, RunAborted, RunCancelled, new_ctx, stamp

log = logging.getLogger("provisio")


class Orchestrator:
    """
    Filter -> graph -> schedule -> per wave (secrets, idempotency, apply,
    outputs) -> report.

    Stateless between runs: convergence on re-run comes from asking the
    control plane, never from a local cache.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        secret_store: SecretStore,
        *,
        options: Optional[DeployOptions] = None,
        observers: Optional[List[Observer]] = None,
        run_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.control_plane = control_plane
        self.secret_store = secret_store
        self.options = options or DeployOptions()
        self.bus = EventBus(observers or [])
        self.run_id = run_id
        self.sleep = sleep
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Let in-flight applies finish, start nothing new."""
        if not self._cancel.is_set():
            log.warning("cancellation requested; waiting for in-flight resources")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _ctx(self, deployment: Deployment) -> dict:
        return new_ctx(
            env=deployment.config.environment,
            context=deployment.config.name,
            run_id=self.run_id,
        )

    def plan(self, deployment: Deployment) -> DeploymentPlan:
        return plan(deployment, bus=self.bus, run_ctx=self._ctx(deployment))

    def apply(self, deployment: Deployment) -> DeployReport:
        ctx = self._ctx(deployment)
        report = DeployReport(
            deployment=deployment.config.name,
            environment=deployment.config.environment,
        )

        try:
            deployment_plan = plan(deployment, bus=self.bus, run_ctx=ctx)
        except ValidationError as exc:
            report.fault = RunFault(kind=exc.kind, message=str(exc), ids=list(exc.ids))
            for d in deployment.resources:
                report.add(ResourceOutcome(
                    name=d.id, kind=d.kind, status=ResourceStatus.ABORTED, reason=exc.kind,
                ))
            self.bus.emit(RunAborted(error=str(exc), kind=exc.kind, **stamp(ctx)))
            return self._finish(report, ctx)

        report.waves = [list(w) for w in deployment_plan.waves]
        outcomes: Dict[str, ResourceOutcome] = {}
        for d in deployment.resources:
            if d.id in deployment_plan.excluded:
                report.add(ResourceOutcome(
                    name=d.id,
                    kind=d.kind,
                    status=ResourceStatus.EXCLUDED,
                    reason=deployment_plan.excluded[d.id],
                ))
                continue
            outcome = ResourceOutcome(name=d.id, kind=d.kind, wave=deployment_plan.wave_of(d.id))
            outcomes[d.id] = outcome
            report.add(outcome)

        executor = Executor(
            self.control_plane,
            self.secret_store,
            deployment.config,
            options=self.options,
            bus=self.bus,
            run_ctx=ctx,
            cancel_event=self._cancel,
            sleep=self.sleep,
        )
        executor.run(deployment_plan, outcomes)

        report.fault = executor.fault
        if report.fault is not None:
            self.bus.emit(RunAborted(error=report.fault.message, kind=report.fault.kind, **stamp(ctx)))

        pending = [o for o in outcomes.values() if not o.status.terminal]
        if self._cancel.is_set():
            report.cancelled = True
            self.bus.emit(RunCancelled(pending=len(pending), **stamp(ctx)))
        for o in pending:
            if report.fault is not None:
                o.status = ResourceStatus.ABORTED
                o.reason = f"run aborted: {report.fault.kind}"
            else:
                o.status = ResourceStatus.CANCELLED
                o.reason = "run cancelled before this resource started"

        return self._finish(report, ctx)

    def _finish(self, report: DeployReport, ctx: dict) -> DeployReport:
        report.outcomes.sort(key=lambda o: o.name)
        self.bus.emit(DeploySummary(counts=report.counts(), ok=report.succeeded, **stamp(ctx)))
        log.info("deployment %s finished: %s", report.deployment, report.summary())
        return report


def deploy_all(
    deployment: Deployment,
    control_plane: ControlPlane,
    secret_store: SecretStore,
    options: Optional[DeployOptions] = None,
    observers: Optional[List[Observer]] = None,
) -> DeployReport:
    """
    Apply a deployment in dependency order. Emits observer events if observers are provided.
    """
    return Orchestrator(
        control_plane, secret_store, options=options, observers=observers
    ).apply(deployment)
