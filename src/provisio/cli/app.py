# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/cli/app.py
from __future__ import annotations

import signal
from pathlib import Path
from typing import Dict, List, Optional

import typer

from provisio.config.loader import load_deployment, parse_overrides
from provisio.config.models import Deployment
from provisio.deploy.executor import DeployOptions
from provisio.deploy.idempotency import DriftPolicy
from provisio.deploy.orchestrator import Orchestrator
from provisio.deploy.planner import plan as make_plan
from provisio.errors import ProvisioError, TemplateError, ValidationError
from provisio.logging.log import init_logging
from provisio.observers.console import ConsoleObserver
from provisio.observers.jsonfile import JsonFileObserver
from provisio.observers.logger import LoggerObserver
from provisio.providers.azure_cli import AzureCliControlPlane, KeyVaultCliSecretStore
from provisio.providers.memory import InMemoryControlPlane, InMemorySecretStore


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="provisio: dependency-ordered resource provisioning")


def _load(templates: List[Path], overrides: Optional[List[str]]) -> Deployment:
    try:
        return load_deployment(templates, parse_overrides(overrides or []))
    except (TemplateError, ValidationError) as exc:
        typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)


def parse_kind_templates(items: Optional[List[str]]) -> Dict[str, Path]:
    """--kind Microsoft.KeyVault/vaults=bicep/keyvault.bicep"""
    out: Dict[str, Path] = {}
    for item in items or []:
        kind, sep, path = item.rpartition("=")
        if not sep or not kind or not path:
            raise typer.BadParameter(f"--kind must look like KIND=PATH, got {item!r}")
        out[kind] = Path(path)
    return out


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("plan")
def plan_cmd(
    template: List[Path] = typer.Option(..., "--template", "-t", exists=True, dir_okay=False, help="Template YAML (repeatable)"),
    set_: Optional[List[str]] = typer.Option(None, "--set", help="Override a deployment flag, key=value (repeatable)"),
):
    """Show the waves and exclusions without touching the environment."""
    deployment = _load(template, set_)
    try:
        result = make_plan(deployment)
    except ValidationError as exc:
        typer.secho(f"{exc.kind}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    typer.echo(f"deployment: {deployment.config.name} ({deployment.config.environment})")
    for i, wave in enumerate(result.waves):
        typer.echo(f"wave {i}:")
        for rid in wave:
            d = result.descriptors[rid]
            secrets = [r.label() for r in d.secret_refs()]
            extra = f"  secrets: {', '.join(secrets)}" if secrets else ""
            typer.echo(f"  - {rid} [{d.kind}]{extra}")
    if result.excluded:
        typer.echo("excluded:")
        for rid, reason in result.excluded.items():
            typer.echo(f"  - {rid}: {reason}")


@app.command("apply")
def apply_cmd(
    template: List[Path] = typer.Option(..., "--template", "-t", exists=True, dir_okay=False, help="Template YAML (repeatable)"),
    set_: Optional[List[str]] = typer.Option(None, "--set", help="Override a deployment flag, key=value (repeatable)"),
    resource_group: Optional[str] = typer.Option(None, "--resource-group", "-g"),
    subscription: Optional[str] = typer.Option(None, "--subscription"),
    location: Optional[str] = typer.Option(None, "--location", help="Create the resource group here if it is missing"),
    kind: Optional[List[str]] = typer.Option(None, "--kind", help="KIND=TEMPLATE_FILE (repeatable)"),
    simulate: bool = typer.Option(False, "--simulate", help="Use an in-memory environment"),
    max_concurrency: int = typer.Option(4, "--max-concurrency", min=1),
    retries: int = typer.Option(3, "--retries", min=0),
    backoff: float = typer.Option(2.0, "--backoff-seconds", min=0.0),
    apply_timeout: float = typer.Option(1800.0, "--apply-timeout"),
    strict_drift: bool = typer.Option(False, "--strict-drift", help="Fail instead of updating drifted resources"),
    report_path: Optional[Path] = typer.Option(None, "--report", help="Write the JSON report here"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Apply every included resource, wave by wave."""
    deployment = _load(template, set_)
    logger, run_id, log_path = init_logging(
        base_dir=log_dir, deployment=deployment.config.name, verbose=debug
    )

    if simulate:
        control_plane = InMemoryControlPlane()
        secret_store = InMemorySecretStore(fallback="simulated-secret")
    else:
        rg = resource_group or deployment.config.lookup("resourceGroup")
        if not rg:
            raise typer.BadParameter("--resource-group is required (or set flag resourceGroup)")
        control_plane = AzureCliControlPlane(
            str(rg),
            parse_kind_templates(kind),
            subscription=subscription,
            timeout=apply_timeout,
        )
        secret_store = KeyVaultCliSecretStore()
        if location:
            try:
                control_plane.ensure_resource_group(location)
            except ProvisioError as exc:
                typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
                raise typer.Exit(code=1)

    options = DeployOptions(
        max_concurrency=max_concurrency,
        retries=retries,
        backoff_seconds=backoff,
        apply_timeout_seconds=apply_timeout,
        drift_policy=DriftPolicy.STRICT if strict_drift else DriftPolicy.UPDATE,
    )
    observers = [
        ConsoleObserver(),
        LoggerObserver(logger),
        JsonFileObserver(log_path.with_suffix(".jsonl")),
    ]
    orch = Orchestrator(control_plane, secret_store, options=options, observers=observers, run_id=run_id)

    def _interrupt(signum, frame):
        typer.secho("\ninterrupt: finishing in-flight resources, starting nothing new", fg=typer.colors.YELLOW)
        orch.cancel()

    previous = signal.signal(signal.SIGINT, _interrupt)
    try:
        report = orch.apply(deployment)
    finally:
        signal.signal(signal.SIGINT, previous)

    typer.echo("")
    typer.echo(f"summary: {report.summary()}")
    if report.fault is not None:
        typer.secho(f"fault: {report.fault.kind}: {report.fault.message}", fg=typer.colors.RED)
    for o in report.failures():
        detail = o.error or o.reason or ""
        typer.secho(f"  {o.name}: {o.status.value} {o.error_kind or ''} {detail}".rstrip(), fg=typer.colors.RED)

    if report_path is not None:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(report.to_json())
        typer.echo(f"report: {report_path}")

    raise typer.Exit(code=report.exit_code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
