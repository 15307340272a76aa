# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/observers/console.py
import typer

from .events import (
    BaseEvent,
    ResourceCancelled,
    ResourceExcluded,
    ResourceFailed,
    ResourceSkipped,
    ResourceSucceeded,
    ResourceUpstreamFailed,
    WaveStarted,
)

_COLORS = {
    ResourceSucceeded: typer.colors.GREEN,
    ResourceSkipped: typer.colors.BLUE,
    ResourceExcluded: typer.colors.BRIGHT_BLACK,
    ResourceFailed: typer.colors.RED,
    ResourceUpstreamFailed: typer.colors.RED,
    ResourceCancelled: typer.colors.YELLOW,
}


class ConsoleObserver:
    """One line per resource outcome, plus a header per wave."""

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, WaveStarted):
            typer.echo(f"\n[wave {event.index}] {', '.join(event.resources)}")
            return
        color = _COLORS.get(type(event))
        if color is None:
            return
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(
            f"{x}={y}" for x, y in d.items() if x not in ("ts", "run_id", "env", "context", "name")
        )
        typer.secho(f"  {d['name']:<24} {k} {data}", fg=color)
