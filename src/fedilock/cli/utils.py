"""
CLI utility helpers: output formatting and service construction.
"""

from __future__ import annotations

import json
from functools import partial
from typing import Any

try:
    import typer
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table
except ImportError as e:  # pragma: no cover
    raise SystemExit("Missing CLI deps.  Install with:  pip install fedilock") from e

from fedilock.core.config.settings import FediLockSettings
from fedilock.core.errors import BackendUnavailableError
from fedilock.core.locking import DriverSelector, LockService, SelectionAttempt, build_driver

console = Console()
err_console = Console(stderr=True)


# ── Service helper ───────────────────────────────────────────────────────


def load_settings(overrides: dict[str, Any] | None = None) -> FediLockSettings:
    """Settings from the environment, with CLI overrides applied on top."""
    values = {k: v for k, v in (overrides or {}).items() if v is not None}
    return FediLockSettings(**values)


def make_service(settings: FediLockSettings, *, owner: str | None = None) -> LockService:
    """Create a ``LockService``; ``owner`` reuses a token printed by ``acquire``."""
    builder = partial(build_driver, owner=owner) if owner else build_driver
    return LockService(settings, selector=DriverSelector(settings, builder=builder))


def resolve_or_exit(service: LockService) -> str:
    """Resolve the driver, or print the selection attempts and exit with code 2."""
    try:
        return service.driver_name
    except BackendUnavailableError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {escape(e.message)}")
        print_attempts(service.selection, console=err_console)
        raise typer.Exit(code=2) from e


# ── Output helpers ───────────────────────────────────────────────────────


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_attempts(attempts: list[SelectionAttempt], *, console: Console = console) -> None:
    """Render selection attempts as a Rich table."""
    if not attempts:
        console.print("[dim]No selection attempts (driver injected).[/dim]")
        return
    table = Table(title="Driver selection", show_lines=False, pad_edge=False)
    table.add_column("driver")
    table.add_column("result")
    table.add_column("error", overflow="fold")
    for attempt in attempts:
        status = "[green]selected[/green]" if attempt.ok else "[red]failed[/red]"
        table.add_row(attempt.driver, status, escape(attempt.error or ""))
    console.print(table)
