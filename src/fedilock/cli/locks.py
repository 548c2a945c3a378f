"""
CLI: ``fedilock driver | acquire | release | status``: lock administration.
"""

from __future__ import annotations

import typer

from fedilock.cli.utils import (
    console,
    err_console,
    load_settings,
    make_service,
    output_json,
    print_attempts,
    resolve_or_exit,
)
from fedilock.core.config.settings import FediLockSettings


def _settings(ctx: typer.Context) -> FediLockSettings:
    obj = ctx.obj or {}
    return obj.get("settings") or load_settings()


def show_driver(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Resolve and show the active lock driver."""
    service = make_service(_settings(ctx))
    name = resolve_or_exit(service)

    if json_out:
        output_json(
            {
                "driver": name,
                "owner": service.driver.owner,
                "attempts": [a.to_dict() for a in service.selection],
            }
        )
        return

    console.print(f"[bold]Lock driver:[/bold] [cyan]{name}[/cyan]")
    print_attempts(service.selection)


def acquire(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Lock key"),
    timeout: float = typer.Option(0.0, "--timeout", "-t", help="Seconds to wait for the key."),
    ttl: int | None = typer.Option(None, "--ttl", help="Lease lifetime in seconds."),
    owner: str | None = typer.Option(None, "--owner", help="Owner token to acquire as."),
) -> None:
    """Acquire a lease on KEY (exit code 1 when contended)."""
    settings = _settings(ctx)
    service = make_service(settings, owner=owner)
    name = resolve_or_exit(service)

    try:
        acquired = service.acquire(key, timeout=timeout, ttl=ttl)
    except ValueError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e}")
        raise typer.Exit(code=2) from e

    if not acquired:
        err_console.print(f"[yellow]Contended:[/yellow] {key} is held by another owner")
        raise typer.Exit(code=1)

    console.print(f"[green]Acquired[/green] {key} via {name}")
    console.print(f"  [cyan]owner[/cyan]: {service.driver.owner}")
    console.print(f"  [cyan]ttl[/cyan]: {ttl or settings.lock_ttl_seconds}s")
    if name == "semaphore":
        console.print("[dim]Semaphore leases end when this command exits.[/dim]")


def release(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Lock key"),
    override: bool = typer.Option(False, "--override", help="Remove the lease whoever holds it."),
    owner: str | None = typer.Option(None, "--owner", help="Owner token that holds the lease."),
) -> None:
    """Release KEY (exit code 1 when nothing was released)."""
    service = make_service(_settings(ctx), owner=owner)
    resolve_or_exit(service)

    if service.release(key, override=override):
        console.print(f"[green]Released[/green] {key}")
        return

    err_console.print(f"[yellow]Not released:[/yellow] no lease on {key} for this owner")
    raise typer.Exit(code=1)


def status(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Lock key"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show whether KEY is locked."""
    service = make_service(_settings(ctx))
    name = resolve_or_exit(service)
    locked = service.is_locked(key)

    if json_out:
        output_json({"key": key, "driver": name, "locked": locked})
        return

    state = "[red]locked[/red]" if locked else "[green]free[/green]"
    console.print(f"{key}: {state} ({name})")
