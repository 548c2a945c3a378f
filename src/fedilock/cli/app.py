"""
Root Typer application for the fedilock CLI.
"""

from __future__ import annotations

import sys

try:
    import typer
    from typer import Typer
except ImportError:  # pragma: no cover
    print("typer is required for the CLI.  Install with:  pip install fedilock")
    sys.exit(1)

from fedilock.cli.utils import load_settings
from fedilock.core.config.components import LockDriverName
from fedilock.core.logging import configure_logging

app = Typer(
    name="fedilock",
    help="fedilock: named locks for federated server workers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("fedilock")
        except PackageNotFoundError:
            from fedilock import __version__ as v
        typer.echo(f"fedilock {v}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    lock_driver: LockDriverName | None = typer.Option(  # noqa: UP007
        None,
        "--lock-driver",
        help="Override the lock_driver setting.",
    ),
    database_url: str | None = typer.Option(  # noqa: UP007
        None,
        "--database-url",
        help="Override the database_url setting.",
    ),
    log_level: str | None = typer.Option(  # noqa: UP007
        None,
        "--log-level",
        help="Log level for lock events (default: the log_level setting).",
    ),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """fedilock CLI: inspect the lock driver and manage leases."""
    settings = load_settings({"lock_driver": lock_driver, "database_url": database_url})
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.json_logs,
        cache_loggers=False,
    )
    ctx.obj = {"settings": settings}


# ── Command registration ─────────────────────────────────────────────────

from fedilock.cli.locks import acquire, release, show_driver, status  # noqa: E402

app.command("driver")(show_driver)
app.command("acquire")(acquire)
app.command("release")(release)
app.command("status")(status)


if __name__ == "__main__":
    app()
