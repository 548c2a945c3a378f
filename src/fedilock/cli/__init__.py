"""
CLI layer for fedilock.

Provides a Typer application whose commands delegate to
:class:`~fedilock.core.locking.LockService`.  This package handles only
terminal transport: argument parsing, coloured output, and tables.

Entry point::

    fedilock --help
"""

from fedilock.cli.app import app

__all__ = ["app"]
