"""
Centralized settings for fedilock.

Manifesto:
    One validated, cached settings object holds the lock backend choice, the
    cache connection details consulted by auto-selection, the database URL
    and the default timeout/TTL.  Every value comes from ``FEDILOCK_*``
    environment variables or a ``.env`` file.

Tags:
    fedilock, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .components import (
    CacheDriverName,
    ComponentWarning,
    LockDriverName,
    validate_component_combination,
)


class FediLockSettings(BaseSettings):
    """fedilock configuration.

    All fields can be set via ``FEDILOCK_*`` environment variables (e.g.
    ``FEDILOCK_LOCK_DRIVER=redis``) or through a ``.env`` file.
    ``memcached_hosts`` takes a JSON list: ``'["10.0.0.1:11211", "10.0.0.2"]'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="FEDILOCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Component backends ───────────────────────────────────────
    lock_driver: LockDriverName = Field(default=LockDriverName.DEFAULT)
    cache_driver: CacheDriverName = Field(default=CacheDriverName.DATABASE)

    # ── Lock defaults ────────────────────────────────────────────
    lock_timeout_seconds: float = Field(default=120, ge=0)
    lock_ttl_seconds: int = Field(default=300, ge=1)
    lock_poll_base_delay: float = Field(default=0.05, gt=0)
    lock_poll_max_delay: float = Field(default=1.0, gt=0)

    # ── Semaphore ────────────────────────────────────────────────
    semaphore_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "fedilock",
        description="Directory holding per-key OS lock files",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///data/fedilock.db")

    # ── Redis ────────────────────────────────────────────────────
    redis_host: str = Field(default="127.0.0.1")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    redis_password: str | None = Field(default=None)

    # ── Memcache / Memcached ─────────────────────────────────────
    memcache_host: str = Field(default="127.0.0.1")
    memcache_port: int = Field(default=11211)
    memcached_hosts: list[str] = Field(default=["127.0.0.1:11211"])
    cache_connect_timeout: float = Field(default=2.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="auto", description="json, console or auto")

    # ── Computed ─────────────────────────────────────────────────
    component_warnings: list[ComponentWarning] = Field(default_factory=list, exclude=True)

    @field_validator("memcached_hosts")
    @classmethod
    def _check_hosts(cls, value: list[str]) -> list[str]:
        for entry in value:
            _, _, port = entry.rpartition(":")
            if ":" in entry and not port.isdigit():
                raise ValueError(f"memcached host {entry!r} must look like 'host' or 'host:port'")
        return value

    @model_validator(mode="after")
    def _validate_components(self) -> FediLockSettings:
        """Run component-combination validation after all fields are set."""
        warnings = validate_component_combination(
            lock_driver=self.lock_driver,
            cache_driver=self.cache_driver,
            poll_base_delay=self.lock_poll_base_delay,
            poll_max_delay=self.lock_poll_max_delay,
        )
        object.__setattr__(self, "component_warnings", warnings)
        return self

    # ── Derived properties ───────────────────────────────────────

    @property
    def memcached_servers(self) -> list[tuple[str, int]]:
        """``memcached_hosts`` as ``(host, port)`` tuples (default port 11211)."""
        servers = []
        for entry in self.memcached_hosts:
            host, sep, port = entry.rpartition(":")
            if not sep:
                servers.append((entry, 11211))
            else:
                servers.append((host, int(port)))
        return servers

    @property
    def json_logs(self) -> bool | None:
        """``log_format`` mapped onto ``configure_logging(json_format=...)``."""
        return {"json": True, "console": False}.get(self.log_format.lower())


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, FediLockSettings] = {}


def get_settings(*, _force_reload: bool = False) -> FediLockSettings:
    """Load, validate, and cache a :class:`FediLockSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = FediLockSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
