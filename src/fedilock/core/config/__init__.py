"""Centralized configuration and component factories.

Manifesto:
    The lock service has one pluggable dimension that matters (which driver
    backs it) and a handful of connection settings consulted while choosing.
    Without centralized config, every worker parses the same environment
    variables its own way and two workers may disagree about where a lock
    lives, which silently breaks mutual exclusion.

    This package provides a **single validated source of truth** with:

    * **Component enums**: ``LockDriverName``, ``CacheDriverName``
    * **Settings**: validated ``FediLockSettings`` (Pydantic, cached)
    * **Factory functions**: create cache stores and the lock service

Quick start::

    from fedilock.core.config import get_settings, create_lock_service

    settings = get_settings()
    print(settings.lock_driver)        # LockDriverName.DEFAULT
    locks = create_lock_service(settings)

Architecture::

    settings.py       FediLockSettings (Pydantic) + get_settings() cache
    components.py     Driver enums + validate_component_combination()
    factory.py        create_cache_store / create_lock_service

Guardrails:
    ❌ Parsing env vars ad-hoc in each worker
    ✅ ``get_settings().lock_driver`` from the cached instance
    ❌ Constructing Redis / Memcached clients by hand for locking
    ✅ ``create_cache_store(name, settings)`` via the factory layer

Tags:
    fedilock, configuration, settings, factory-pattern, pydantic, env-files

Doc-Types:
    package-overview, module-index
"""

from .components import (
    CacheDriverName,
    ComponentWarning,
    LockDriverName,
    validate_component_combination,
)
from .factory import (
    create_cache_store,
    create_lock_service,
)
from .settings import (
    FediLockSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Components
    "CacheDriverName",
    "ComponentWarning",
    "LockDriverName",
    "validate_component_combination",
    # Factory
    "create_cache_store",
    "create_lock_service",
    # Settings
    "FediLockSettings",
    "clear_settings_cache",
    "get_settings",
]
