"""Provider registry and factory.

Manifesto:
    Configuration names providers by type string (``"CouchDB"``,
    ``"MongoDB"``, ...). The registry maps those strings to provider
    classes so that the service never hard-codes adapter class names, and
    third-party backends can be plugged in with :meth:`ProviderRegistry.register`.

Features:
    - ``ProviderRegistry`` with the built-in providers pre-registered
    - Case-insensitive lookup keeping the registered spelling for listings
    - Lazy import of built-in adapters so that an unused backend's client
      library is only imported when that provider is requested

Tags:
    stowage, provider, registry, factory

Doc-Types:
    api-reference
"""

from __future__ import annotations

import importlib
from typing import Any

from stowage.errors import ProviderNotFoundError

from .base import Provider
from .types import ProviderType

BUILTIN_LOCATION = "stowage.providers"

_BUILTINS: dict[str, str] = {
    ProviderType.MEMORY.value: "stowage.providers.memory:MemoryProvider",
    ProviderType.FILESYSTEM.value: "stowage.providers.filesystem:FileSystemProvider",
    ProviderType.COUCHDB.value: "stowage.providers.couchdb:CouchDBProvider",
    ProviderType.MONGODB.value: "stowage.providers.mongodb:MongoDBProvider",
    ProviderType.REDIS.value: "stowage.providers.redis:RedisProvider",
}


def _load(target: str) -> type[Provider]:
    module_name, _, attr = target.partition(":")
    return getattr(importlib.import_module(module_name), attr)


class ProviderRegistry:
    """
    Registry of provider constructors keyed by type name.

    Pre-registered providers:
    - ``Memory``: :class:`~stowage.providers.memory.MemoryProvider`
    - ``FileSystem``: :class:`~stowage.providers.filesystem.FileSystemProvider`
    - ``CouchDB``: :class:`~stowage.providers.couchdb.CouchDBProvider`
    - ``MongoDB``: :class:`~stowage.providers.mongodb.MongoDBProvider`
    - ``Redis``: :class:`~stowage.providers.redis.RedisProvider`
    """

    def __init__(self, *, defaults: bool = True, location: str = BUILTIN_LOCATION):
        self.location = location
        self._factories: dict[str, type[Provider] | str] = {}
        self._names: dict[str, str] = {}
        if defaults:
            self._register_defaults()

    def _register_defaults(self) -> None:
        for name, target in _BUILTINS.items():
            self._put(name, target)

    def _put(self, name: str, factory: type[Provider] | str) -> None:
        self._factories[name.lower()] = factory
        self._names[name.lower()] = name

    def register(self, name: str, provider_class: type[Provider]) -> type[Provider]:
        """Register (or replace) a provider constructor."""
        self._put(name, provider_class)
        return provider_class

    def provider(self, name: str):
        """Class decorator form of :meth:`register`.

        Example:
            @registry.provider("Sqlite")
            class SqliteProvider(Provider):
                ...
        """

        def decorator(cls: type[Provider]) -> type[Provider]:
            return self.register(name, cls)

        return decorator

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._factories

    def get(self, name: str) -> type[Provider]:
        """Return the provider constructor for ``name``."""
        key = str(name).lower()
        if key not in self._factories:
            raise ProviderNotFoundError(str(name), self.location)
        factory = self._factories[key]
        if isinstance(factory, str):
            factory = _load(factory)
            self._factories[key] = factory
        return factory

    def create(self, name: str, config: Any) -> Provider:
        """Create a provider instance from its configuration."""
        return self.get(name)(config)

    def list_providers(self) -> list[str]:
        """List registered provider type names."""
        return sorted(self._names.values(), key=str.lower)


__all__ = [
    "ProviderRegistry",
    "BUILTIN_LOCATION",
]
