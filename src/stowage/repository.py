"""Repository contract and registry.

A repository is the application-facing object wired to one provider. Any
callable ``(name, provider) -> object`` is a valid repository factory; the
:class:`Repository` base class is a convenience that keeps ``name`` and
``provider`` and forwards the common operations.

Examples:
    >>> registry = RepositoryRegistry()
    >>> @registry.repository("TestRepository")
    ... class TestRepository(Repository):
    ...     pass
    >>> registry.names()
    ['TestRepository']
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from stowage.providers.base import Provider

RepositoryFactory = Callable[[str, Provider], Any]


class Repository:
    """Base repository bound to a provider."""

    def __init__(self, name: str, provider: Provider):
        self.name = name
        self.provider = provider

    def save(self, data, callback=None):
        return self.provider.save(data, callback)

    def save_many(self, data, callback=None):
        return self.provider.save_many(data, callback)

    def remove(self, data, callback=None):
        return self.provider.remove(data, callback)

    def find_by_id(self, id, rev=None, callback=None):
        return self.provider.find_by_id(id, rev, callback)

    def find_by_key(self, key, callback=None):
        return self.provider.find_by_key(key, callback)

    def find_many_by_key(self, key, callback=None):
        return self.provider.find_many_by_key(key, callback)

    def find_all(self, callback=None):
        return self.provider.find_all(callback)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} provider={self.provider!r}>"


class RepositoryRegistry:
    """Repository factories keyed by repository name."""

    def __init__(self) -> None:
        self._factories: dict[str, RepositoryFactory] = {}

    def register(self, name: str, factory: RepositoryFactory) -> RepositoryFactory:
        """Register (or replace) the factory for ``name``."""
        self._factories[name] = factory
        return factory

    def repository(self, name: str):
        """Class decorator form of :meth:`register`."""

        def decorator(factory: RepositoryFactory) -> RepositoryFactory:
            return self.register(name, factory)

        return decorator

    def get(self, name: str) -> RepositoryFactory | None:
        return self._factories.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def names(self) -> list[str]:
        return sorted(self._factories)


__all__ = ["Repository", "RepositoryFactory", "RepositoryRegistry"]
