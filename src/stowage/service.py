"""
Storage service: configuration in, wired repositories out.

Manifesto:
    Applications describe their storage declaratively (connections plus the
    repositories that use them) and ask the service for repositories. The
    service resolves each connection to a provider instance (one per
    connection, shared by every repository on it) and builds each
    repository with ``(name, provider)``.

Architecture:
    ::

        StorageConfig ──▶ StorageService
                              │
            get_provider_constructor(type) ◀── ProviderRegistry
                              │                  (fallback: import <providers_path>.<type>)
            get_provider(connection) ── cached per connection name
                              │
            load_repository(config, name) ◀── RepositoryRegistry
                              │                  (fallback: import <repositories_path>.<name>)
                              ▼
            load_repositories() ──▶ Result[{name: repository}]
                                     + callback + "load_repositories" event

Examples:
    >>> service = StorageService(load_config("storage.toml"))
    >>> result = await service.load_repositories()
    >>> repo = result.unwrap()["TestRepository"]

Tags:
    stowage, service, repository, resolver, configuration

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import importlib
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from stowage.completion import Completion
from stowage.config import ConnectionConfig, RepositoryConfig, StorageConfig, coerce_config
from stowage.errors import (
    ConfigurationError,
    NoRepositoriesConfiguredError,
    ProviderNotFoundError,
    RepositoryConstructorError,
    RepositoryNotFoundError,
)
from stowage.events import EventChannel, EventHandler
from stowage.logging import get_logger
from stowage.providers.base import Provider
from stowage.providers.registry import ProviderRegistry
from stowage.repository import RepositoryFactory, RepositoryRegistry
from stowage.result import Result

logger = get_logger(__name__)

LOAD_REPOSITORIES = "load_repositories"


def _import_member(prefix: str, module: str, attr: str) -> tuple[bool, Any]:
    """Import ``<prefix>.<module>`` and return ``(found, module.<attr>)``."""
    dotted = prefix.strip("./").replace("/", ".")
    target = f"{dotted}.{module}" if dotted else module
    try:
        imported = importlib.import_module(target)
    except ModuleNotFoundError as e:
        if e.name and target.startswith(e.name):
            return False, None
        raise
    return True, getattr(imported, attr, None)


class StorageService:
    """
    Resolves configured connections and repositories.

    Args:
        config: ``StorageConfig`` or an equivalent mapping
        providers: provider registry (defaults to the built-in providers)
        repositories: repository registry (defaults to an empty registry)
        auto_connect: default for connections that do not set ``auto_connect``
    """

    def __init__(
        self,
        config: StorageConfig | Mapping[str, Any] | None = None,
        *,
        providers: ProviderRegistry | None = None,
        repositories: RepositoryRegistry | None = None,
        auto_connect: bool | None = None,
    ):
        self.config = coerce_config(config)
        self.providers = providers if providers is not None else ProviderRegistry()
        self.repositories = repositories if repositories is not None else RepositoryRegistry()
        self.auto_connect = auto_connect
        self.events = EventChannel()
        self._provider_cache: dict[str, Provider] = {}

    # ── Events ───────────────────────────────────────────────────

    def on(self, event: str, handler: EventHandler) -> str:
        return self.events.on(event, handler)

    def once(self, event: str, handler: EventHandler) -> str:
        return self.events.once(event, handler)

    def off(self, subscription_id: str) -> None:
        self.events.off(subscription_id)

    # ── Providers ────────────────────────────────────────────────

    @property
    def providers_location(self) -> str:
        return (self.config and self.config.providers_path) or self.providers.location

    @property
    def repositories_location(self) -> str:
        return (self.config and self.config.repositories_path) or "."

    def _connection_config(self, config: Any) -> dict[str, Any]:
        if isinstance(config, str):
            resolved = self.config.connection(config) if self.config is not None else None
        elif isinstance(config, ConnectionConfig):
            resolved = config.model_dump()
        elif isinstance(config, Mapping):
            resolved = dict(config)
        else:
            resolved = None
        if not resolved:
            raise ConfigurationError("Argument config is required")
        return resolved

    def get_provider_constructor(self, config: str | Mapping[str, Any] | ConnectionConfig | None) -> type[Provider]:
        """Return the provider class for a connection name or connection config."""
        provider_type = str(self._connection_config(config).get("type") or "")
        if provider_type in self.providers:
            return self.providers.get(provider_type)

        location = f"{self.providers_location}/{provider_type}"
        if self.config is not None and self.config.providers_path and provider_type:
            found, member = _import_member(self.config.providers_path, provider_type, provider_type)
            if found and isinstance(member, type) and issubclass(member, Provider):
                return member
        raise ProviderNotFoundError(provider_type, location)

    def get_provider(self, config: str | Mapping[str, Any] | ConnectionConfig | None) -> Provider:
        """Return the provider for a connection, constructing it on first use."""
        resolved = self._connection_config(config)
        name = resolved.get("name")
        if name is not None and name in self._provider_cache:
            return self._provider_cache[name]

        constructor = self.get_provider_constructor(resolved)
        if self.auto_connect is not None and not self._sets_auto_connect(name):
            resolved["auto_connect"] = self.auto_connect
        provider = constructor(resolved)
        if name is not None:
            self._provider_cache[name] = provider
        logger.debug("provider_created", provider=name, provider_type=provider.type)
        return provider

    def _sets_auto_connect(self, name: str | None) -> bool:
        if self.config is None or name not in self.config.connections:
            return False
        return "auto_connect" in self.config.connections[name].model_fields_set

    # ── Repositories ─────────────────────────────────────────────

    def _repository_factory(self, name: str) -> RepositoryFactory:
        if name in self.repositories:
            factory = self.repositories.get(name)
        else:
            found, factory = False, None
            if self.config is not None and self.config.repositories_path:
                found, factory = _import_member(self.config.repositories_path, name, name)
            if not found:
                raise RepositoryNotFoundError(name, f"{self.repositories_location}/{name}")
        if not callable(factory):
            raise RepositoryConstructorError(name)
        return factory

    def load_repository(
        self,
        config: RepositoryConfig | Mapping[str, Any] | None,
        name: str | None,
    ) -> Any:
        """Build the repository ``name`` from its configuration entry."""
        if not name:
            raise ConfigurationError("Repository name is missing")
        if not config:
            raise ConfigurationError(f"Configuration for repository '{name}' is missing")
        if isinstance(config, RepositoryConfig):
            connection = config.connection
        else:
            connection = config.get("connection")
        if not connection:
            raise ConfigurationError(
                f"Configuration for repository '{name}' is missing a provider name"
            )
        if self.config is None or not self.config.connections:
            raise ConfigurationError("No connections specified in the configuration")
        if connection not in self.config.connections:
            raise ConfigurationError(
                f"Specified connection '{connection}' for repository '{name}' is not specified"
            )

        provider = self.get_provider(connection)
        factory = self._repository_factory(name)
        repository = factory(name, provider)
        logger.info("repository_loaded", repository=name, connection=connection)
        return repository

    def load_repositories(
        self,
        config: StorageConfig | Mapping[str, Any] | Callable[..., Any] | None = None,
        callback: Callable[..., Any] | None = None,
    ) -> Awaitable[Result[dict[str, Any]]]:
        """Load every configured repository.

        ``config`` is layered over the service configuration. The outcome is
        delivered after yielding once to the event loop: to ``callback``, to
        ``"load_repositories"`` listeners and as the returned ``Result``.
        Any failure fails the whole batch.
        """
        if callable(config) and callback is None:
            callback, config = config, None
        completion = Completion(LOAD_REPOSITORIES, callback, channel=self.events)
        return completion.start(self._load_repositories, config)

    async def _load_repositories(
        self, config: StorageConfig | Mapping[str, Any] | None
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        overlay = coerce_config(config)
        if self.config is None:
            self.config = overlay if overlay is not None else StorageConfig()
        elif overlay is not None:
            self.config = self.config.merged(overlay)

        if not self.config.repositories:
            raise NoRepositoriesConfiguredError()
        return {
            name: self.load_repository(entry, name)
            for name, entry in self.config.repositories.items()
        }

    # ── Lifecycle ────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Dispose every provider this service created."""
        providers = list(self._provider_cache.values())
        self._provider_cache.clear()
        for provider in providers:
            await provider.dispose()

    async def __aenter__(self) -> StorageService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


__all__ = ["StorageService", "LOAD_REPOSITORIES"]
