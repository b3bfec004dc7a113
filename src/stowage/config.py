"""
Declarative storage configuration.

Manifesto:
    Which backends exist and which repository talks to which backend is
    configuration, not code. ``StorageConfig`` is the validated form of that
    configuration, whether it comes from a TOML, JSON or YAML file or from a
    mapping built in code.

Configuration shape::

    repositories_path = "app.repositories"

    [connections.Geo]
    type = "MongoDB"
    url = "mongodb://localhost/stowage-test"
    collection = "storage-test"

    [repositories.TestRepository]
    connection = "Geo"

Path keys are accepted in camelCase (``repositoriesPath``) as well as
snake_case. Connection tables keep every backend-specific key
(``extra="allow"``); each provider validates its own keys when constructed.

Tags:
    stowage, configuration, pydantic, toml, yaml

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from stowage.errors import ConfigurationError


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ConnectionConfig(_Model):
    """One backend connection; backend-specific keys are kept as extras."""

    type: str
    name: str | None = None
    auto_connect: bool = True


class RepositoryConfig(_Model):
    """One repository and the connection it uses."""

    connection: str | None = None


class StorageConfig(_Model):
    """Connections, repositories and module search prefixes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)
    repositories: dict[str, RepositoryConfig | None] = Field(default_factory=dict)
    repositories_path: str | None = None
    providers_path: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> StorageConfig:
        """Validate a mapping, reporting problems as ``ConfigurationError``."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid storage configuration: {e}", cause=e) from e

    def connection(self, name: str) -> dict[str, Any] | None:
        """Provider configuration for the connection ``name`` (with its name set)."""
        config = self.connections.get(name)
        if config is None:
            return None
        data = config.model_dump()
        data["name"] = name
        return data

    def validate_references(self) -> StorageConfig:
        """Raise ``ConfigurationError`` for repositories naming unknown connections."""
        for name, repository in self.repositories.items():
            if repository is None or not repository.connection:
                raise ConfigurationError(
                    f"Configuration for repository '{name}' is missing a provider name"
                )
            if repository.connection not in self.connections:
                raise ConfigurationError(
                    f"Specified connection '{repository.connection}' for repository "
                    f"'{name}' is not specified"
                )
        return self

    def merged(self, other: StorageConfig | None) -> StorageConfig:
        """Return a copy with ``other``'s entries layered over this config."""
        if other is None:
            return self.model_copy(deep=True)
        return StorageConfig(
            connections={**self.connections, **other.connections},
            repositories={**self.repositories, **other.repositories},
            repositories_path=other.repositories_path or self.repositories_path,
            providers_path=other.providers_path or self.providers_path,
        )


def coerce_config(config: StorageConfig | Mapping[str, Any] | None) -> StorageConfig | None:
    if config is None or isinstance(config, StorageConfig):
        return config
    if isinstance(config, Mapping):
        return StorageConfig.from_mapping(config)
    raise ConfigurationError(f"Invalid storage configuration: {config!r}")


def _parse(path: Path) -> Any:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        return tomllib.loads(text)
    if suffix == ".json":
        return json.loads(text)
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(text) or {}
    raise ConfigurationError(f"Unsupported configuration format '{suffix}' for {path}")


def load_config(path: str | Path) -> StorageConfig:
    """Load and validate a configuration file (``.toml``, ``.json``, ``.yaml``)."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file '{path}' not found")
    try:
        data = _parse(path)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse configuration file '{path}': {e}", cause=e) from e
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration file '{path}' must contain a table")
    return StorageConfig.from_mapping(data)


__all__ = [
    "ConnectionConfig",
    "RepositoryConfig",
    "StorageConfig",
    "coerce_config",
    "load_config",
]
