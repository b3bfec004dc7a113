"""Provider types, capabilities and configuration helpers."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from stowage.errors import ConfigurationError


class ProviderType(str, Enum):
    """Built-in provider type identifiers (the ``type`` of a connection)."""

    MEMORY = "Memory"
    FILESYSTEM = "FileSystem"
    COUCHDB = "CouchDB"
    MONGODB = "MongoDB"
    REDIS = "Redis"


class Capability(str, Enum):
    """Operations of the provider contract."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    DISPOSE = "dispose"
    CREATE = "create"
    DROP = "drop"
    RECREATE = "recreate"
    SAVE = "save"
    SAVE_MANY = "save_many"
    REMOVE = "remove"
    REMOVE_MANY = "remove_many"
    FIND_BY_ID = "find_by_id"
    FIND_BY_KEY = "find_by_key"
    FIND_MANY_BY_KEY = "find_many_by_key"
    FIND_ALL = "find_all"


ALL_CAPABILITIES: frozenset[Capability] = frozenset(Capability)


def as_mapping(config: Any) -> dict[str, Any]:
    """Return a plain dict for a mapping or a pydantic connection model."""
    if hasattr(config, "model_dump"):
        return config.model_dump()
    if isinstance(config, Mapping):
        return dict(config)
    raise ConfigurationError(f"Invalid provider configuration: {config!r}")


def require_option(
    config: Mapping[str, Any],
    key: str,
    provider_type: str,
    label: str | None = None,
) -> Any:
    """Return ``config[key]`` or raise the provider's configuration error.

    Example:
        >>> require_option({}, "url", "CouchDB")
        Traceback (most recent call last):
        ...
        ConfigurationError: Expected a url in the CouchDB configuration
    """
    value = config.get(key)
    if value is None or value == "":
        raise ConfigurationError(
            f"Expected a {label or key} in the {provider_type} configuration"
        )
    return value


__all__ = [
    "ProviderType",
    "Capability",
    "ALL_CAPABILITIES",
    "as_mapping",
    "require_option",
]
