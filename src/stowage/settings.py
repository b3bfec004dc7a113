"""
Runtime settings for stowage.

``StowageSettings`` reads ``STOWAGE_*`` environment variables (and a ``.env``
file) so that the CLI and applications agree on where the storage
configuration lives and how to log.

Tags:
    stowage, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StowageSettings(BaseSettings):
    """Process-level settings (e.g. ``STOWAGE_CONFIG_PATH=storage.toml``)."""

    model_config = SettingsConfigDict(
        env_prefix="STOWAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Configuration ────────────────────────────────────────────
    config_path: str | None = Field(default=None, description="Storage configuration file")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="console or json")

    @property
    def json_logs(self) -> bool:
        return self.log_format.lower() == "json"


@lru_cache(maxsize=1)
def get_settings() -> StowageSettings:
    """Load and cache the settings. ``get_settings.cache_clear()`` reloads."""
    return StowageSettings()


__all__ = ["StowageSettings", "get_settings"]
