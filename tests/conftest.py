"""
Shared pytest fixtures for stowage tests.

This module provides:
- ``storage_config``: the Geo / TestRepository configuration used across the
  service and CLI tests
- ``memory_provider``: a connected in-memory provider
- ``recorder``: a callback that records ``(error, value)`` deliveries
"""

import sys
from pathlib import Path

import pytest

# Ensure stowage package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stowage.providers.memory import MemoryProvider
from stowage.settings import get_settings


class Recorder:
    """Callable that records every ``(error, value)`` it is called with."""

    def __init__(self):
        self.calls = []

    def __call__(self, error, value=None):
        self.calls.append((error, value))

    @property
    def last(self):
        return self.calls[-1]


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def storage_config():
    return {
        "connections": {
            "Geo": {
                "type": "MongoDB",
                "url": "mongodb://localhost/stowage-test",
                "collection": "storage-test",
            },
        },
        "repositories": {
            "TestRepository": {"connection": "Geo"},
        },
    }


@pytest.fixture
def memory_provider():
    return MemoryProvider({"name": "Scratch", "key_field": "email"})


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
