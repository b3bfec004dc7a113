"""
Storage providers.

Adapters are imported lazily by :class:`ProviderRegistry`, so importing this
package does not import any backend client library.
"""

from .base import Provider
from .registry import ProviderRegistry
from .types import ALL_CAPABILITIES, Capability, ProviderType

__all__ = [
    "Provider",
    "ProviderRegistry",
    "ProviderType",
    "Capability",
    "ALL_CAPABILITIES",
]
