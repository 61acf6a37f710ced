"""
Provider and subscriber registries.

Providers live in a tombstoning store (ids never reused); subscribers in a
dense append-only store. Nothing outside this package touches the stores.
"""

from subsettle.registry.providers import ProviderRegistry
from subsettle.registry.subscribers import SubscriberRegistry

__all__ = ["ProviderRegistry", "SubscriberRegistry"]
