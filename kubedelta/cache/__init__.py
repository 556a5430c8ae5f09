"""Cache layer for kubedelta.

Provides the in-memory index of watched resources. Consumers only ever
receive detached copies of cached records.

Submodules:
    resource_cache  -- ResourceCache: last-write-wins index with sync state.
"""

from kubedelta.cache.resource_cache import ResourceCache

__all__ = ["ResourceCache"]
