"""Remote source adapters.

Submodules:
    base        -- RemoteSource: the abstract list+watch boundary.
    kubernetes  -- KubernetesSource: kubernetes-asyncio implementation.
"""

from kubedelta.source.base import RemoteSource

__all__ = ["RemoteSource"]
