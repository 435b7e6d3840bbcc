"""Kubernetes API clients.

Submodules:
    base     -- KubeClient / KubeClientReader interfaces and watch callback types.
    default  -- DefaultKubeClient on top of the ``kubernetes`` package.
    cached   -- CachedKubeClient: cache-first reads, direct writes.
"""

from kubecache.client.base import KubeClient, KubeClientReader, WatchHandle

__all__ = ["KubeClient", "KubeClientReader", "WatchHandle"]
