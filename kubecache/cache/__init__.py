"""Cache layer for kubecache.

Provides the in-memory resource index backed by Kubernetes watch streams.
Readers get deep copies; only the per-type watchers write to the index.

Submodules:
    resource_cache  -- ResourceCache: registration, start/ready, reads, readiness.
"""

from kubecache.cache.resource_cache import ResourceCache

__all__ = ["ResourceCache"]
