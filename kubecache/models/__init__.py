"""Core data structures for kubecache."""

from kubecache.models.config import APIConfig, CacheConfig, KubeCacheConfig, LogConfig, MetricsConfig
from kubecache.models.resources import (
    CacheReadiness,
    EventType,
    GroupVersionKind,
    NamespacedName,
    ObjectList,
    SyncState,
    TypeMetadata,
)

__all__ = [
    "APIConfig",
    "CacheConfig",
    "CacheReadiness",
    "EventType",
    "GroupVersionKind",
    "KubeCacheConfig",
    "LogConfig",
    "MetricsConfig",
    "NamespacedName",
    "ObjectList",
    "SyncState",
    "TypeMetadata",
]
