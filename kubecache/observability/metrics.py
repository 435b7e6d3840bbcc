"""Prometheus metrics for the watch cache.

All metrics are labelled by the resource type string (``apps/v1/Deployment``).
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

watch_events_total = Counter(
    "kubecache_watch_events_total",
    "Watch events received, by resource type and event type.",
    ["gvk", "event_type"],
)

lists_total = Counter(
    "kubecache_lists_total",
    "Full list calls that completed, by resource type and trigger.",
    ["gvk", "reason"],
)

watch_restarts_total = Counter(
    "kubecache_watch_restarts_total",
    "Watch streams that ended and were reopened.",
    ["gvk"],
)

listener_errors_total = Counter(
    "kubecache_listener_errors_total",
    "Exceptions raised by cache listeners.",
    ["gvk"],
)

cached_objects = Gauge(
    "kubecache_cached_objects",
    "Objects currently held in the cache.",
    ["gvk"],
)
