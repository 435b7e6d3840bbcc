"""Tests for Prometheus metrics."""

from __future__ import annotations

from prometheus_client import REGISTRY

from kubecache.cache.resource_cache import ResourceCache
from kubecache.models.resources import ObjectList
from kubecache.observability.metrics import (
    cached_objects,
    listener_errors_total,
    lists_total,
    watch_events_total,
    watch_restarts_total,
)
from tests.conftest import DEPLOYMENTS, FakeKubeClient, expired_status, make_object, wait_until

_GVK = str(DEPLOYMENTS)


def _sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsExist:
    def test_names(self) -> None:
        # Counters don't include "_total" in their _name attribute
        assert watch_events_total._name == "kubecache_watch_events"
        assert lists_total._name == "kubecache_lists"
        assert watch_restarts_total._name == "kubecache_watch_restarts"
        assert listener_errors_total._name == "kubecache_listener_errors"
        assert cached_objects._name == "kubecache_cached_objects"


class TestMetricsRecorded:
    async def test_sync_loop_updates_metrics(self, cache: ResourceCache, fake_client: FakeKubeClient) -> None:
        """Deltas, since the default registry is process-wide."""
        initial_lists = _sample("kubecache_lists_total", gvk=_GVK, reason="initial")
        expired_lists = _sample("kubecache_lists_total", gvk=_GVK, reason="expired")
        added = _sample("kubecache_watch_events_total", gvk=_GVK, event_type="ADDED")
        errors = _sample("kubecache_listener_errors_total", gvk=_GVK)
        restarts = _sample("kubecache_watch_restarts_total", gvk=_GVK)

        def broken(event_type: object, obj: object, raw: object) -> None:
            raise ValueError("listener bug")

        fake_client.script_list(
            DEPLOYMENTS,
            ObjectList([make_object("web", "1", gvk=DEPLOYMENTS)], "1"),
            ObjectList([], "9"),
        )
        cache.add_listener(DEPLOYMENTS, broken)
        cache.start()
        await cache.wait_for_sync(timeout=2.0)
        await wait_until(lambda: len(fake_client.streams_for(DEPLOYMENTS)) == 1)
        assert _sample("kubecache_cached_objects", gvk=_GVK) == 1.0

        stream = fake_client.streams_for(DEPLOYMENTS)[0]
        stream.emit("ADDED", make_object("api", "2", gvk=DEPLOYMENTS))
        stream.emit("ERROR", expired_status())
        await wait_until(lambda: len(fake_client.streams_for(DEPLOYMENTS)) == 2)

        assert _sample("kubecache_lists_total", gvk=_GVK, reason="initial") == initial_lists + 1
        assert _sample("kubecache_lists_total", gvk=_GVK, reason="expired") == expired_lists + 1
        assert _sample("kubecache_watch_events_total", gvk=_GVK, event_type="ADDED") == added + 1
        assert _sample("kubecache_watch_restarts_total", gvk=_GVK) == restarts + 1
        # initial replay (web), ADDED (api), relist replay (web, api deleted)
        assert _sample("kubecache_listener_errors_total", gvk=_GVK) == errors + 4
        assert _sample("kubecache_cached_objects", gvk=_GVK) == 0.0
