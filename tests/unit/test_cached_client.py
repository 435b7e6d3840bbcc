"""Tests for CachedKubeClient, Manager and Controller wiring."""

from __future__ import annotations

from typing import Any

import pytest

from kubecache.cache.resource_cache import ResourceCache
from kubecache.client.cached import CachedKubeClient
from kubecache.controller import Controller
from kubecache.errors import KubernetesError, NotFound
from kubecache.manager import Manager
from kubecache.models.resources import GroupVersionKind, ObjectList
from tests.conftest import DEPLOYMENTS, PODS, FakeKubeClient, make_object

# ---------------------------------------------------------------------------
# CachedKubeClient
# ---------------------------------------------------------------------------


class TestCachedGet:
    async def test_hit_served_from_cache(self, cache: ResourceCache, fake_client: FakeKubeClient) -> None:
        fake_client.script_list(PODS, ObjectList([make_object("web-0", "3")], "3"))
        cache.register(PODS)
        cache.start()
        await cache.wait_for_sync(timeout=2.0)

        client = CachedKubeClient(fake_client, cache)
        obj = await client.get({"apiVersion": "v1", "kind": "Pod", "metadata": {"namespace": "default", "name": "web-0"}})

        assert obj["metadata"]["resourceVersion"] == "3"
        assert fake_client.get_calls == 0

    async def test_miss_falls_back_to_api_server(self, cache: ResourceCache, fake_client: FakeKubeClient) -> None:
        """Unwatched types are read from the API server."""
        remote = make_object("web", "9", gvk=DEPLOYMENTS)
        fake_client.remote[("apps/v1", "Deployment", "default", "web")] = remote
        cache.register(PODS)
        cache.start()
        await cache.wait_for_sync(timeout=2.0)

        client = CachedKubeClient(fake_client, cache)
        obj = await client.get(
            {"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {"namespace": "default", "name": "web"}}
        )

        assert obj == remote
        assert fake_client.get_calls == 1

    async def test_miss_on_both_raises_not_found(self, cache: ResourceCache, fake_client: FakeKubeClient) -> None:
        client = CachedKubeClient(fake_client, cache)
        with pytest.raises(NotFound):
            await client.get({"apiVersion": "v1", "kind": "Pod", "metadata": {"namespace": "x", "name": "gone"}})

    async def test_other_cache_errors_are_not_a_miss(
        self, cache: ResourceCache, fake_client: FakeKubeClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(spec: dict[str, Any]) -> dict[str, Any]:
            raise KubernetesError(500, "InternalError", "index unavailable")

        monkeypatch.setattr(cache, "get_object", broken)
        client = CachedKubeClient(fake_client, cache)

        with pytest.raises(KubernetesError) as excinfo:
            await client.get({"apiVersion": "v1", "kind": "Pod", "metadata": {"namespace": "default", "name": "a"}})

        assert excinfo.value.code == 500
        assert fake_client.get_calls == 0


class TestCachedDelegation:
    async def test_writes_go_to_api_server(self, cache: ResourceCache, fake_client: FakeKubeClient) -> None:
        client = CachedKubeClient(fake_client, cache)
        spec = make_object("web-0")

        assert await client.create(spec) == spec
        assert await client.replace(spec) == spec
        assert await client.patch(spec, force=True) == spec
        assert (await client.delete(spec))["status"] == "Success"

    async def test_list_and_path_delegate(self, cache: ResourceCache, fake_client: FakeKubeClient) -> None:
        fake_client.script_list(PODS, ObjectList([make_object("a")], "5"))
        client = CachedKubeClient(fake_client, cache)

        result = await client.list("v1", "Pod")

        assert result.resource_version == "5"
        assert fake_client.list_calls == [PODS]
        assert await client.get_api_resource_path("v1", "Pod") == "/api/v1/pods"


# ---------------------------------------------------------------------------
# Manager / Controller
# ---------------------------------------------------------------------------


class _RecordingController(Controller):
    def __init__(self, gvk: GroupVersionKind) -> None:
        super().__init__(gvk)
        self.reconciled: list[dict[str, Any]] = []

    async def reconcile(self, obj: dict[str, Any]) -> None:
        self.reconciled.append(await self.kube_client.get(obj))


class TestManager:
    def test_controller_without_client_raises(self) -> None:
        controller = _RecordingController(PODS)
        with pytest.raises(RuntimeError, match="KubeClient not set"):
            _ = controller.kube_client

    def test_add_controller_injects_cached_client(self, fake_client: FakeKubeClient) -> None:
        manager = Manager(fake_client, ResourceCache(fake_client))
        controller = _RecordingController(PODS)

        manager.add_controller(controller)

        assert controller.kube_client is manager.cached_client
        assert isinstance(manager.cached_client, CachedKubeClient)
        assert manager.controllers == [controller]
        assert controller.for_kind() == PODS

    async def test_controller_reads_through_cache(self, cache: ResourceCache, fake_client: FakeKubeClient) -> None:
        fake_client.script_list(PODS, ObjectList([make_object("web-0", "4")], "4"))
        cache.register(PODS)
        manager = Manager(fake_client, cache)
        controller = _RecordingController(PODS)
        manager.add_controller(controller)
        cache.start()
        await cache.wait_for_sync(timeout=2.0)

        await controller.reconcile(make_object("web-0"))

        assert controller.reconciled[0]["metadata"]["resourceVersion"] == "4"
        assert fake_client.get_calls == 0
