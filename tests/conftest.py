"""Shared fixtures for kubecache tests.

``FakeKubeClient`` stands in for the API server: list results are scripted
per resource type and every opened watch is exposed as a ``FakeStream`` the
test drives by hand (``emit`` / ``close``). Nothing touches a real cluster.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from kubecache.cache.resource_cache import ResourceCache
from kubecache.client.base import KubeClient, WatchDoneCallback, WatchEventCallback
from kubecache.errors import NotFound
from kubecache.models.config import CacheConfig
from kubecache.models.resources import GroupVersionKind, ObjectList

PODS = GroupVersionKind("v1", "Pod")
DEPLOYMENTS = GroupVersionKind("apps/v1", "Deployment")


# ---------------------------------------------------------------------------
# Object factories
# ---------------------------------------------------------------------------


def make_object(
    name: str,
    rv: str = "1",
    namespace: str = "default",
    gvk: GroupVersionKind = PODS,
    **spec: Any,
) -> dict[str, Any]:
    """Return a minimal raw object as the API server would send it."""
    return {
        "apiVersion": gvk.api_version,
        "kind": gvk.kind,
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": rv},
        "spec": dict(spec),
    }


def expired_status() -> dict[str, Any]:
    return {
        "kind": "Status",
        "apiVersion": "v1",
        "status": "Failure",
        "code": 410,
        "reason": "Expired",
        "message": "too old resource version: 1 (42)",
    }


def bookmark(rv: str, gvk: GroupVersionKind = PODS) -> dict[str, Any]:
    return {"apiVersion": gvk.api_version, "kind": gvk.kind, "metadata": {"resourceVersion": rv}}


# ---------------------------------------------------------------------------
# Fake client
# ---------------------------------------------------------------------------


class FakeStream:
    """A watch opened against ``FakeKubeClient``."""

    def __init__(
        self,
        path: str,
        resource_version: str | None,
        on_event: WatchEventCallback,
        on_done: WatchDoneCallback,
    ) -> None:
        self.path = path
        self.resource_version = resource_version
        self._on_event = on_event
        self._on_done = on_done
        self.aborted = False
        self.closed = False

    def emit(self, event_type: str, obj: Any) -> None:
        if self.closed:
            return
        self._on_event(event_type, obj, {"type": event_type, "object": obj})

    def close(self, error: BaseException | None = None) -> None:
        if self.closed:
            return
        self.closed = True
        self._on_done(error)

    def abort(self) -> None:
        if self.aborted:
            return
        self.aborted = True
        self.close()


class FakeKubeClient(KubeClient):
    """In-memory KubeClient with scripted list results and hand-driven watches."""

    def __init__(self) -> None:
        self.list_results: dict[GroupVersionKind, list[ObjectList | BaseException]] = {}
        self.list_calls: list[GroupVersionKind] = []
        self.streams: list[FakeStream] = []
        self.remote: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self.get_calls = 0
        self.watch_error: BaseException | None = None
        self.list_gates: dict[GroupVersionKind, asyncio.Event] = {}

    def script_list(self, gvk: GroupVersionKind, *results: ObjectList | BaseException) -> None:
        """Queue list results; the last one is repeated once the queue runs dry."""
        self.list_results.setdefault(gvk, []).extend(results)

    def streams_for(self, gvk: GroupVersionKind) -> list[FakeStream]:
        path = _path(gvk)
        return [stream for stream in self.streams if stream.path == path]

    async def get(self, spec: dict[str, Any]) -> dict[str, Any]:
        self.get_calls += 1
        metadata = spec.get("metadata") or {}
        key = (spec["apiVersion"], spec["kind"], metadata.get("namespace") or "", metadata["name"])
        if key not in self.remote:
            raise NotFound(spec)
        return dict(self.remote[key])

    async def create(self, spec: dict[str, Any], *, dry_run: str | None = None, field_manager: str | None = None) -> dict[str, Any]:
        return dict(spec)

    async def replace(self, spec: dict[str, Any], *, dry_run: str | None = None, field_manager: str | None = None) -> dict[str, Any]:
        return dict(spec)

    async def patch(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
        force: bool | None = None,
        content_type: str = "application/merge-patch+json",
    ) -> dict[str, Any]:
        return dict(spec)

    async def delete(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        grace_period_seconds: int | None = None,
        propagation_policy: str | None = None,
    ) -> dict[str, Any]:
        return {"kind": "Status", "status": "Success"}

    async def list(
        self,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> ObjectList:
        gvk = GroupVersionKind(api_version, kind)
        self.list_calls.append(gvk)
        gate = self.list_gates.get(gvk)
        if gate is not None:
            await gate.wait()
        results = self.list_results.get(gvk) or [ObjectList(items=[], resource_version="1")]
        result = results.pop(0) if len(results) > 1 else results[0]
        await asyncio.sleep(0)
        if isinstance(result, BaseException):
            raise result
        return ObjectList(items=[dict(item) for item in result.items], resource_version=result.resource_version)

    async def get_api_resource_path(self, api_version: str, kind: str, namespace: str | None = None) -> str:
        return _path(GroupVersionKind(api_version, kind))

    async def watch(
        self,
        path: str,
        resource_version: str | None,
        on_event: WatchEventCallback,
        on_done: WatchDoneCallback,
    ) -> FakeStream:
        if self.watch_error is not None:
            error, self.watch_error = self.watch_error, None
            raise error
        stream = FakeStream(path, resource_version, on_event, on_done)
        self.streams.append(stream)
        return stream


def _path(gvk: GroupVersionKind) -> str:
    prefix = "/api" if "/" not in gvk.api_version else "/apis"
    return f"{prefix}/{gvk.api_version}/{gvk.kind.lower()}s"


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until *predicate* holds."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_client() -> FakeKubeClient:
    return FakeKubeClient()


@pytest.fixture()
def cache_config() -> CacheConfig:
    """No back-off: retries happen immediately, as the tests expect."""
    return CacheConfig(backoff_base=0.0, backoff_jitter=0.0)


@pytest.fixture()
async def cache(fake_client: FakeKubeClient, cache_config: CacheConfig) -> AsyncIterator[ResourceCache]:
    """A ResourceCache over the fake client; stopped after the test."""
    resource_cache = ResourceCache(fake_client, cache_config)
    yield resource_cache
    await resource_cache.stop()


# ---------------------------------------------------------------------------
# Listener helpers
# ---------------------------------------------------------------------------


class EventRecorder:
    """Listener that records ``(event_type, name)`` pairs in call order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.raw: list[dict[str, Any]] = []

    def __call__(self, event_type: str, obj: Any, raw: dict[str, Any]) -> None:
        name = ((obj or {}).get("metadata") or {}).get("name", "")
        self.calls.append((str(event_type), name))
        self.raw.append(raw)
