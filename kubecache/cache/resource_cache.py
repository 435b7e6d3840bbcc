"""In-memory resource cache backed by per-type watch streams.

Lifecycle:
    1. ``register()`` / ``add_listener()`` declare every watched type.
    2. ``start()`` freezes the registry and spawns one ``TypeWatcher`` task per type.
    3. ``ready()`` resolves once every type finished its first full list, or
       fails with ``CacheSyncError`` if one of those lists failed.
    4. ``get()`` / ``list()`` read the index synchronously, without I/O.

Readiness (``readiness()``):
    WARMING          -- not started, or no type listed yet
    PARTIALLY_READY  -- some types listed
    READY            -- all types listed
    FAILED           -- a first list failed
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import structlog

from kubecache.client.base import KubeClient
from kubecache.collector.backoff import Backoff
from kubecache.collector.watcher import Listener, TypeWatcher
from kubecache.errors import CacheStartedError, CacheSyncError, NotFound
from kubecache.models.config import CacheConfig
from kubecache.models.resources import (
    CacheReadiness,
    GroupVersionKind,
    NamespacedName,
    SyncState,
    TypeMetadata,
)

_log = structlog.get_logger(component="cache.resource_cache")


class ResourceCache:
    """Read-only local mirror of the registered resource types."""

    def __init__(self, client: KubeClient, config: CacheConfig | None = None) -> None:
        self._client = client
        self._config = config or CacheConfig()
        self._listeners: dict[GroupVersionKind, list[Listener]] = {}
        self._store: dict[GroupVersionKind, dict[NamespacedName, dict[str, Any]]] = {}
        self._watchers: dict[GroupVersionKind, TypeWatcher] = {}
        self._tasks: dict[GroupVersionKind, asyncio.Task[None]] = {}
        self._synced: set[GroupVersionKind] = set()
        self._failed: set[GroupVersionKind] = set()
        self._ready: asyncio.Future[None] | None = None
        self._started = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, gvk: GroupVersionKind) -> None:
        """Watch *gvk* without attaching a listener."""
        self._ensure_not_started()
        self._register(gvk)

    def add_listener(self, gvk: GroupVersionKind, listener: Listener) -> None:
        """Watch *gvk* and call *listener* for each of its events.

        Raises:
            CacheStartedError: the cache is already running.
        """
        self._ensure_not_started()
        self._register(gvk).append(listener)

    def _register(self, gvk: GroupVersionKind) -> list[Listener]:
        if gvk not in self._listeners:
            self._listeners[gvk] = []
            self._store[gvk] = {}
        return self._listeners[gvk]

    def _ensure_not_started(self) -> None:
        if self._started:
            raise CacheStartedError("Cache already started. Listeners can only be added before starting the cache")

    @property
    def registered(self) -> list[GroupVersionKind]:
        return list(self._listeners)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the synchronization tasks. Must run inside an event loop."""
        self._ensure_not_started()
        loop = asyncio.get_running_loop()
        self._started = True
        ready = self.ready()

        for gvk, listeners in self._listeners.items():
            watcher = TypeWatcher(
                gvk,
                self._client,
                self._store[gvk],
                listeners,
                backoff=Backoff(
                    base=self._config.backoff_base,
                    maximum=self._config.backoff_max,
                    jitter=self._config.backoff_jitter,
                ),
                on_synced=self._on_synced,
            )
            task = loop.create_task(watcher.run(), name=f"watch {gvk}")
            task.add_done_callback(lambda t, gvk=gvk: self._on_watcher_done(gvk, t))
            self._watchers[gvk] = watcher
            self._tasks[gvk] = task

        if not self._listeners:
            ready.set_result(None)
        _log.info("cache_started", kinds=[str(gvk) for gvk in self._listeners])

    def ready(self) -> asyncio.Future[None]:
        """Future resolved when every registered type has been listed once."""
        if self._ready is None:
            self._ready = asyncio.get_running_loop().create_future()
        return self._ready

    async def wait_for_sync(self, timeout: float | None = None) -> None:
        """Await ``ready()``, optionally bounded by *timeout* seconds.

        Raises:
            CacheSyncError: a type's first list failed.
            TimeoutError: the deadline passed first.
        """
        await asyncio.wait_for(asyncio.shield(self.ready()), timeout=timeout)

    async def stop(self) -> None:
        """Cancel every synchronization task and close open streams."""
        for watcher in self._watchers.values():
            watcher.abort()
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        _log.info("cache_stopped")

    def _on_synced(self, gvk: GroupVersionKind) -> None:
        self._synced.add(gvk)
        _log.info("kind_synced", gvk=str(gvk), synced=len(self._synced), total=len(self._listeners))
        ready = self.ready()
        if not ready.done() and self._synced >= set(self._listeners):
            ready.set_result(None)

    def _on_watcher_done(self, gvk: GroupVersionKind, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self._failed.add(gvk)
        _log.error("watcher_terminated", gvk=str(gvk), error=str(exc))
        ready = self.ready()
        if not ready.done():
            ready.set_exception(CacheSyncError(gvk, exc))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, gvk: GroupVersionKind, namespace: str, name: str) -> dict[str, Any]:
        """Return a copy of the cached object.

        Raises:
            NotFound: the type is not registered or the object is not cached.
        """
        objects = self._store.get(gvk)
        key = NamespacedName(namespace=namespace or "", name=name)
        if objects is None or key not in objects:
            raise NotFound(
                {"apiVersion": gvk.api_version, "kind": gvk.kind, "metadata": {"namespace": namespace, "name": name}}
            )
        return copy.deepcopy(objects[key])

    def get_object(self, spec: dict[str, Any]) -> dict[str, Any]:
        """``get()`` keyed by an object header (apiVersion, kind, metadata)."""
        key = NamespacedName.of(spec)
        return self.get(GroupVersionKind.of(spec), key.namespace, key.name)

    def list(self, gvk: GroupVersionKind, namespace: str | None = None) -> list[dict[str, Any]]:
        """Return copies of all cached objects of *gvk*, optionally in one namespace."""
        objects = self._store.get(gvk, {})
        return [
            copy.deepcopy(obj) for key, obj in objects.items() if namespace is None or key.namespace == namespace
        ]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def size(self, gvk: GroupVersionKind) -> int:
        """Number of cached objects of *gvk*."""
        return len(self._store.get(gvk, {}))

    def readiness(self) -> CacheReadiness:
        if self._failed:
            return CacheReadiness.FAILED
        if not self._started or not self._synced:
            return CacheReadiness.WARMING
        if self._synced >= set(self._listeners):
            return CacheReadiness.READY
        return CacheReadiness.PARTIALLY_READY

    def state(self, gvk: GroupVersionKind) -> SyncState:
        watcher = self._watchers.get(gvk)
        return watcher.state if watcher is not None else SyncState.UNSYNCED

    def metadata(self, gvk: GroupVersionKind) -> TypeMetadata | None:
        watcher = self._watchers.get(gvk)
        return watcher.metadata if watcher is not None else None
