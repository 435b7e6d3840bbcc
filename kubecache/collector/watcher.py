"""Synchronization loop for a single resource type.

State machine::

    UNSYNCED -> LISTING -> STREAMING -> (410 Expired) RELISTING -> STREAMING ...
                   |
                   +-- first list fails --> TERMINATED (error re-raised)

Expiry arrives either as an ERROR event or as a 410 Expired failure of the
watch request itself. A watch that ends for any other reason (server
timeout, network fault) is reopened with the last seen resourceVersion.
Only the first list is fatal; everything after it is retried with
``Backoff``, and a stream that fails unexpectedly is followed by a relist.

The watcher is the only writer of its type's store and metadata. Transport
callbacks only enqueue; the owning task applies events in arrival order.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from kubecache.client.base import KubeClient, WatchHandle
from kubecache.collector.backoff import Backoff
from kubecache.errors import is_expired_error, is_expired_status
from kubecache.models.resources import (
    EventType,
    GroupVersionKind,
    NamespacedName,
    SyncState,
    TypeMetadata,
    resource_version_of,
)
from kubecache.observability.metrics import (
    cached_objects,
    listener_errors_total,
    lists_total,
    watch_events_total,
    watch_restarts_total,
)

_log = structlog.get_logger(component="collector.watcher")

# (event_type, object, raw_event); may be a coroutine function.
Listener = Callable[[EventType, Any, dict[str, Any]], Awaitable[None] | None]


@dataclass
class _StreamClosed:
    error: BaseException | None


class TypeWatcher:
    """Keeps *store* equal to the server's view of one resource type.

    Args:
        gvk:        Resource type to synchronize.
        client:     Transport used for list and watch.
        store:      The type's index; mutated in place, never replaced.
        listeners:  Called in order for every applied event.
        backoff:    Retry delay schedule.
        on_synced:  Called once, after the first successful list.
    """

    def __init__(
        self,
        gvk: GroupVersionKind,
        client: KubeClient,
        store: dict[NamespacedName, dict[str, Any]],
        listeners: Sequence[Listener] = (),
        backoff: Backoff | None = None,
        on_synced: Callable[[GroupVersionKind], None] | None = None,
    ) -> None:
        self.gvk = gvk
        self.state = SyncState.UNSYNCED
        self.metadata: TypeMetadata | None = None
        self._client = client
        self._store = store
        self._listeners = tuple(listeners)
        self._backoff = backoff or Backoff()
        self._on_synced = on_synced
        self._needs_list = True
        self._handle: WatchHandle | None = None
        self._label = str(gvk)
        self._log = _log.bind(gvk=self._label)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run until cancelled. Re-raises if the first list fails."""
        try:
            await self._run()
        except Exception:
            self.state = SyncState.TERMINATED
            raise

    async def _run(self) -> None:
        try:
            await self._list("initial")
        except Exception as exc:
            self._log.error("initial_list_failed", error=str(exc))
            raise
        if self._on_synced is not None:
            self._on_synced(self.gvk)

        relist_reason = "expired"
        while True:
            if self._needs_list:
                try:
                    await self._list(relist_reason)
                except Exception as exc:
                    self._log.warning("relist_failed", reason=relist_reason, error=str(exc))
                    relist_reason = "retry"
                    await self._wait_backoff()
                    continue
                relist_reason = "expired"
            try:
                await self._stream()
            except Exception as exc:
                # The store may be half-applied; only a relist restores it
                self._log.error("stream_failed", error=str(exc), exc_info=True)
                self._needs_list = True
                relist_reason = "retry"
            watch_restarts_total.labels(gvk=self._label).inc()
            await self._wait_backoff()

    def abort(self) -> None:
        """Abort the open watch stream, if any."""
        if self._handle is not None:
            self._handle.abort()

    async def _wait_backoff(self) -> None:
        delay = self._backoff.next_delay()
        if delay > 0:
            self._log.debug("watch_backoff", delay=round(delay, 3), attempt=self._backoff.attempts)
        # Always yield so a flapping stream cannot starve other types
        await asyncio.sleep(delay)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def _list(self, reason: str) -> None:
        self.state = SyncState.LISTING if reason == "initial" else SyncState.RELISTING
        self._log.info("list_started", reason=reason)
        result = await self._client.list(self.gvk.api_version, self.gvk.kind)
        path = await self._client.get_api_resource_path(self.gvk.api_version, self.gvk.kind)

        # No await from here until the store is consistent again
        changes = self._replace_all(result.items)
        self.metadata = TypeMetadata(resource_path=path, resource_version=result.resource_version)
        self._needs_list = False
        self._backoff.reset()
        lists_total.labels(gvk=self._label, reason=reason).inc()
        cached_objects.labels(gvk=self._label).set(len(self._store))
        self._log.info(
            "list_complete",
            reason=reason,
            objects=len(self._store),
            changes=len(changes),
            resource_version=result.resource_version,
        )

        for event_type, obj in changes:
            await self._notify(event_type, obj, {"type": event_type.value, "object": obj})

    def _replace_all(self, items: Sequence[dict[str, Any]]) -> list[tuple[EventType, dict[str, Any]]]:
        """Replace the store with *items*; return the changes as events."""
        previous = dict(self._store)
        self._store.clear()
        changes: list[tuple[EventType, dict[str, Any]]] = []
        for item in items:
            key = NamespacedName.of(item)
            self._store[key] = copy.deepcopy(item)
            old = previous.pop(key, None)
            if old is None:
                changes.append((EventType.ADDED, item))
            elif resource_version_of(old) != resource_version_of(item):
                changes.append((EventType.MODIFIED, item))
        for old in previous.values():
            changes.append((EventType.DELETED, old))
        return changes

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _stream(self) -> None:
        """Consume one watch stream until it ends or must be abandoned."""
        assert self.metadata is not None
        self.state = SyncState.STREAMING
        queue: asyncio.Queue[tuple[Any, Any, dict[str, Any]] | _StreamClosed] = asyncio.Queue()

        def on_event(event_type: str, obj: Any, raw: dict[str, Any]) -> None:
            queue.put_nowait((event_type, obj, raw))

        def on_done(error: BaseException | None) -> None:
            queue.put_nowait(_StreamClosed(error))

        resource_version = self.metadata.resource_version
        try:
            handle = await self._client.watch(self.metadata.resource_path, resource_version, on_event, on_done)
        except Exception as exc:
            self._log.warning("watch_open_failed", resource_version=resource_version, error=str(exc))
            if is_expired_error(exc):
                self._expire()
            return

        self._handle = handle
        self._log.debug("watch_opened", resource_version=resource_version)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, _StreamClosed):
                    if is_expired_error(item.error):
                        self._expire()
                    elif item.error is not None:
                        self._log.warning(
                            "watch_disconnected",
                            resource_version=self.metadata.resource_version,
                            error=str(item.error),
                        )
                    else:
                        self._log.debug("watch_closed", resource_version=self.metadata.resource_version)
                    return
                if not await self._handle_event(*item):
                    return
        finally:
            self._handle = None
            handle.abort()

    async def _handle_event(self, event_type: str, obj: Any, raw: dict[str, Any]) -> bool:
        """Apply one event. Returns False when the stream must be abandoned."""
        assert self.metadata is not None
        try:
            kind = EventType(event_type)
        except ValueError:
            self._log.error("unknown_watch_event_type", event_type=event_type)
            return True
        watch_events_total.labels(gvk=self._label, event_type=kind.value).inc()

        if kind is EventType.ERROR:
            status = obj if isinstance(obj, dict) else {}
            if is_expired_status(status):
                self._expire()
                return False
            self._log.warning(
                "watch_error_event",
                code=status.get("code"),
                reason=status.get("reason"),
                message=status.get("message"),
            )
            return True

        if kind is not EventType.BOOKMARK and not _is_object(obj):
            self._log.warning("malformed_watch_event", event_type=kind.value, object_type=type(obj).__name__)
            return True

        if kind in (EventType.ADDED, EventType.MODIFIED):
            self._store[NamespacedName.of(obj)] = copy.deepcopy(obj)
        elif kind is EventType.DELETED:
            self._store.pop(NamespacedName.of(obj), None)

        resource_version = resource_version_of(obj)
        if resource_version:
            self.metadata.resource_version = resource_version
        self._backoff.reset()
        cached_objects.labels(gvk=self._label).set(len(self._store))

        await self._notify(kind, obj, raw)
        return True

    def _expire(self) -> None:
        """Drop the resume token; the next loop pass relists."""
        assert self.metadata is not None
        self._log.info("resource_version_expired", resource_version=self.metadata.resource_version)
        self.metadata.resource_version = None
        self._needs_list = True

    async def _notify(self, event_type: EventType, obj: Any, raw: dict[str, Any]) -> None:
        """Call every listener in order; one failing listener does not stop the rest."""
        for listener in self._listeners:
            try:
                result = listener(event_type, obj, raw)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                listener_errors_total.labels(gvk=self._label).inc()
                self._log.error(
                    "listener_failed",
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    event_type=event_type.value,
                    error=str(exc),
                    exc_info=True,
                )


def _is_object(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    metadata = obj.get("metadata")
    return isinstance(metadata, dict) and bool(metadata.get("name"))
