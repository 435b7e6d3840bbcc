"""Read-through client: reads from the cache, writes to the API server."""

from __future__ import annotations

from typing import Any

import structlog

from kubecache.cache.resource_cache import ResourceCache
from kubecache.client.base import KubeClient, WatchDoneCallback, WatchEventCallback, WatchHandle
from kubecache.errors import KubernetesError, is_not_found_error
from kubecache.models.resources import ObjectList

_log = structlog.get_logger(component="client.cached")


class CachedKubeClient(KubeClient):
    """Serves ``get`` from *cache*, falling back to *client* on a cache miss.

    Every other call goes straight to *client*. A miss can mean the object
    belongs to an unwatched type, the cache is still warming, or the object
    is newer than the last applied event.
    """

    def __init__(self, client: KubeClient, cache: ResourceCache) -> None:
        self._client = client
        self._cache = cache

    async def get(self, spec: dict[str, Any]) -> dict[str, Any]:
        try:
            return self._cache.get_object(spec)
        except KubernetesError as exc:
            if not is_not_found_error(exc):
                raise
            _log.debug(
                "cache_miss_remote_read",
                api_version=spec.get("apiVersion"),
                kind=spec.get("kind"),
            )
            return await self._client.get(spec)

    async def create(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
    ) -> dict[str, Any]:
        return await self._client.create(spec, dry_run=dry_run, field_manager=field_manager)

    async def replace(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
    ) -> dict[str, Any]:
        return await self._client.replace(spec, dry_run=dry_run, field_manager=field_manager)

    async def patch(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
        force: bool | None = None,
        content_type: str = "application/merge-patch+json",
    ) -> dict[str, Any]:
        return await self._client.patch(
            spec,
            dry_run=dry_run,
            field_manager=field_manager,
            force=force,
            content_type=content_type,
        )

    async def delete(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        grace_period_seconds: int | None = None,
        propagation_policy: str | None = None,
    ) -> dict[str, Any]:
        return await self._client.delete(
            spec,
            dry_run=dry_run,
            grace_period_seconds=grace_period_seconds,
            propagation_policy=propagation_policy,
        )

    async def list(
        self,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> ObjectList:
        return await self._client.list(
            api_version,
            kind,
            namespace,
            label_selector=label_selector,
            field_selector=field_selector,
        )

    async def get_api_resource_path(self, api_version: str, kind: str, namespace: str | None = None) -> str:
        return await self._client.get_api_resource_path(api_version, kind, namespace)

    async def watch(
        self,
        path: str,
        resource_version: str | None,
        on_event: WatchEventCallback,
        on_done: WatchDoneCallback,
    ) -> WatchHandle:
        return await self._client.watch(path, resource_version, on_event, on_done)
