"""Wires controllers to a cache-backed client."""

from __future__ import annotations

import structlog

from kubecache.cache.resource_cache import ResourceCache
from kubecache.client.base import KubeClient
from kubecache.client.cached import CachedKubeClient
from kubecache.controller import Controller

_log = structlog.get_logger(component="manager")


class Manager:
    """Owns the cached client shared by every controller."""

    def __init__(self, client: KubeClient, cache: ResourceCache) -> None:
        self._cache = cache
        self._cached_client = CachedKubeClient(client, cache)
        self._controllers: list[Controller] = []

    @property
    def cached_client(self) -> KubeClient:
        return self._cached_client

    @property
    def controllers(self) -> list[Controller]:
        return list(self._controllers)

    def add_controller(self, controller: Controller) -> None:
        controller.set_kube_client(self._cached_client)
        self._controllers.append(controller)
        _log.info("controller_added", gvk=str(controller.for_kind()), controller=type(controller).__name__)
