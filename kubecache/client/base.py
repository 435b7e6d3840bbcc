"""Client interfaces consumed by the cache and by controllers.

Objects travel as plain dicts in their JSON form. Every call that the server
answers with an object returns that object; arguments are never modified.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol

from kubecache.models.resources import ObjectList

# (event_type, object, raw_event). Invoked on the event loop thread.
WatchEventCallback = Callable[[str, Any, dict[str, Any]], None]

# Invoked exactly once when the stream ends; None for a clean close.
WatchDoneCallback = Callable[[BaseException | None], None]


class WatchHandle(Protocol):
    """An open watch stream."""

    def abort(self) -> None:
        """Close the stream. Idempotent; ``on_done`` still fires once."""


class KubeClientReader(ABC):
    """Read access to single objects."""

    @abstractmethod
    async def get(self, spec: dict[str, Any]) -> dict[str, Any]:
        """Return the object named by *spec* (apiVersion, kind, metadata.namespace/name).

        Raises:
            NotFound: the object does not exist.
            KubernetesError: any other API failure.
        """


class KubeClient(KubeClientReader):
    """Full client: CRUD, list, path resolution and watch."""

    @abstractmethod
    async def create(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def replace(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def patch(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
        force: bool | None = None,
        content_type: str = "application/merge-patch+json",
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def delete(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        grace_period_seconds: int | None = None,
        propagation_policy: str | None = None,
    ) -> dict[str, Any]:
        """Delete the object; returns the server's Status (or the deleted object)."""

    @abstractmethod
    async def list(
        self,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> ObjectList:
        """Return every matching object plus the list's resourceVersion."""

    @abstractmethod
    async def get_api_resource_path(self, api_version: str, kind: str, namespace: str | None = None) -> str:
        """Return the collection path used to open a watch, e.g. ``/apis/apps/v1/deployments``."""

    @abstractmethod
    async def watch(
        self,
        path: str,
        resource_version: str | None,
        on_event: WatchEventCallback,
        on_done: WatchDoneCallback,
    ) -> WatchHandle:
        """Open a watch on *path* starting after *resource_version*."""
