"""Resource identity and synchronization data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    """Type of a watch event as sent by the API server."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


class SyncState(StrEnum):
    """Lifecycle state of a single resource type's synchronization loop."""

    UNSYNCED = "unsynced"
    LISTING = "listing"
    STREAMING = "streaming"
    RELISTING = "relisting"
    TERMINATED = "terminated"


class CacheReadiness(StrEnum):
    """Cache-wide readiness.

    WARMING          -- not started, or no type has finished its first list.
    PARTIALLY_READY  -- some registered types are listed.
    READY            -- every registered type is listed.
    FAILED           -- a type's first list failed; the cache never gets READY.
    """

    WARMING = "warming"
    PARTIALLY_READY = "partially_ready"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class GroupVersionKind:
    """Identifies a resource type, e.g. ``apps/v1`` + ``Deployment``."""

    api_version: str
    kind: str

    def __str__(self) -> str:
        return f"{self.api_version}/{self.kind}"

    @classmethod
    def parse(cls, value: str) -> GroupVersionKind:
        """Parse ``<apiVersion>/<Kind>``.

        The kind is everything after the last ``/`` so grouped versions such
        as ``apps/v1/Deployment`` keep their group.
        """
        api_version, sep, kind = value.strip().rpartition("/")
        if not sep or not api_version or not kind:
            raise ValueError(f"Invalid resource type: {value!r}. Expected <apiVersion>/<Kind>")
        return cls(api_version=api_version, kind=kind)

    @classmethod
    def of(cls, obj: dict[str, Any]) -> GroupVersionKind:
        """Return the type of an object or object header."""
        return cls(api_version=str(obj["apiVersion"]), kind=str(obj["kind"]))


@dataclass(frozen=True)
class NamespacedName:
    """Identifies an instance within its type. Cluster-scoped objects use ``""``."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def of(cls, obj: dict[str, Any]) -> NamespacedName:
        metadata = obj.get("metadata") or {}
        return cls(
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata.get("name") or ""),
        )


@dataclass
class TypeMetadata:
    """Synchronization bookkeeping for one resource type."""

    resource_path: str
    resource_version: str | None = None


@dataclass
class ObjectList:
    """Result of a full list: every current instance plus the list's resume token."""

    items: list[dict[str, Any]] = field(default_factory=list)
    resource_version: str | None = None


def resource_version_of(obj: Any) -> str | None:
    """Return ``metadata.resourceVersion`` of a raw object, if it carries one."""
    if not isinstance(obj, dict):
        return None
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        return None
    value = metadata.get("resourceVersion")
    return str(value) if value else None
