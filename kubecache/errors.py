"""Error types for kubecache.

KubernetesError   -- an API call failed; carries the Status code/reason/message.
NotFound          -- the object does not exist (remote 404 or cache miss).
CacheStartedError -- registration or start attempted on a running cache.
CacheSyncError    -- a resource type's first list failed; rejects ``ready()``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kubernetes.client.exceptions import ApiException

    from kubecache.models.resources import GroupVersionKind

_EXPIRED_CODE = 410
_EXPIRED_REASON = "Expired"


def _resource_info(resource: dict[str, Any] | None) -> str:
    if not resource:
        return ""
    metadata = resource.get("metadata") or {}
    return (
        f"[{resource.get('apiVersion')}:{resource.get('kind')} "
        f"{metadata.get('namespace')}/{metadata.get('name')}]"
    )


class KubernetesError(Exception):
    """A request against the API server failed."""

    def __init__(
        self,
        code: int | None,
        reason: str = "",
        message: str = "",
        resource: dict[str, Any] | None = None,
    ) -> None:
        text = f"Reason: {reason} Message: {message}"
        if resource:
            text = f"{text} - {_resource_info(resource)}"
        super().__init__(text)
        self.code = code
        self.reason = reason
        self.message = message
        self.resource = resource

    @classmethod
    def from_api_exception(cls, exc: ApiException, resource: dict[str, Any] | None = None) -> KubernetesError:
        """Translate an ``ApiException``, preferring the JSON Status body."""
        code: int | None = exc.status
        reason = str(exc.reason or "")
        message = ""
        body: Any = None
        if exc.body:
            try:
                body = json.loads(exc.body)
            except (TypeError, ValueError):
                message = str(exc.body)
        if isinstance(body, dict):
            code = body.get("code", code)
            reason = str(body.get("reason") or reason)
            message = str(body.get("message") or "")
        if code == 404:
            return NotFound(resource, reason=reason, message=message)
        return cls(code, reason, message, resource)


class NotFound(KubernetesError):
    """The requested object does not exist."""

    def __init__(
        self,
        resource: dict[str, Any] | None = None,
        reason: str = "NotFound",
        message: str = "NOT FOUND",
    ) -> None:
        super().__init__(404, reason, message, resource)


class CacheStartedError(RuntimeError):
    """The cache is already running; its registrations are frozen."""


class CacheSyncError(Exception):
    """The first full list of a resource type failed."""

    def __init__(self, gvk: GroupVersionKind, cause: BaseException) -> None:
        super().__init__(f"Initial list of {gvk} failed: {cause}")
        self.gvk = gvk
        self.cause = cause


def is_not_found_error(err: BaseException) -> bool:
    """Return True if *err* reports a missing object."""
    return isinstance(err, KubernetesError) and err.code == 404


def is_expired_status(status: Any) -> bool:
    """Return True if a watch ERROR payload says the resume token was compacted away."""
    if not isinstance(status, dict):
        return False
    return status.get("code") == _EXPIRED_CODE and status.get("reason") == _EXPIRED_REASON


def is_expired_error(err: BaseException | None) -> bool:
    """Return True if a request failed because its resourceVersion is too old."""
    return isinstance(err, KubernetesError) and err.code == _EXPIRED_CODE and err.reason == _EXPIRED_REASON
