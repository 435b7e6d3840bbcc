"""Base class for reconciliation controllers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from kubecache.client.base import KubeClient
from kubecache.models.resources import GroupVersionKind


class Controller(ABC):
    """Reconciles objects of one resource type.

    The ``Manager`` injects the client before the controller is used.
    """

    def __init__(self, gvk: GroupVersionKind) -> None:
        self._gvk = gvk
        self._kube_client: KubeClient | None = None

    def set_kube_client(self, kube_client: KubeClient) -> None:
        self._kube_client = kube_client

    def for_kind(self) -> GroupVersionKind:
        return self._gvk

    @property
    def kube_client(self) -> KubeClient:
        if self._kube_client is None:
            raise RuntimeError(f"KubeClient not set for controller of {self._gvk}")
        return self._kube_client

    @abstractmethod
    async def reconcile(self, obj: dict[str, Any]) -> None:
        """Drive the cluster towards the desired state described by *obj*."""
