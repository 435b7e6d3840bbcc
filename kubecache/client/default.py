"""KubeClient backed by the official ``kubernetes`` Python client.

The ``kubernetes`` client is blocking, so request/response calls run through
``asyncio.to_thread`` and every watch stream gets its own daemon thread. The
watch thread never touches cache state: it hands each decoded event to the
event loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import json
import threading
from typing import Any

import structlog
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from kubernetes.watch.watch import iter_resp_lines

from kubecache.client.base import KubeClient, WatchDoneCallback, WatchEventCallback
from kubecache.errors import KubernetesError, NotFound
from kubecache.models.resources import ObjectList

_log = structlog.get_logger(component="client.default")

# Client-side bound on a watch read; the server closes the stream at timeoutSeconds
_WATCH_CONNECT_TIMEOUT = 10
_WATCH_READ_SLACK = 30


def load_kube_config() -> str:
    """Configure the default ApiClient from the service account or kubeconfig.

    Returns the source that was used (``in-cluster`` or ``kubeconfig``).
    """
    try:
        k8s_config.load_incluster_config()
        return "in-cluster"
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
        return "kubeconfig"


class DefaultKubeClient(KubeClient):
    """Talks to the API server through ``kubernetes.dynamic.DynamicClient``.

    Args:
        api_client:            Configured ApiClient; a default one is built when omitted.
        watch_timeout_seconds: Server-side timeout of a single watch request.
        list_page_size:        ``limit`` for paged list calls.
    """

    def __init__(
        self,
        api_client: k8s_client.ApiClient | None = None,
        watch_timeout_seconds: int = 300,
        list_page_size: int = 500,
    ) -> None:
        self._api_client = api_client or k8s_client.ApiClient()
        self._watch_timeout_seconds = watch_timeout_seconds
        self._list_page_size = list_page_size
        self._dynamic: DynamicClient | None = None
        self._dynamic_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Helpers (run in worker threads)
    # ------------------------------------------------------------------

    def _dynamic_client(self) -> DynamicClient:
        # Discovery issues requests, so build on first use, off the event loop.
        with self._dynamic_lock:
            if self._dynamic is None:
                self._dynamic = DynamicClient(self._api_client)
            return self._dynamic

    def _resource(self, api_version: str, kind: str, spec: dict[str, Any] | None = None) -> Any:
        try:
            return self._dynamic_client().resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError as exc:
            raise NotFound(spec, message=f"no API resource for {api_version}/{kind}") from exc

    def _call(self, verb: str, spec: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        resource = self._resource(spec["apiVersion"], spec["kind"], spec)
        metadata = spec.get("metadata") or {}
        name = metadata.get("name")
        namespace = metadata.get("namespace")
        dynamic = self._dynamic_client()
        params = {key: value for key, value in kwargs.items() if value is not None}
        try:
            if verb == "get":
                result = dynamic.get(resource, name=name, namespace=namespace)
            elif verb == "create":
                result = dynamic.create(resource, body=spec, namespace=namespace, **params)
            elif verb == "replace":
                result = dynamic.replace(resource, body=spec, name=name, namespace=namespace, **params)
            elif verb == "patch":
                result = dynamic.patch(resource, body=spec, name=name, namespace=namespace, **params)
            elif verb == "delete":
                result = dynamic.delete(resource, name=name, namespace=namespace, **params)
            else:
                raise ValueError(f"unsupported verb: {verb}")
        except ApiException as exc:
            raise KubernetesError.from_api_exception(exc, spec) from exc
        return result.to_dict()

    def _list(
        self,
        api_version: str,
        kind: str,
        namespace: str | None,
        label_selector: str | None,
        field_selector: str | None,
    ) -> ObjectList:
        resource = self._resource(api_version, kind)
        dynamic = self._dynamic_client()
        items: list[dict[str, Any]] = []
        resource_version: str | None = None
        continue_token: str | None = None
        while True:
            params: dict[str, Any] = {"limit": self._list_page_size}
            if continue_token:
                params["_continue"] = continue_token
            if label_selector:
                params["label_selector"] = label_selector
            if field_selector:
                params["field_selector"] = field_selector
            try:
                page = dynamic.get(resource, namespace=namespace, **params).to_dict()
            except ApiException as exc:
                raise KubernetesError.from_api_exception(
                    exc, {"apiVersion": api_version, "kind": kind, "metadata": {"namespace": namespace}}
                ) from exc
            for item in page.get("items") or []:
                # List responses omit the per-item type
                item.setdefault("apiVersion", api_version)
                item.setdefault("kind", kind)
                items.append(item)
            page_meta = page.get("metadata") or {}
            resource_version = page_meta.get("resourceVersion") or resource_version
            continue_token = page_meta.get("continue")
            if not continue_token:
                break
        return ObjectList(items=items, resource_version=resource_version)

    # ------------------------------------------------------------------
    # KubeClient
    # ------------------------------------------------------------------

    async def get(self, spec: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._call, "get", spec)

    async def create(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self._call, "create", spec, dry_run=dry_run, field_manager=field_manager)

    async def replace(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self._call, "replace", spec, dry_run=dry_run, field_manager=field_manager)

    async def patch(
        self,
        spec: dict[str, Any],
        *,
        dry_run: str | None = None,
        field_manager: str | None = None,
        force: bool | None = None,
        content_type: str = "application/merge-patch+json",
    ) -> dict[str, Any]:
        return await asyncio.to_thread(
            self._call,
            "patch",
            spec,
            dry_run=dry_run,
            field_manager=field_manager,
            force_conflicts=force,
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
        return await asyncio.to_thread(
            self._call,
            "delete",
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
        return await asyncio.to_thread(self._list, api_version, kind, namespace, label_selector, field_selector)

    async def get_api_resource_path(self, api_version: str, kind: str, namespace: str | None = None) -> str:
        resource = await asyncio.to_thread(self._resource, api_version, kind)
        return str(resource.path(namespace=namespace))

    async def watch(
        self,
        path: str,
        resource_version: str | None,
        on_event: WatchEventCallback,
        on_done: WatchDoneCallback,
    ) -> _WatchStream:
        stream = _WatchStream(
            api_client=self._api_client,
            loop=asyncio.get_running_loop(),
            path=path,
            resource_version=resource_version,
            timeout_seconds=self._watch_timeout_seconds,
            on_event=on_event,
            on_done=on_done,
        )
        stream.start()
        return stream


class _WatchStream:
    """One watch request, read line by line in a daemon thread."""

    def __init__(
        self,
        api_client: k8s_client.ApiClient,
        loop: asyncio.AbstractEventLoop,
        path: str,
        resource_version: str | None,
        timeout_seconds: int,
        on_event: WatchEventCallback,
        on_done: WatchDoneCallback,
    ) -> None:
        self._api_client = api_client
        self._loop = loop
        self._path = path
        self._resource_version = resource_version
        self._timeout_seconds = timeout_seconds
        self._on_event = on_event
        self._on_done = on_done
        self._response: Any = None
        self._aborted = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"watch {path}", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def abort(self) -> None:
        if self._aborted.is_set():
            return
        self._aborted.set()
        response = self._response
        if response is not None:
            try:
                # Unblocks the reader thread
                response.close()
            except Exception as exc:  # noqa: BLE001
                _log.debug("watch_close_failed", path=self._path, error=str(exc))

    def _dispatch(self, callback: Any, *args: Any) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            _log.debug("watch_callback_dropped", path=self._path)

    def _run(self) -> None:
        error: BaseException | None = None
        query_params: list[tuple[str, str]] = [
            ("watch", "true"),
            ("allowWatchBookmarks", "true"),
            ("timeoutSeconds", str(self._timeout_seconds)),
        ]
        if self._resource_version:
            query_params.append(("resourceVersion", self._resource_version))
        try:
            self._response = self._api_client.call_api(
                self._path,
                "GET",
                query_params=query_params,
                header_params={"Accept": "application/json"},
                auth_settings=["BearerToken"],
                _preload_content=False,
                _return_http_data_only=True,
                _request_timeout=(_WATCH_CONNECT_TIMEOUT, self._timeout_seconds + _WATCH_READ_SLACK),
            )
            if self._aborted.is_set():
                return
            for line in iter_resp_lines(self._response):
                if self._aborted.is_set():
                    break
                event = json.loads(line)
                self._dispatch(self._on_event, event.get("type"), event.get("object"), event)
        except ApiException as exc:
            if not self._aborted.is_set():
                error = KubernetesError.from_api_exception(exc)
        except Exception as exc:  # noqa: BLE001
            if not self._aborted.is_set():
                error = exc
        finally:
            if self._response is not None:
                try:
                    self._response.release_conn()
                except Exception:  # noqa: BLE001
                    _log.debug("watch_release_failed", path=self._path)
            self._dispatch(self._on_done, error)
