"""Application bootstrap for kubecache.

Wires components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> metrics -> K8s client -> cache -> status API -> sync

Shutdown stops components in reverse startup order. Each component's stop
error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from kubecache.config import load_config
from kubecache.models.config import KubeCacheConfig
from kubecache.models.resources import EventType, GroupVersionKind, NamespacedName
from kubecache.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog
    import uvicorn

    from kubecache.cache.resource_cache import ResourceCache
    from kubecache.client.base import KubeClient

_SHUTDOWN_GRACE_SECONDS = 15
_SYNC_TIMEOUT_SECONDS = 300


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: BaseException) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeCacheApp:
    """Application root. Owns the client and the cache.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, client: KubeClient | None = None, config: KubeCacheConfig | None = None) -> None:
        self.config = config
        self._client = client
        self._cache: ResourceCache | None = None
        self._api_server: uvicorn.Server | None = None
        self._api_task: asyncio.Task[None] | None = None
        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def cache(self) -> ResourceCache | None:
        return self._cache

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubecache_starting", version=_kubecache_version())

        # --- 3. Metrics -------------------------------------------------
        self._start_metrics()

        # --- 4. Kubernetes client ---------------------------------------
        await self._start_k8s_client()

        # --- 5. Resource cache ------------------------------------------
        self._start_cache()

        # --- 6. Status API (serves /ready while the cache warms up) -----
        await self._start_api()

        # --- 7. First sync ----------------------------------------------
        await self._wait_for_sync()

        self._running = True
        self._log.info("kubecache_started", kinds=self.config.cache.watch_kinds)

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        if not self.config.metrics.enabled:
            self._log.info("metrics_exporter_disabled")
            return
        try:
            from prometheus_client import start_http_server

            start_http_server(self.config.metrics.port)
            self._log.info("metrics_exporter_started", port=self.config.metrics.port)
        except OSError as exc:
            # Metrics are optional; the cache works without them
            self._log.warning("metrics_exporter_failed", port=self.config.metrics.port, error=str(exc))

    async def _start_k8s_client(self) -> None:
        """Build a DefaultKubeClient from in-cluster config or kubeconfig."""
        assert self._log is not None
        assert self.config is not None
        if self._client is not None:
            return
        self._log.debug("k8s_client_starting")
        try:
            from kubecache.client.default import DefaultKubeClient, load_kube_config

            source = await asyncio.to_thread(load_kube_config)
            self._client = DefaultKubeClient(
                watch_timeout_seconds=self.config.cache.watch_timeout_seconds,
                list_page_size=self.config.cache.list_page_size,
            )
            self._log.info("k8s_client_configured", source=source)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_cache(self) -> None:
        """Register the configured kinds and start their synchronization tasks."""
        assert self._log is not None
        assert self.config is not None
        assert self._client is not None
        self._log.debug("resource_cache_starting")
        try:
            from kubecache.cache.resource_cache import ResourceCache

            cache = ResourceCache(self._client, self.config.cache)
            for kind in self.config.cache.watch_kinds:
                cache.add_listener(GroupVersionKind.parse(kind), _log_event)
            self._cache = cache
            cache.start()
        except Exception as exc:
            raise _ComponentError("cache", exc) from exc

    async def _start_api(self) -> None:
        """Serve the status API with uvicorn in a background task."""
        assert self._log is not None
        assert self.config is not None
        assert self._cache is not None
        if not self.config.api.enabled:
            self._log.info("status_api_disabled")
            return
        self._log.debug("status_api_starting")
        try:
            import uvicorn

            from kubecache.api import create_app

            uv_config = uvicorn.Config(
                app=create_app(cache=self._cache, config=self.config),
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            self._api_task = asyncio.create_task(server.serve(), name="status-api")
            self._api_server = server
            self._log.info("status_api_started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("api", exc) from exc

    async def _wait_for_sync(self) -> None:
        assert self._log is not None
        assert self._cache is not None
        try:
            await self._cache.wait_for_sync(timeout=_SYNC_TIMEOUT_SECONDS)
        except Exception as exc:
            raise _ComponentError("cache", exc) from exc
        self._log.info("resource_cache_synced", readiness=self._cache.readiness().value)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubecache_shutting_down")
        self._running = False

        await self._stop_api()
        await self._stop_component("cache", self._cache)
        self._cache = None
        log.info("kubecache_stopped")

    async def _stop_api(self) -> None:
        """Ask uvicorn to exit and wait for its serve task."""
        server, task = self._api_server, self._api_task
        self._api_server = None
        self._api_task = None
        if server is None or task is None:
            return
        log = self._log or get_logger("app")
        server.should_exit = True
        try:
            await asyncio.wait_for(task, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component_stop_timeout", component="api", timeout=_SHUTDOWN_GRACE_SECONDS)
            task.cancel()
        except Exception as exc:
            log.error("component_stop_failed", component="api", error=str(exc))

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component_stop_timeout", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component_stop_failed", component=name, error=str(exc))


def _log_event(event_type: EventType, obj: Any, raw: dict[str, Any]) -> None:
    """Default listener: one debug line per applied event."""
    log = get_logger("events")
    if not isinstance(obj, dict):
        return
    key = NamespacedName.of(obj)
    log.debug(
        "resource_event",
        event_type=event_type.value,
        kind=obj.get("kind"),
        namespace=key.namespace,
        name=key.name,
        resource_version=(obj.get("metadata") or {}).get("resourceVersion"),
    )


def _kubecache_version() -> str:
    from kubecache import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeCacheApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "startup_failed",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
