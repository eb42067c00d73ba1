"""Application bootstrap for kubemirror.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → cluster connection → resource access
              (resolver, watch fan-out) → REST

Shutdown stops components in reverse startup order.  Each component's stop
error is caught and logged independently so one failing teardown does not
keep the rest from shutting down.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubemirror.config import load_config
from kubemirror.models.config import KubeMirrorConfig
from kubemirror.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubemirror.access.service import ResourceAccess
    from kubemirror.cluster.connection import ClusterConnection

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeMirrorApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or has
    already stopped.
    """

    def __init__(self, config: KubeMirrorConfig | None = None) -> None:
        self.config: KubeMirrorConfig | None = config

        self._connection: ClusterConnection | None = None
        self._access: ResourceAccess | None = None
        self._rest_server: object | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def access(self) -> ResourceAccess | None:
        return self._access

    @property
    def running(self) -> bool:
        return self._running

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
        self._log.info("kubemirror_starting", version=_kubemirror_version())

        # --- 3. Cluster connection --------------------------------------
        await self._start_connection()

        # --- 4. Resource access and watch fan-out -----------------------
        await self._start_access()

        # --- 5. REST API (optional) -------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("kubemirror_started", port=self.config.api.port if self.config.api.enabled else None)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_connection(self) -> None:
        """Connect from in-cluster config, falling back to kubeconfig."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting_cluster_connection")
        try:
            from kubemirror.cluster.connection import ClusterConnection

            self._connection = await ClusterConnection.connect(
                kubeconfig=self.config.cluster.kubeconfig,
                request_timeout=float(self.config.cluster.request_timeout_seconds),
            )
        except Exception as exc:
            raise _ComponentError("cluster_connection", exc) from exc

    async def _start_access(self) -> None:
        """Build the access layer and start the watch fan-out.

        Synchronization is awaited with a bound; kinds still listing after
        it are served live until their stores catch up.
        """
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting_resource_access")
        try:
            from kubemirror.access.service import ResourceAccess

            access = ResourceAccess(self._connection, self.config)
            await access.start()
            self._access = access
        except Exception as exc:
            raise _ComponentError("resource_access", exc) from exc

        synced = await self._access.all_synchronized(timeout=self.config.watch.sync_timeout_seconds)
        if synced:
            self._log.info("stores_synchronized", stores=len(self._access.status()))
        else:
            pending = [s.kind for s in self._access.status() if not s.synced and not s.failed]
            self._log.warning(
                "stores_sync_timeout",
                timeout=self.config.watch.sync_timeout_seconds,
                pending=pending,
            )

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server.  Failure degrades to no API."""
        assert self._log is not None
        assert self.config is not None
        if not self.config.api.enabled:
            self._log.info("rest_api_disabled")
            return
        self._log.debug("starting_rest_api")
        try:
            import uvicorn

            from kubemirror.api.app import create_app

            fastapi_app = create_app(access=self._access, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest_api_started", port=self.config.api.port)
        except Exception as exc:
            self._log.warning("rest_api_unavailable", error=str(exc))
            self._rest_server = None

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubemirror_shutting_down")

        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        await self._stop_component("resource_access", self._access)
        await self._stop_component("cluster_connection", self._connection)
        self._access = None
        self._connection = None

        log.info("kubemirror_stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() or close() on a component, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None) or getattr(component, "close", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component_stop_timed_out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component_stop_failed", component=name, error=str(exc))


def _kubemirror_version() -> str:
    from kubemirror import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeMirrorApp()
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
        while app.running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal_startup_error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
