"""Application bootstrap for gardenwatch.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> store -> watches -> REST

Shutdown is graceful: components are stopped in reverse startup order and
each stop error is caught and logged independently.

A watch that terminates on its own (retry budget exhausted, non-retryable
error, or a consumer failure) is fatal: the process shuts down and exits
non-zero so the orchestrator can restart it.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from gardenwatch.config import load_config
from gardenwatch.models.config import GardenWatchConfig
from gardenwatch.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from gardenwatch.cache import ResourceStore
    from gardenwatch.models.collections import ResourceCollection
    from gardenwatch.watches import Dispatcher, WatchConnection

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class GardenWatchApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is idempotent: calling it on an app that was never started or
    that has already stopped is a no-op.
    """

    def __init__(self, config: GardenWatchConfig | None = None) -> None:
        self.config = config
        self._api_client: Any = None
        self._store: ResourceStore | None = None
        self._connections: list[WatchConnection] = []
        self._watches: list[tuple[ResourceCollection, Dispatcher]] = []
        self._rest_server: Any = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._stopped = False
        self.failed = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("gardenwatch starting", version=_gardenwatch_version())

        await self._start_k8s_client()
        await self._start_store()
        await self._start_watches()
        await self._start_rest()

        self._running = not self.failed
        self._log.info("gardenwatch started", port=self.config.api.port)

    async def _start_k8s_client(self) -> None:
        """Load in-cluster config or kubeconfig and create the API client."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_store(self) -> None:
        assert self._log is not None
        from gardenwatch.cache import ResourceStore

        self._store = ResourceStore()
        self._log.info("resource store started")

    async def _start_watches(self) -> None:
        """Create one connection per watched collection and start them."""
        assert self._log is not None
        assert self.config is not None
        assert self._store is not None
        self._log.debug("starting watches")
        try:
            from gardenwatch.models.collections import CollectionRegistry
            from gardenwatch.watches import (
                KubernetesWatchTransport,
                ReconnectionPolicy,
                WatchConnection,
                register,
            )

            watch_cfg = self.config.watch
            backoff = self.config.backoff
            k8s_cfg = self.config.kubernetes

            registry = CollectionRegistry(watch_cfg.namespaced_resources)
            policy = ReconnectionPolicy(
                base_delay_ms=backoff.base_delay_ms,
                max_delay_ms=backoff.max_delay_ms,
                max_attempts=backoff.max_attempts or None,
                jitter=backoff.jitter,
            )
            transport = KubernetesWatchTransport(
                self._api_client,
                group=k8s_cfg.api_group,
                version=k8s_cfg.api_version,
                timeout_seconds=k8s_cfg.watch_timeout_seconds,
            )

            for name in watch_cfg.resources:
                collection = registry.identity(name)
                connection = WatchConnection(
                    collection,
                    transport,
                    policy,
                    namespace=watch_cfg.namespace or None,
                    idle_timeout=watch_cfg.idle_timeout_seconds,
                    healthy_after=watch_cfg.healthy_after_seconds,
                )
                dispatcher = register(connection, self._store.consumer_for(collection))
                self._connections.append(connection)
                self._watches.append((collection, dispatcher))

            for connection in self._connections:
                await connection.start()
                task = asyncio.create_task(self._supervise(connection), name=f"supervise-{connection.collection}")
                self._background_tasks.append(task)

            self._log.info(
                "watches started",
                collections=[c.name for c, _ in self._watches],
                namespaced=sorted(registry.namespaced),
            )
        except Exception as exc:
            raise _ComponentError("watches", exc) from exc

    async def _supervise(self, connection: WatchConnection) -> None:
        """Shut the app down when a watch session ends on its own."""
        log = self._log or get_logger("app")
        try:
            await connection.wait()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.critical(
                "watch consumer failed",
                collection=connection.collection.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            log.critical("watch terminated", collection=connection.collection.name)
        if not self._stopped:
            self.failed = True
            self._running = False

    async def _start_rest(self) -> None:
        """Start the uvicorn status server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from gardenwatch.api import build_app

            fastapi_app = build_app(store=self._store, watches=self._watches)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host=self.config.api.host,
                port=self.config.api.port,
                log_config=None,
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if self._stopped or (not self._running and self._log is None):
            return
        self._stopped = True

        log = self._log or get_logger("app")
        log.info("gardenwatch shutting down")

        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True

        for connection in reversed(self._connections):
            await self._stop_watch(connection)

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_k8s_client()
        log.info("gardenwatch stopped")

    async def _stop_watch(self, connection: WatchConnection) -> None:
        """Stop one watch within the grace period; failures are logged, never raised."""
        log = self._log or get_logger("app")
        collection = connection.collection.name
        try:
            await asyncio.wait_for(connection.stop(), timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("watch stop timed out", collection=collection, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("watch stop failed", collection=collection, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _gardenwatch_version() -> str:
    from gardenwatch import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = GardenWatchApp()
    loop = asyncio.get_running_loop()

    shutdown_requested = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_requested.set)

    try:
        await app.start()
        while app._running and not shutdown_requested.is_set():
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        await app.stop()

    if app.failed:
        raise SystemExit(1)
