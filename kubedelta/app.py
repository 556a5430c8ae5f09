"""Application bootstrap for kubedelta.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → classifier → dispatcher
              → watchers (initial list) → wait for sync → REST

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from typing import TYPE_CHECKING

from kubedelta.cache.resource_cache import ResourceCache
from kubedelta.collector.watcher import ResourceWatcher
from kubedelta.config import load_config
from kubedelta.diff.classifier import ChangeClassifier
from kubedelta.diff.masking import VolatilityMask
from kubedelta.dispatch import build_dispatcher
from kubedelta.dispatch.manager import EventDispatcher
from kubedelta.errors import SourceUnavailable, SyncTimeout
from kubedelta.models.config import KubeDeltaConfig
from kubedelta.models.resources import ResourceKind
from kubedelta.observability.logging import get_logger, setup_logging
from kubedelta.source.base import RemoteSource

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeDeltaApp:
    """Application root. Owns every component and coordinates their lifecycle.

    ``config``, ``source`` and ``emit`` may be injected (tests, embedding);
    otherwise they come from the environment, kubernetes-asyncio and stdout.
    Calling ``stop()`` on an app that was never started is safe.
    """

    def __init__(
        self,
        config: KubeDeltaConfig | None = None,
        source: RemoteSource | None = None,
        emit: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config
        self._source = source
        self._owns_source = source is None
        self._emit = emit

        self._classifier: ChangeClassifier | None = None
        self._dispatcher: EventDispatcher | None = None
        self._watchers: dict[ResourceKind, ResourceWatcher] = {}
        self._rest_server: object | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def caches(self) -> dict[ResourceKind, ResourceCache]:
        return {kind: watcher.cache for kind, watcher in self._watchers.items()}

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) turns this into a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info(
            "kubedelta starting",
            version=_kubedelta_version(),
            namespace=self.config.source.namespace or "*",
            kinds=[k.value for k in self.config.source.kinds],
        )

        # --- 3. Remote source ---------------------------------------------
        await self._start_source()

        # --- 4. Classifier + dispatcher ------------------------------------
        self._start_classifier()
        await self._start_dispatcher()

        # --- 5. Watchers: initial list per kind ----------------------------
        await self._start_watchers()

        # --- 6. Sync gate --------------------------------------------------
        await self._wait_synced()

        # --- 7. REST API (optional) ----------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("kubedelta started")

    async def _start_source(self) -> None:
        """Build the kubernetes-asyncio source from in-cluster config or kubeconfig."""
        assert self._log is not None
        assert self.config is not None
        if self._source is not None:
            self._log.debug("using injected remote source", source=type(self._source).__name__)
            return
        self._log.debug("starting k8s client")
        try:
            # Import lazily: kubernetes-asyncio attempts cluster auto-detection on import in some versions.
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

            from kubedelta.source.kubernetes import KubernetesSource

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                # load_kube_config() is async in kubernetes-asyncio
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._source = KubernetesSource(
                namespace=self.config.source.namespace,
                watch_timeout_seconds=self.config.source.watch_timeout_seconds,
            )
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_classifier(self) -> None:
        assert self.config is not None
        classifier = ChangeClassifier()
        for kind, paths in self.config.classifier.volatile_fields.items():
            classifier.register(kind, VolatilityMask.from_strings(paths))
        self._classifier = classifier

    async def _start_dispatcher(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._classifier is not None
        dispatcher = build_dispatcher(self.config, self._classifier, emit=self._emit)
        await dispatcher.start()
        self._dispatcher = dispatcher

    async def _start_watchers(self) -> None:
        """Create one cache + watcher per kind and perform the initial lists."""
        assert self._log is not None
        assert self.config is not None
        assert self._source is not None
        assert self._classifier is not None
        assert self._dispatcher is not None
        watch_cfg = self.config.watch
        for kind in self.config.source.kinds:
            watcher = ResourceWatcher(
                kind=kind,
                source=self._source,
                cache=ResourceCache(kind),
                classifier=self._classifier,
                dispatcher=self._dispatcher,
                resync_interval=watch_cfg.resync_interval,
                backoff_initial=watch_cfg.backoff_initial,
                backoff_max=watch_cfg.backoff_max,
            )
            try:
                await watcher.start()
            except SourceUnavailable as exc:
                raise _ComponentError(f"watcher:{kind.value}", exc) from exc
            self._watchers[kind] = watcher

    async def _wait_synced(self) -> None:
        assert self.config is not None
        timeout = self.config.watch.sync_timeout
        try:
            await asyncio.gather(*(w.cache.wait_synced(timeout) for w in self._watchers.values()))
        except SyncTimeout as exc:
            raise _ComponentError("cache_sync", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server when enabled."""
        assert self._log is not None
        assert self.config is not None
        if not self.config.api.enabled:
            self._log.info("rest api disabled (api.enabled=false)")
            return
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from kubedelta.api import create_app

            fastapi_app = create_app(caches=self.caches)
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
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            # Never started: nothing to do
            return

        log = self._log or get_logger("app")
        log.info("kubedelta shutting down")

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

        # Producers first so no new events are dispatched, then the dispatcher.
        for kind, watcher in reversed(list(self._watchers.items())):
            await self._stop_component(f"watcher:{kind.value}", watcher)
        await self._stop_component("dispatcher", self._dispatcher)
        if self._owns_source:
            await self._stop_source()

        log.info("kubedelta stopped")

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
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_source(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._source is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._source.close()
        except Exception as exc:
            log.debug("source close raised (non-fatal)", error=str(exc))
        self._source = None


def _kubedelta_version() -> str:
    from kubedelta import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeDeltaApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        # A mandatory component failed; log and exit non-zero
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
