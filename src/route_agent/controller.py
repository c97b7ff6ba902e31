"""Worker pool driving the reconcile engine from the work queue."""

from __future__ import annotations

import logging
from threading import Event, Lock, Thread
from typing import List, Optional

from route_reconciler.errors import ReconcileError
from route_reconciler.reconciler import ReconcileEngine
from route_reconciler.store import InMemoryStore

from .render import StateRenderer
from .workqueue import WorkQueue

LOG = logging.getLogger(__name__)


class RouteController:
    """Reconcile queued Route keys on a pool of worker threads.

    Each reconcile reads a fresh snapshot of the store.  Retryable failures
    are requeued with back-off; others are logged and dropped.  Every Route
    is re-enqueued once per ``resync_period``.
    """

    def __init__(
        self,
        engine: ReconcileEngine,
        store: InMemoryStore,
        *,
        queue: Optional[WorkQueue] = None,
        workers: int = 2,
        resync_period: float = 300.0,
        renderer: Optional[StateRenderer] = None,
        stop_event: Optional[Event] = None,
    ) -> None:
        self._engine = engine
        self._store = store
        self._queue = queue or WorkQueue()
        self._workers = workers
        self._resync_period = resync_period
        self._renderer = renderer
        self._stop_event = stop_event or Event()
        self._threads: List[Thread] = []
        self._render_lock = Lock()
        self._rendered_generation = -1

    @property
    def queue(self) -> WorkQueue:
        return self._queue

    def enqueue(self, key: str) -> None:
        self._queue.add(key)

    def resync(self) -> None:
        routes = self._store.snapshot().routes.list()
        LOG.debug("Resyncing %d routes", len(routes))
        for route in routes:
            self.enqueue(route.meta.key)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def process_next(self, timeout: Optional[float] = None) -> bool:
        """Reconcile one key; return ``False`` once the queue shuts down."""

        key = self._queue.get(timeout=timeout)
        if key is None:
            return not self._queue.shutting_down
        try:
            self._reconcile(key)
        finally:
            self._queue.done(key)
        return True

    def _reconcile(self, key: str) -> None:
        try:
            self._engine.reconcile(key, self._store.snapshot())
        except ReconcileError as exc:
            if exc.retryable:
                LOG.warning("Reconcile of %s failed, requeueing: %s", key, exc)
                self._queue.add_rate_limited(key)
            else:
                LOG.error("Dropping %s: %s", key, exc)
                self._queue.forget(key)
        except Exception:
            LOG.exception("Unexpected error reconciling %s", key)
            self._queue.add_rate_limited(key)
        else:
            self._queue.forget(key)
        finally:
            self._render()

    def _render(self) -> None:
        if self._renderer is None:
            return
        with self._render_lock:
            generation = self._store.generation
            if generation == self._rendered_generation:
                return
            try:
                result = self._renderer.render(self._store)
            except Exception:
                LOG.exception("Failed to render state")
                return
            self._rendered_generation = generation
        LOG.debug("Rendered state to %s", result.output_path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        LOG.info("Starting route controller with %d workers", self._workers)
        for index in range(self._workers):
            thread = Thread(target=self._worker, name=f"route-worker-{index}", daemon=True)
            thread.start()
            self._threads.append(thread)
        resync = Thread(target=self._resync_loop, name="route-resync", daemon=True)
        resync.start()
        self._threads.append(resync)

    def _worker(self) -> None:
        while True:
            try:
                if not self.process_next():
                    return
            except Exception:
                LOG.exception("Route worker iteration failed")

    def _resync_loop(self) -> None:
        while not self._stop_event.wait(self._resync_period):
            try:
                self.resync()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("resync failed")

    def stop(self, timeout: float = 5.0) -> None:
        LOG.info("Stopping route controller")
        self._stop_event.set()
        self._queue.shut_down()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
