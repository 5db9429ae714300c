"""Watch-driven controller.

One thread streams watch events for a resource kind and queues their keys;
worker threads take keys from the queue and call the reconciler. Failed
reconciles are retried with per-key exponential backoff, and a reconciler
can ask for a delayed requeue by returning a ``ReconcileResult``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from apim_operator.runtime.work_queue import KeyedWorkQueue

if TYPE_CHECKING:
    from apim_operator.integrations.kubernetes.client import KubernetesClient
    from apim_operator.runtime.results import ReconcileResult
    from apim_operator.services.kubernetes.resource_manager import ListCall

logger = structlog.get_logger()

Reconciler = Callable[[str], "ReconcileResult | None"]
EventFilter = Callable[[str, Any], bool]

BASE_BACKOFF = 1.0
MAX_BACKOFF = 300.0
# 2**9 seconds already exceeds MAX_BACKOFF
MAX_BACKOFF_EXPONENT = 9
WATCH_RESTART_DELAY = 5.0


def _metadata(obj: Any) -> Any:
    if isinstance(obj, dict):
        return obj.get("metadata") or {}
    return getattr(obj, "metadata", None)


def _meta_value(obj: Any, typed: str, raw: str) -> Any:
    metadata = _metadata(obj)
    if isinstance(metadata, dict):
        return metadata.get(raw)
    return getattr(metadata, typed, None)


def object_key(obj: Any) -> str:
    """``namespace/name`` of a typed SDK object or a custom object dict."""
    namespace = _meta_value(obj, "namespace", "namespace") or ""
    name = _meta_value(obj, "name", "name") or ""
    return f"{namespace}/{name}"


def accept_all(event_type: str, obj: Any) -> bool:
    """Queue every event."""
    return True


def added_only(event_type: str, obj: Any) -> bool:
    """Queue creations only."""
    return event_type == "ADDED"


class GenerationChanged:
    """Queue creations and spec changes, not status or metadata-only updates."""

    def __init__(self) -> None:
        self._seen: dict[str, Any] = {}
        self._lock = threading.Lock()

    def __call__(self, event_type: str, obj: Any) -> bool:
        key = object_key(obj)
        generation = _meta_value(obj, "generation", "generation")
        with self._lock:
            if event_type == "DELETED":
                self._seen.pop(key, None)
                return False
            previous = self._seen.get(key)
            self._seen[key] = generation
        return event_type == "ADDED" or previous != generation


class Controller:
    """Runs one reconciler against one watched resource kind."""

    def __init__(
        self,
        name: str,
        client: KubernetesClient,
        list_call: ListCall,
        reconcile: Reconciler,
        *,
        workers: int = 2,
        watch_timeout: int = 300,
        event_filter: EventFilter = accept_all,
    ) -> None:
        self.name = name
        self._client = client
        self._list_func, self._list_kwargs = list_call
        self._reconcile = reconcile
        self._workers = workers
        self._watch_timeout = watch_timeout
        self._event_filter = event_filter

        self.queue = KeyedWorkQueue()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._watch: Any = None
        self._failures: dict[str, int] = {}
        self._failures_lock = threading.Lock()
        self._log = logger.bind(controller=name)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the watch thread and the workers."""
        self._log.info("controller_starting", workers=self._workers)
        watcher = threading.Thread(target=self._watch_loop, name=f"{self.name}-watch", daemon=True)
        self._threads.append(watcher)
        for i in range(self._workers):
            self._threads.append(
                threading.Thread(target=self._worker_loop, name=f"{self.name}-{i}", daemon=True)
            )
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching and wait for workers to finish their current key."""
        self._stop.set()
        if self._watch is not None:
            self._watch.stop()
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout)
        self._log.info("controller_stopped")

    @property
    def stopped(self) -> bool:
        """Whether ``stop`` was called."""
        return self._stop.is_set()

    # =========================================================================
    # Watch
    # =========================================================================

    def handle_event(self, event_type: str, obj: Any) -> None:
        """Queue the key of one watch event if the filter accepts it."""
        if self._event_filter(event_type, obj):
            self.queue.add(object_key(obj))

    def _watch_loop(self) -> None:
        resource_version: str | None = None
        while not self._stop.is_set():
            self._watch = self._client.new_watch()
            kwargs = dict(self._list_kwargs, timeout_seconds=self._watch_timeout)
            if resource_version:
                kwargs["resource_version"] = resource_version
            try:
                for event in self._watch.stream(self._list_func, **kwargs):
                    if self._stop.is_set():
                        break
                    event_type = event.get("type", "")
                    obj = event.get("object")
                    if event_type == "ERROR":
                        # Usually 410 Gone: restart from a fresh list
                        self._log.info("watch_expired", detail=str(obj))
                        resource_version = None
                        break
                    resource_version = (
                        _meta_value(obj, "resource_version", "resourceVersion") or resource_version
                    )
                    self.handle_event(event_type, obj)
            except Exception as e:
                if self._stop.is_set():
                    break
                self._log.warning("watch_failed", error=str(e))
                resource_version = None
                self._stop.wait(WATCH_RESTART_DELAY)

    # =========================================================================
    # Workers
    # =========================================================================

    def _worker_loop(self) -> None:
        while not self._stop.is_set():
            key = self.queue.get(timeout=1.0)
            if key is None:
                continue
            try:
                self.process(key)
            finally:
                self.queue.done(key)

    def _backoff(self, key: str) -> float:
        with self._failures_lock:
            failures = self._failures.get(key, 0) + 1
            self._failures[key] = failures
        exponent = min(failures - 1, MAX_BACKOFF_EXPONENT)
        return float(min(BASE_BACKOFF * 2**exponent, MAX_BACKOFF))

    def _forget(self, key: str) -> None:
        with self._failures_lock:
            self._failures.pop(key, None)

    def process(self, key: str) -> None:
        """Reconcile one key and schedule any follow-up."""
        log = self._log.bind(key=key)
        try:
            result = self._reconcile(key)
        except Exception as e:
            delay = self._backoff(key)
            log.exception("reconcile_failed", error=str(e), retry_in=delay)
            self.queue.add_after(key, delay)
            return

        self._forget(key)
        if result is not None and result.requeue_after:
            log.debug("requeue_scheduled", delay=result.requeue_after)
            self.queue.add_after(key, result.requeue_after)
