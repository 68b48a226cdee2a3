"""Single-worker FIFO queue that keeps one search on the engine at a time."""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from .utils import ConsoleTrace

WorkItem = Callable[[], Any]

_SHUTDOWN = object()


class RequestSerializer:
    """Runs queued work items strictly one after another.

    ``enqueue`` may be called from any thread. Items run on a single daemon
    worker in the order they were enqueued; item N+1 starts only after item
    N's future has settled. A failing item only fails its own future.
    """

    def __init__(self, name: str = "engine-requests", trace: Optional[ConsoleTrace] = None) -> None:
        self._name = name
        self._trace = trace or ConsoleTrace()
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._closed = False
        self._active_future: Optional[Future] = None

    @property
    def active_future(self) -> Optional[Future]:
        return self._active_future

    @property
    def closed(self) -> bool:
        return self._closed

    def pending_count(self) -> int:
        return self._queue.qsize()

    def enqueue(self, work: WorkItem) -> Future:
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("Request queue is closed")
            self._queue.put((work, future))
            self._ensure_worker()
        return future

    def fail_pending(self, exc: BaseException) -> int:
        """Reject every item that has not started yet."""
        failed = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _SHUTDOWN:
                self._queue.put(_SHUTDOWN)
                break
            _, future = item
            if future.set_running_or_notify_cancel():
                future.set_exception(exc)
                failed += 1
        if failed:
            self._trace.debug(f"rejected {failed} queued request(s): {exc}")
        return failed

    def close(self, exc: Optional[BaseException] = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            worker = self._worker
        if exc is not None:
            self.fail_pending(exc)
        self._queue.put(_SHUTDOWN)
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=1.0)

    def _ensure_worker(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._worker.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _SHUTDOWN:
                break
            work, future = item
            # Cancelled while queued: skip without touching the engine.
            if not future.set_running_or_notify_cancel():
                continue
            self._active_future = future
            try:
                result = work()
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)
            finally:
                self._active_future = None
