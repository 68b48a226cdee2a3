"""Bring an engine from "just launched" to "ready to search" exactly once."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from typing import Callable, Dict, Optional, Set, Type

from .config import EngineOptions
from .errors import EngineCrashed, InitializationTimeout
from .router import ResponseRouter
from .uci_parser import EngineIdentity, HandshakeAck, ReadyAck, parse_line
from .utils import ConsoleTrace


class _HandshakeWaiter:
    """Collects handshake tokens from the shared output stream."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._seen: Set[Type] = set()
        self._error: Optional[BaseException] = None
        self.identity: Dict[str, str] = {}

    def feed(self, line: str) -> None:
        event = parse_line(line)
        with self._condition:
            if isinstance(event, EngineIdentity):
                self.identity[event.field] = event.value
            elif isinstance(event, (HandshakeAck, ReadyAck)):
                self._seen.add(type(event))
                self._condition.notify_all()

    def abort(self, exc: BaseException) -> None:
        with self._condition:
            self._error = exc
            self._condition.notify_all()

    def wait_for(self, event_type: Type, deadline: float) -> bool:
        with self._condition:
            while True:
                if self._error is not None:
                    raise self._error
                if event_type in self._seen:
                    return True
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._condition.wait(remaining)


class HandshakeCoordinator:
    """Runs ``uci`` -> ``uciok`` -> options -> ``isready`` -> ``readyok``.

    ``ensure_ready`` is safe to call from any number of threads. Only the
    first caller performs the handshake; callers arriving while it is in
    progress wait for that same attempt and share its outcome. A timed-out
    attempt leaves the coordinator not ready, so the next call retries.
    """

    def __init__(
        self,
        *,
        send: Callable[[str], None],
        router: ResponseRouter,
        options: EngineOptions,
        launch: Callable[[], None],
        is_crashed: Callable[[], bool],
        trace: Optional[ConsoleTrace] = None,
    ) -> None:
        self.options = options
        self._send = send
        self._router = router
        self._launch = launch
        self._is_crashed = is_crashed
        self._trace = trace or ConsoleTrace()

        self._lock = threading.Lock()
        self._attempt: Optional[Future] = None
        self._ready = False
        self._options_applied = False
        self.engine_name: Optional[str] = None
        self.engine_author: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def in_progress(self) -> bool:
        return self._attempt is not None

    @property
    def options_locked(self) -> bool:
        """True once options may have reached the engine."""
        return self._ready or self._attempt is not None or self._options_applied

    def ensure_ready(self) -> None:
        with self._lock:
            if self._is_crashed():
                raise EngineCrashed("Chess engine is not running")
            if self._ready:
                return
            attempt = self._attempt
            owner = attempt is None
            if owner:
                attempt = self._attempt = Future()
                attempt.set_running_or_notify_cancel()

        if not owner:
            # Re-raises the owner's failure, if any.
            attempt.result()
            return

        try:
            self._perform()
        except BaseException as exc:
            attempt.set_exception(exc)
            raise
        else:
            attempt.set_result(None)
        finally:
            with self._lock:
                self._attempt = None

    def _perform(self) -> None:
        options = self.options
        timeout_s = options.init_timeout_ms / 1000.0
        deadline = time.monotonic() + timeout_s
        waiter = _HandshakeWaiter()
        request_id = ("handshake", self._router.new_request_id())

        self._router.register(request_id, waiter.feed, on_abort=waiter.abort)
        try:
            self._launch()
            self._send("uci")
            if not waiter.wait_for(HandshakeAck, deadline):
                raise InitializationTimeout(
                    f"Engine did not answer uciok within {options.init_timeout_ms} ms"
                )
            self._capture_identity(waiter.identity)

            if not self._options_applied:
                for name, value in options.uci_options().items():
                    self._send(f"setoption name {name} value {value}")
                self._options_applied = True

            self._send("isready")
            if not waiter.wait_for(ReadyAck, deadline):
                raise InitializationTimeout(
                    f"Engine did not answer readyok within {options.init_timeout_ms} ms"
                )
        finally:
            self._router.unregister(request_id)

        self._ready = True
        self._trace.info(f"Engine ready: {self.engine_name or 'unknown engine'}")

    def _capture_identity(self, identity: Dict[str, str]) -> None:
        if "name" in identity:
            self.engine_name = identity["name"]
        if "author" in identity:
            self.engine_author = identity["author"]
