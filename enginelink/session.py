"""Request/response facade over one long-lived UCI engine process."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from typing import Callable, Dict, Optional, Sequence, TypeVar, Union

import chess

from .analysis import AnalysisResult
from .config import MAX_CANDIDATES, OPTION_RANGES, EngineOptions
from .engine_comm import EngineBinding, SubprocessEngine
from .errors import EngineCrashed, InvalidConfiguration, InvalidPosition, ResponseTimeout
from .handshake import HandshakeCoordinator
from .request_queue import RequestSerializer
from .router import ResponseRouter
from .uci_parser import SearchProgress, SearchResult, parse_line
from .utils import ConsoleTrace
from .watchdog import PendingRequest, RequestKind, RequestState, SearchWatchdog

T = TypeVar("T")

START_POSITION = "startpos"


class EngineSession:
    """The single logical connection to one engine instance.

    Callers on any thread issue :meth:`get_best_move` and
    :meth:`get_analysis`; both return a :class:`concurrent.futures.Future`
    immediately. Requests run one at a time, in the order they were issued,
    on the session's request worker. The first request (or an explicit
    :meth:`initialize`) performs the UCI handshake.

    Once the engine is declared crashed the session never recovers: queued
    and in-flight requests fail with :class:`EngineCrashed` and new requests
    fail immediately without touching the engine.
    """

    def __init__(
        self,
        binding: EngineBinding,
        options: Optional[EngineOptions] = None,
        *,
        name: str = "Engine",
        trace: Optional[ConsoleTrace] = None,
    ) -> None:
        self._options = (options or EngineOptions()).validate()
        self._trace = trace or ConsoleTrace(self._options.debug, label=name)
        self._binding = binding

        # Lock to manage concurrent access to session state
        self._state_lock = threading.Lock()
        self._crashed = False
        self._terminated = False
        self._binding_started = False
        self._requests: Dict[Future, PendingRequest] = {}
        # Only touched from the request worker.
        self._multipv = 1
        # Searches that timed out while the engine stayed alive still owe a
        # bestmove; their output is dropped until it arrives.
        self._output = threading.Condition()
        self._owed_results = 0

        self._router = ResponseRouter(trace=self._trace)
        self._serializer = RequestSerializer(name=f"{name.lower()}-requests", trace=self._trace)
        self._handshake = HandshakeCoordinator(
            send=self._send,
            router=self._router,
            options=self._options,
            launch=self._launch_binding,
            is_crashed=lambda: self.crashed,
            trace=self._trace,
        )
        self._watchdog = SearchWatchdog(
            send=self._send,
            options=self._options,
            on_crash_confirmed=self._on_crash_confirmed,
            trace=self._trace,
        )

    @classmethod
    def launch(
        cls,
        command: Union[str, Sequence[str]],
        options: Optional[EngineOptions] = None,
        *,
        workdir: Optional[str] = None,
        name: str = "Engine",
    ) -> "EngineSession":
        """Create a session around a subprocess engine (not started yet)."""
        options = (options or EngineOptions()).validate()
        trace = ConsoleTrace(options.debug, label=name)
        binding = SubprocessEngine(command, workdir=workdir, trace=trace)
        return cls(binding, options, name=name, trace=trace)

    def __enter__(self) -> "EngineSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def ready(self) -> bool:
        return self._handshake.ready and not self.crashed

    @property
    def crashed(self) -> bool:
        return self._crashed or self._terminated

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def engine_name(self) -> Optional[str]:
        return self._handshake.engine_name

    @property
    def engine_author(self) -> Optional[str]:
        return self._handshake.engine_author

    @property
    def router(self) -> ResponseRouter:
        return self._router

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def initialize(self, options: Optional[EngineOptions] = None) -> None:
        """Block until the engine is ready to search.

        Raises InitializationTimeout (retryable) or EngineCrashed.
        """
        if options is not None:
            options.validate()
            with self._state_lock:
                if options != self._options:
                    if self._handshake.options_locked:
                        raise InvalidConfiguration(
                            "Engine options cannot change after the handshake"
                        )
                    self._apply_options(options)
        self._check_usable()
        self._handshake.ensure_ready()

    def get_best_move(self, fen: str, depth: Optional[int] = None) -> "Future[Optional[str]]":
        pending = self._prepare(RequestKind.BEST_MOVE, fen, depth, candidate_count=1)
        return self._submit(pending, lambda result: result.primary_move)

    def get_analysis(
        self,
        fen: str,
        candidate_count: int,
        depth: Optional[int] = None,
    ) -> "Future[AnalysisResult]":
        pending = self._prepare(RequestKind.ANALYSIS, fen, depth, candidate_count=candidate_count)
        return self._submit(pending, lambda result: result)

    def cancel(self, future: Future) -> bool:
        """Cancel a request issued by this session.

        A queued request is dropped without reaching the engine. A running
        request gets a soft ``stop`` and resolves with the best line the
        engine reports.
        """
        with self._state_lock:
            pending = self._requests.get(future)
        if pending is None:
            return False
        if future.cancel():
            self._trace.debug(f"request {pending.request_id} cancelled while queued")
            return True
        return pending.request_stop()

    def terminate(self) -> None:
        """Best-effort shutdown. Idempotent and never raises."""
        with self._state_lock:
            if self._terminated:
                return
            self._terminated = True
            binding_started = self._binding_started

        closed = EngineCrashed("Engine session terminated")
        try:
            self._router.abort_all(closed)
            self._serializer.close(closed)
        except Exception as exc:  # pragma: no cover - defensive logging
            self._trace.debug(f"Failed to release pending requests: {exc}")
        if binding_started:
            self._stop_binding()
        self._trace.info("Engine session terminated")

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------
    def _prepare(
        self,
        kind: RequestKind,
        fen: str,
        depth: Optional[int],
        *,
        candidate_count: int,
    ) -> PendingRequest:
        depth = self._options.default_depth if depth is None else depth
        minimum, maximum = OPTION_RANGES["default_depth"]
        if isinstance(depth, bool) or not isinstance(depth, int) or not minimum <= depth <= maximum:
            raise InvalidConfiguration(f"Depth must be between {minimum} and {maximum}, got {depth!r}")
        if (
            isinstance(candidate_count, bool)
            or not isinstance(candidate_count, int)
            or not 1 <= candidate_count <= MAX_CANDIDATES
        ):
            raise InvalidConfiguration(
                f"Candidate count must be between 1 and {MAX_CANDIDATES}, got {candidate_count!r}"
            )

        board = board_from_fen(fen)
        pending = PendingRequest(
            kind,
            board.fen() if fen != START_POSITION else START_POSITION,
            depth,
            candidate_count=candidate_count,
            white_to_move=board.turn == chess.WHITE,
            timeout_ms=self._options.search_timeout_ms,
            request_id=self._router.new_request_id(),
        )
        return pending

    def _submit(self, pending: PendingRequest, transform: Callable[[AnalysisResult], T]) -> "Future[T]":
        if self.crashed:
            return _failed_future(self._unusable_error())

        def work() -> T:
            return transform(self._run_search(pending))

        try:
            future = self._serializer.enqueue(work)
        except RuntimeError:
            return _failed_future(self._unusable_error())

        with self._state_lock:
            self._requests[future] = pending
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._state_lock:
            pending = self._requests.pop(future, None)
        if pending is not None and future.cancelled():
            pending.transition(RequestState.CANCELLED)

    def _run_search(self, pending: PendingRequest) -> AnalysisResult:
        self._check_usable()
        self._handshake.ensure_ready()

        self._await_owed_results()

        pending.transition(RequestState.RUNNING)
        self._router.register(pending.request_id, pending.feed, on_abort=pending.abort)
        try:
            self._sync_multipv(pending.candidate_count)
            if pending.fen == START_POSITION:
                self._send("position startpos")
            else:
                self._send(f"position fen {pending.fen}")
            self._send(f"go depth {pending.depth}")
            return self._watchdog.supervise(pending)
        except ResponseTimeout:
            self._owe_result(pending)
            raise
        finally:
            self._router.unregister(pending.request_id)

    def _owe_result(self, pending: PendingRequest) -> None:
        # Still registered here, so a bestmove cannot slip in between.
        with self._output:
            if pending.resolved:
                return
            self._owed_results += 1
            owed = self._owed_results
        self._trace.debug(f"request {pending.request_id} abandoned; {owed} stale bestmove(s) owed")

    def _await_owed_results(self) -> None:
        """Give an abandoned search one more ``stop`` before the next ``go``."""
        with self._output:
            if not self._owed_results:
                return
        self._send("stop")
        grace_deadline = time.monotonic() + self._options.stop_grace_ms / 1000.0
        with self._output:
            while self._owed_results:
                remaining = grace_deadline - time.monotonic()
                if remaining <= 0:
                    self._trace.warning(
                        f"{self._owed_results} stale bestmove(s) still owed, searching anyway"
                    )
                    return
                self._output.wait(remaining)

    def _sync_multipv(self, candidate_count: int) -> None:
        if candidate_count == self._multipv:
            return
        self._send(f"setoption name MultiPV value {candidate_count}")
        self._multipv = candidate_count

    # ------------------------------------------------------------------
    # Engine binding
    # ------------------------------------------------------------------
    def _launch_binding(self) -> None:
        with self._state_lock:
            if self._binding_started:
                return
            self._binding_started = True
        try:
            self._binding.start(self._on_line, self._on_exit)
        except Exception as exc:
            crash = EngineCrashed(f"Failed to initialize engine: {exc}")
            self._declare_crashed(crash, stop_binding=False)
            raise crash from exc

    def _send(self, command: str) -> None:
        self._check_usable()
        self._trace.sending(command)
        try:
            self._binding.send(command)
        except (OSError, ValueError) as exc:
            crash = EngineCrashed(f"Failed to send {command!r} to engine: {exc}")
            self._declare_crashed(crash, stop_binding=True)
            raise crash from exc

    def _on_line(self, line: str) -> None:
        self._trace.received(line)
        with self._output:
            if self._owed_results:
                event = parse_line(line)
                if isinstance(event, SearchResult):
                    self._owed_results -= 1
                    self._output.notify_all()
                    self._trace.debug(f"dropped stale {line!r}")
                    return
                if isinstance(event, SearchProgress):
                    return
            self._router.dispatch(line)

    def _on_exit(self, returncode: Optional[int]) -> None:
        if self._terminated:
            return
        self._declare_crashed(
            EngineCrashed(f"Engine process exited unexpectedly (code {returncode})"),
            stop_binding=False,
        )

    def _on_crash_confirmed(self, crash: EngineCrashed) -> None:
        self._declare_crashed(crash, stop_binding=True)

    def _declare_crashed(self, crash: EngineCrashed, *, stop_binding: bool) -> None:
        with self._state_lock:
            if self._crashed:
                return
            self._crashed = True
        self._trace.warning(f"Engine crashed: {crash}")
        self._router.abort_all(crash)
        self._serializer.fail_pending(crash)
        if stop_binding:
            self._stop_binding()

    def _stop_binding(self) -> None:
        try:
            self._binding.stop()
        except Exception as exc:  # pragma: no cover - defensive logging
            self._trace.debug(f"Failed to stop engine binding: {exc}")

    def _check_usable(self) -> None:
        if self.crashed:
            raise self._unusable_error()

    def _unusable_error(self) -> EngineCrashed:
        if self._terminated:
            return EngineCrashed("Engine session terminated")
        return EngineCrashed("Chess engine is not running")

    def _apply_options(self, options: EngineOptions) -> None:
        self._options = options
        self._handshake.options = options
        self._watchdog.options = options
        self._trace.enabled = options.debug


def board_from_fen(fen: str) -> chess.Board:
    if fen == START_POSITION:
        return chess.Board()
    if not isinstance(fen, str) or not fen.strip():
        raise InvalidPosition("FEN string is empty")
    try:
        board = chess.Board(fen.strip())
    except ValueError as exc:
        raise InvalidPosition(f"Invalid FEN string provided: {fen!r}") from exc
    if not board.is_valid():
        raise InvalidPosition(f"Illegal position: {fen!r}")
    return board


def _failed_future(exc: BaseException) -> Future:
    future: Future = Future()
    future.set_running_or_notify_cancel()
    future.set_exception(exc)
    return future
