"""Per-request deadlines, soft stops and crash confirmation.

A running search goes through::

    RUNNING -> (deadline or cancel) -> STOPPING -> (grace expired)
            -> CRASH_SUSPECTED -> (no readyok) -> CRASHED

The protocol has no hard abort, only ``stop``, which asks the engine to
report the best line found so far. A ``readyok`` answer to the probe
during CRASH_SUSPECTED means the engine is alive but ignored this search;
the caller then gets ``ResponseTimeout`` and the session stays usable.
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Optional

from .analysis import AnalysisAggregator, AnalysisResult
from .config import EngineOptions
from .errors import EngineCrashed, ResponseTimeout
from .uci_parser import ReadyAck, SearchProgress, SearchResult, parse_line
from .utils import ConsoleTrace


class RequestKind(Enum):
    BEST_MOVE = "best_move"
    ANALYSIS = "analysis"


class RequestState(Enum):
    QUEUED = "queued"
    RUNNING = "running"
    STOPPING = "stopping"
    CRASH_SUSPECTED = "crash_suspected"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    CRASHED = "crashed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {RequestState.RESOLVED, RequestState.TIMED_OUT, RequestState.CRASHED, RequestState.CANCELLED}
)

class PendingRequest:
    """One logical search and everything it has heard from the engine."""

    def __init__(
        self,
        kind: RequestKind,
        fen: str,
        depth: int,
        *,
        candidate_count: int = 1,
        white_to_move: bool = True,
        timeout_ms: int = 30000,
        request_id: int = 0,
    ) -> None:
        self.request_id = request_id
        self.kind = kind
        self.fen = fen
        self.depth = depth
        self.candidate_count = candidate_count
        self.timeout_ms = timeout_ms
        self.aggregator = AnalysisAggregator(white_to_move=white_to_move, max_rank=candidate_count)

        self._condition = threading.Condition()
        self._state = RequestState.QUEUED
        self._result: Optional[SearchResult] = None
        self._error: Optional[BaseException] = None
        self._stop_requested = False
        self._ready_acks = 0
        self.started_at: Optional[float] = None

    def __repr__(self) -> str:
        return f"PendingRequest(id={self.request_id}, kind={self.kind.value}, state={self._state.value})"

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def resolved(self) -> bool:
        return self._result is not None

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def transition(self, state: RequestState) -> None:
        with self._condition:
            if self._state in TERMINAL_STATES:
                return
            self._state = state
            if state is RequestState.RUNNING:
                self.started_at = time.monotonic()

    # Router callbacks -------------------------------------------------

    def feed(self, line: str) -> None:
        event = parse_line(line)
        with self._condition:
            if isinstance(event, ReadyAck):
                self._ready_acks += 1
                self._condition.notify_all()
                return
            if self._result is not None or self._error is not None:
                return
            if isinstance(event, SearchProgress):
                self.aggregator.observe(event)
            elif isinstance(event, SearchResult):
                self._result = event
                self._condition.notify_all()

    def abort(self, exc: BaseException) -> None:
        with self._condition:
            if self._error is None:
                self._error = exc
            self._condition.notify_all()

    def request_stop(self) -> bool:
        with self._condition:
            if self._state in TERMINAL_STATES:
                return False
            self._stop_requested = True
            self._condition.notify_all()
            return True

    # Waiting ----------------------------------------------------------

    def wait_until(self, deadline: float, *, wake_on_stop: bool = False) -> bool:
        """Block until the terminal line, an abort, or *deadline*.

        Returns True when the request settled (resolved or aborted).
        """
        with self._condition:
            while True:
                if self._result is not None or self._error is not None:
                    return True
                if wake_on_stop and self._stop_requested:
                    return False
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._condition.wait(remaining)

    def ready_ack_count(self) -> int:
        with self._condition:
            return self._ready_acks

    def wait_for_ready_ack(self, baseline: int, deadline: float) -> bool:
        with self._condition:
            while self._ready_acks <= baseline:
                if self._error is not None:
                    return False
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._condition.wait(remaining)
            return True

    def outcome(self) -> AnalysisResult:
        if self._result is None:
            raise RuntimeError(f"{self!r} has no terminal result")
        return self.aggregator.finalize(self._result)


class SearchWatchdog:
    """Races a running request against its deadline and recovers afterwards."""

    def __init__(
        self,
        *,
        send: Callable[[str], None],
        options: EngineOptions,
        on_crash_confirmed: Callable[[EngineCrashed], None],
        trace: Optional[ConsoleTrace] = None,
    ) -> None:
        self.options = options
        self._send = send
        self._on_crash_confirmed = on_crash_confirmed
        self._trace = trace or ConsoleTrace()

    def supervise(self, pending: PendingRequest) -> AnalysisResult:
        if pending.state is not RequestState.RUNNING:
            pending.transition(RequestState.RUNNING)
        started = pending.started_at if pending.started_at is not None else time.monotonic()
        deadline = started + pending.timeout_ms / 1000.0

        if pending.wait_until(deadline, wake_on_stop=True):
            return self._settle(pending, late=False)

        late = not pending.stop_requested or time.monotonic() >= deadline
        reason = "deadline elapsed" if late else "cancelled"
        self._trace.debug(f"request {pending.request_id}: {reason}, sending stop")
        pending.transition(RequestState.STOPPING)
        self._send("stop")

        grace_deadline = time.monotonic() + self.options.stop_grace_ms / 1000.0
        if pending.wait_until(grace_deadline):
            return self._settle(pending, late=late)

        self._trace.warning(f"request {pending.request_id}: no bestmove after stop, probing engine")
        pending.transition(RequestState.CRASH_SUSPECTED)
        baseline = pending.ready_ack_count()
        self._send("isready")
        probe_deadline = time.monotonic() + self.options.probe_timeout_ms / 1000.0
        alive = pending.wait_for_ready_ack(baseline, probe_deadline)

        if pending.resolved or pending.error is not None:
            return self._settle(pending, late=late)
        if alive:
            pending.transition(RequestState.TIMED_OUT)
            raise ResponseTimeout(
                f"Engine response timeout: no bestmove within {pending.timeout_ms} ms"
            )

        pending.transition(RequestState.CRASHED)
        crash = EngineCrashed("Engine stopped responding to stop and isready")
        self._trace.warning(f"request {pending.request_id}: engine unresponsive, declaring crash")
        self._on_crash_confirmed(crash)
        raise crash

    def _settle(self, pending: PendingRequest, *, late: bool) -> AnalysisResult:
        if pending.error is not None:
            pending.transition(RequestState.CRASHED)
            raise pending.error
        if late:
            pending.transition(RequestState.TIMED_OUT)
            raise ResponseTimeout(
                f"Engine answered after the {pending.timeout_ms} ms deadline"
            )
        pending.transition(RequestState.RESOLVED)
        return pending.outcome()
