import threading
from typing import Callable, List, Optional

import pytest

from enginelink.config import EngineOptions
from enginelink.session import EngineSession

DEFAULT_SEARCH = [
    "info depth 1 seldepth 1 multipv 1 score cp 20 nodes 20 pv e2e4",
    "bestmove e2e4",
]


class FakeEngine:
    """In-memory engine binding that answers commands synchronously.

    Each ``go`` consumes the next entry of ``search_script``: a list of
    lines to emit, ``None`` for a search that never answers, or a callable
    taking the engine for anything else.
    """

    def __init__(self, *, name: str = "FakeFish 1.0", author: str = "Test Suite") -> None:
        self.name = name
        self.author = author
        self.commands: List[str] = []
        self.on_line: Optional[Callable[[str], None]] = None
        self.on_exit: Optional[Callable[[Optional[int]], None]] = None
        self.start_count = 0
        self.stop_count = 0
        self.start_error: Optional[BaseException] = None

        self.answer_uci = True
        self.defer_uciok = False
        self.answer_isready = True
        self.answer_stop = True
        self.stop_lines = ["bestmove e2e4"]
        self.search_script: list = []

        self.searching = False
        self.overlapping_go = False
        self.exited = False
        self.go_received = threading.Event()
        self.uci_received = threading.Event()
        self._lock = threading.Lock()

    # EngineBinding --------------------------------------------------------

    def start(self, on_line, on_exit) -> None:
        self.start_count += 1
        if self.start_error is not None:
            raise self.start_error
        self.on_line = on_line
        self.on_exit = on_exit

    def send(self, command: str) -> None:
        if self.exited or self.stop_count:
            raise BrokenPipeError("fake engine is not running")
        with self._lock:
            self.commands.append(command)

        if command == "uci":
            self.uci_received.set()
            if self.answer_uci and not self.defer_uciok:
                self.release_uciok()
        elif command == "isready":
            if self.answer_isready:
                self.emit("readyok")
        elif command.startswith("go"):
            if self.searching:
                self.overlapping_go = True
            self.searching = True
            self.go_received.set()
            script = self.search_script.pop(0) if self.search_script else DEFAULT_SEARCH
            if callable(script):
                script(self)
            elif script is not None:
                for line in script:
                    self.emit(line)
        elif command == "stop" and self.answer_stop:
            was_searching = self.searching
            self.searching = False
            if was_searching:
                for line in self.stop_lines:
                    self.emit(line)

    def stop(self) -> None:
        self.stop_count += 1

    # Test helpers ---------------------------------------------------------

    def emit(self, line: str) -> None:
        if line.startswith("bestmove"):
            self.searching = False
        if self.on_line is not None:
            self.on_line(line)

    def release_uciok(self) -> None:
        self.emit(f"id name {self.name}")
        self.emit(f"id author {self.author}")
        self.emit("option name Hash type spin default 16 min 1 max 33554432")
        self.emit("uciok")

    def crash(self, returncode: Optional[int] = -11) -> None:
        self.exited = True
        self.searching = False
        if self.on_exit is not None:
            self.on_exit(returncode)

    def sent(self, prefix: str) -> List[str]:
        with self._lock:
            return [command for command in self.commands if command.startswith(prefix)]


FAST_OPTIONS = EngineOptions(
    init_timeout_ms=500,
    search_timeout_ms=2000,
    stop_grace_ms=200,
    probe_timeout_ms=200,
)


@pytest.fixture
def fake_engine_cls():
    return FakeEngine


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_session(fake_engine):
    sessions = []

    def factory(options: EngineOptions = FAST_OPTIONS, binding=None) -> EngineSession:
        session = EngineSession(binding or fake_engine, options)
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.terminate()


@pytest.fixture
def session(make_session) -> EngineSession:
    return make_session()
