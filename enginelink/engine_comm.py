import os
import subprocess
import sys
import threading
from typing import Callable, List, Optional, Protocol, Sequence, Union

from .utils import ConsoleTrace

LineCallback = Callable[[str], None]
ExitCallback = Callable[[Optional[int]], None]


class EngineBinding(Protocol):
    """Opaque handle to one engine process speaking UCI over text lines."""

    def start(self, on_line: LineCallback, on_exit: ExitCallback) -> None:
        ...

    def send(self, command: str) -> None:
        ...

    def stop(self) -> None:
        ...


def resolve_engine_command(command: Union[str, Sequence[str]]) -> List[str]:
    """Python engine scripts run under the current interpreter."""
    if isinstance(command, str):
        parts = [command]
    else:
        parts = list(command)
    if not parts:
        raise ValueError("Engine command is empty")
    if parts[0].endswith(".py"):
        return [sys.executable, os.path.abspath(parts[0]), *parts[1:]]
    return parts


class SubprocessEngine:
    """Engine process driven through pipes with a dedicated reader thread."""

    def __init__(
        self,
        command: Union[str, Sequence[str]],
        *,
        workdir: Optional[str] = None,
        trace: Optional[ConsoleTrace] = None,
    ) -> None:
        self.command = resolve_engine_command(command)
        self.workdir = workdir
        self._trace = trace or ConsoleTrace()
        self._proc: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None
        self._write_lock = threading.Lock()
        self._stopping = threading.Event()

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc else None

    def poll(self) -> Optional[int]:
        return self._proc.poll() if self._proc else None

    def start(self, on_line: LineCallback, on_exit: ExitCallback) -> None:
        if self._proc is not None:
            raise RuntimeError("Engine process already started")
        self._proc = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            cwd=self.workdir,
        )
        self._trace.info(f"Engine started (pid {self._proc.pid}) -> {' '.join(self.command)}")
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(on_line, on_exit),
            name="engine-reader",
            daemon=True,
        )
        self._reader.start()

    def send(self, command: str) -> None:
        if self._stopping.is_set():
            raise BrokenPipeError("Engine process is stopping")
        self._write(command)

    def _write(self, command: str) -> None:
        with self._write_lock:
            if self._proc is None or self._proc.stdin is None:
                raise BrokenPipeError("Engine process is not running")
            self._proc.stdin.write(command + "\n")
            self._proc.stdin.flush()

    def readline(self) -> str:
        if self._proc is None or not self._proc.stdout:
            return ""
        try:
            return self._proc.stdout.readline()
        except (OSError, ValueError):
            return ""

    def _read_loop(self, on_line: LineCallback, on_exit: ExitCallback) -> None:
        while True:
            line = self.readline()
            if line == "":
                # EOF: the process closed stdout or died
                break
            line = line.strip()
            if not line:
                continue
            on_line(line)

        if self._stopping.is_set():
            return
        returncode = None
        if self._proc is not None:
            try:
                returncode = self._proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                returncode = None
        on_exit(returncode)

    def stop(self, timeout: float = 2.0) -> None:
        if self._proc is None or self._stopping.is_set():
            return
        self._stopping.set()
        try:
            self._write("quit")
        except (OSError, ValueError):
            pass
        if self._proc.stdin:
            try:
                self._proc.stdin.close()
            except OSError:
                pass
        try:
            self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                try:
                    self._proc.wait(timeout=1.0)
                except subprocess.TimeoutExpired:
                    pass
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=1.0)
        self._trace.info(f"Engine stopped (exit code {self._proc.returncode})")
