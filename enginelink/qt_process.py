"""QProcess-backed engine binding for sessions embedded in a Qt application.

The binding must be constructed on the thread that will own the process
(normally the GUI thread) and that thread must run an event loop. The
session calls ``start``/``send``/``stop`` from its request worker; those
calls are marshalled onto the owning thread through signals so that every
``QProcess`` call happens there. Output arrives through
``readyReadStandardOutput`` on the owning thread.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

from PySide6.QtCore import QObject, QProcess, QThread, Qt, Signal, Slot

from .engine_comm import ExitCallback, LineCallback, resolve_engine_command
from .utils import ConsoleTrace


class _CommandBus(QObject):
    start_requested = Signal()
    write_requested = Signal(str)
    stop_requested = Signal()


class _ProcessPump(QObject):
    """Owns every call into the QProcess."""

    def __init__(self, process, program: str, arguments, start_timeout_ms: int, trace: ConsoleTrace) -> None:
        super().__init__()
        self.process = process
        self.program = program
        self.arguments = list(arguments)
        self.start_timeout_ms = start_timeout_ms
        self.on_line: Optional[LineCallback] = None
        self.start_error: Optional[OSError] = None
        self._trace = trace

    @Slot()
    def start(self) -> None:
        self.process.start(self.program, self.arguments)
        if not self.process.waitForStarted(self.start_timeout_ms):
            self.start_error = OSError(f"Engine failed to start within timeout: {self.program}")
            return
        self._trace.info(f"Engine started -> {self.program} {' '.join(self.arguments)}".rstrip())

    @Slot(str)
    def write(self, command: str) -> None:
        self.process.write((command + "\n").encode())
        self.process.waitForBytesWritten()

    @Slot()
    def drain(self) -> None:
        while self.process.canReadLine():
            output = bytes(self.process.readLine()).decode(errors="replace").strip()
            if not output or self.on_line is None:
                continue
            self.on_line(output)

    @Slot()
    def shutdown(self) -> None:
        proc = self.process
        try:
            if proc.state() != QProcess.ProcessState.NotRunning:
                proc.write(b"quit\n")
                proc.closeWriteChannel()
                if not proc.waitForFinished(3000):
                    proc.terminate()
                    if not proc.waitForFinished(2000):
                        self._trace.debug("Engine process unresponsive; forcing termination")
                        proc.kill()
                        proc.waitForFinished(1000)
        finally:
            try:
                proc.readyReadStandardOutput.disconnect(self.drain)
            except (RuntimeError, TypeError):
                pass
        self._trace.info("Engine stopped")


class QtEngineProcess:
    def __init__(
        self,
        command: Union[str, Sequence[str]],
        *,
        process: Optional[QProcess] = None,
        start_timeout_ms: int = 5000,
        trace: Optional[ConsoleTrace] = None,
    ) -> None:
        resolved = resolve_engine_command(command)
        self._trace = trace or ConsoleTrace()
        self._process = process if process is not None else QProcess()
        self._pump = _ProcessPump(self._process, resolved[0], resolved[1:], start_timeout_ms, self._trace)
        self._bus = _CommandBus()
        self._on_exit: Optional[ExitCallback] = None
        self._started = False
        self._stopping = False
        self._exited = False

        proc = self._process
        proc.setProcessChannelMode(QProcess.ProcessChannelMode.MergedChannels)
        proc.readyReadStandardOutput.connect(self._pump.drain)
        proc.finished.connect(self._on_finished)
        proc.errorOccurred.connect(self._on_error)
        self._bus.start_requested.connect(
            self._pump.start, type=Qt.ConnectionType.BlockingQueuedConnection
        )
        self._bus.write_requested.connect(self._pump.write)
        self._bus.stop_requested.connect(self._pump.shutdown)

    @property
    def process(self) -> QProcess:
        return self._process

    @property
    def program(self) -> str:
        return self._pump.program

    @property
    def arguments(self):
        return list(self._pump.arguments)

    def start(self, on_line: LineCallback, on_exit: ExitCallback) -> None:
        if self._started:
            raise RuntimeError("Engine process already started")
        self._started = True
        self._on_exit = on_exit
        self._pump.on_line = on_line

        if self._on_owner_thread():
            self._pump.start()
        else:
            # blocks until the owning thread has run the slot
            self._bus.start_requested.emit()
        if self._pump.start_error is not None:
            self._exited = True
            raise self._pump.start_error

    def send(self, command: str) -> None:
        if not self._started or self._stopping or self._exited:
            raise BrokenPipeError("Engine process is not running")
        self._bus.write_requested.emit(command)

    def stop(self) -> None:
        if not self._started or self._stopping:
            return
        self._stopping = True
        if self._on_owner_thread():
            self._pump.shutdown()
        else:
            self._bus.stop_requested.emit()

    def _on_owner_thread(self) -> bool:
        return QThread.currentThread() == self._pump.thread()

    def _on_finished(self, exit_code: int, _exit_status=None) -> None:
        self._report_exit(exit_code)

    def _on_error(self, error) -> None:
        self._trace.warning(f"Engine process error: {error}")
        if error == QProcess.ProcessError.Crashed:
            self._report_exit(None)

    def _report_exit(self, exit_code: Optional[int]) -> None:
        if self._exited:
            return
        self._exited = True
        if self._stopping or self._on_exit is None:
            return
        # flush anything still buffered before reporting the exit
        self._pump.drain()
        self._on_exit(exit_code)
