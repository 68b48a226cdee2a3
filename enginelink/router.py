"""Fan engine output lines out to the requests currently listening."""

from __future__ import annotations

import itertools
import threading
from collections import OrderedDict
from typing import Callable, Hashable, List, Optional, Tuple

from .utils import ConsoleTrace

LineHandler = Callable[[str], None]
AbortHandler = Callable[[BaseException], None]


class ResponseRouter:
    """Lock-protected registry of line handlers keyed by request id.

    UCI output carries no correlation id, so every registered handler sees
    every line and decides relevance itself. Handlers run while the registry
    lock is held: once :meth:`unregister` returns, that request's handler is
    never called again.
    """

    def __init__(self, trace: Optional[ConsoleTrace] = None) -> None:
        self._lock = threading.RLock()
        self._handlers: "OrderedDict[Hashable, Tuple[LineHandler, Optional[AbortHandler]]]" = OrderedDict()
        self._trace = trace or ConsoleTrace()
        self._ids = itertools.count(1)

    def new_request_id(self) -> int:
        """Next id for a request on this router; ids are never reused."""
        with self._lock:
            return next(self._ids)

    def register(
        self,
        request_id: Hashable,
        line_handler: LineHandler,
        on_abort: Optional[AbortHandler] = None,
    ) -> None:
        with self._lock:
            if request_id in self._handlers:
                raise ValueError(f"Request {request_id!r} is already registered")
            self._handlers[request_id] = (line_handler, on_abort)

    def unregister(self, request_id: Hashable) -> bool:
        with self._lock:
            return self._handlers.pop(request_id, None) is not None

    def active_ids(self) -> List[Hashable]:
        with self._lock:
            return list(self._handlers)

    def dispatch(self, line: str) -> None:
        with self._lock:
            for request_id, (handler, _) in list(self._handlers.items()):
                if request_id not in self._handlers:
                    continue
                try:
                    handler(line)
                except Exception as exc:
                    self._trace.warning(f"handler for request {request_id!r} failed on {line!r}: {exc}")

    def abort_all(self, exc: BaseException) -> int:
        with self._lock:
            registered = list(self._handlers.items())
            self._handlers.clear()
        for request_id, (_, on_abort) in registered:
            if on_abort is None:
                continue
            try:
                on_abort(exc)
            except Exception as abort_exc:
                self._trace.warning(f"abort callback for request {request_id!r} failed: {abort_exc}")
        return len(registered)
