import threading
import time

import pytest

from enginelink.request_queue import RequestSerializer


def test_items_run_in_fifo_order_one_at_a_time() -> None:
    serializer = RequestSerializer()
    running = []
    overlaps = []
    order = []
    lock = threading.Lock()

    def make_work(index: int):
        def work() -> int:
            with lock:
                if running:
                    overlaps.append(index)
                running.append(index)
            time.sleep(0.005)
            order.append(index)
            with lock:
                running.remove(index)
            return index

        return work

    futures = [serializer.enqueue(make_work(index)) for index in range(10)]
    assert [future.result(timeout=2) for future in futures] == list(range(10))
    assert order == list(range(10))
    assert overlaps == []
    serializer.close()


def test_failure_only_affects_its_own_future() -> None:
    serializer = RequestSerializer()

    def broken() -> None:
        raise ValueError("bad request")

    failing = serializer.enqueue(broken)
    following = serializer.enqueue(lambda: "ok")

    with pytest.raises(ValueError, match="bad request"):
        failing.result(timeout=2)
    assert following.result(timeout=2) == "ok"
    serializer.close()


def test_cancelled_item_never_runs() -> None:
    serializer = RequestSerializer()
    gate = threading.Event()
    ran = []

    blocker = serializer.enqueue(lambda: gate.wait(2))
    skipped = serializer.enqueue(lambda: ran.append("skipped"))
    after = serializer.enqueue(lambda: ran.append("after"))

    assert skipped.cancel() is True
    gate.set()
    blocker.result(timeout=2)
    after.result(timeout=2)

    assert ran == ["after"]
    serializer.close()


def test_active_future_is_exposed_while_running() -> None:
    serializer = RequestSerializer()
    started = threading.Event()
    gate = threading.Event()

    def work() -> None:
        started.set()
        gate.wait(2)

    future = serializer.enqueue(work)
    assert started.wait(2)
    assert serializer.active_future is future
    gate.set()
    future.result(timeout=2)
    serializer.close()
    assert serializer.active_future is None


def test_fail_pending_rejects_only_queued_items() -> None:
    serializer = RequestSerializer()
    started = threading.Event()
    gate = threading.Event()

    def work() -> str:
        started.set()
        gate.wait(2)
        return "done"

    running = serializer.enqueue(work)
    queued = [serializer.enqueue(lambda: "never") for _ in range(3)]
    assert started.wait(2)

    error = RuntimeError("engine gone")
    assert serializer.fail_pending(error) == 3
    gate.set()

    assert running.result(timeout=2) == "done"
    for future in queued:
        with pytest.raises(RuntimeError, match="engine gone"):
            future.result(timeout=2)
    serializer.close()


def test_closed_queue_refuses_work() -> None:
    serializer = RequestSerializer()
    serializer.close(RuntimeError("closed"))
    assert serializer.closed
    with pytest.raises(RuntimeError):
        serializer.enqueue(lambda: None)
