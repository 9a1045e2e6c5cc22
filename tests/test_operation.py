import threading

import pytest

from appslauncher.core.operation import Operation, run_in_background


def test_background_operation_reports_result_and_events():
    events = []
    release = threading.Event()

    def work(op):
        release.wait(5)
        op.emit("halfway")
        return 42

    op = run_in_background("demo", work)
    op.subscribe(events.append)
    release.set()

    assert op.result(timeout=5) == 42
    assert events == ["halfway"]
    assert op.done()


def test_background_operation_surfaces_errors():
    def work(_op):
        raise ValueError("broken")

    op = run_in_background("demo", work)
    with pytest.raises(ValueError, match="broken"):
        op.result(timeout=5)
    assert isinstance(op.exception(timeout=5), ValueError)


def test_failing_subscriber_does_not_break_others():
    op = Operation("demo")
    seen = []

    def broken(_event):
        raise RuntimeError("sink failure")

    op.subscribe(broken)
    op.subscribe(seen.append)
    op.emit("event")

    assert seen == ["event"]


def test_cancel_delegates_until_done():
    calls = []
    op = Operation("demo", cancel=lambda: calls.append(True) or True)

    assert op.cancel() is True
    op._set_result(None)
    assert op.cancel() is False
    assert calls == [True]
    assert Operation("plain").cancel() is False


def test_done_callback_receives_operation():
    done = []
    op = Operation("demo")
    op.add_done_callback(done.append)
    op._set_result("ok")
    assert done == [op]


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__]))
