import threading

import pytest

from eternallink.polling import PeriodicTask


def test_runs_until_stopped():
    calls = []
    done = threading.Event()

    def refresh():
        calls.append(1)
        if len(calls) >= 3:
            done.set()

    task = PeriodicTask(0.01, refresh)
    task.start()
    assert done.wait(2)
    task.stop(timeout=1)

    assert not task.running
    count = len(calls)
    assert count >= 3
    assert task.runs >= 3


def test_failing_callback_keeps_schedule():
    done = threading.Event()
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionError("API unreachable")
        done.set()

    with PeriodicTask(0.01, flaky, name="nearby-refresh") as task:
        assert done.wait(2)
        assert task.running
    assert not task.running


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTask(0, lambda: None)
