import threading
import time

import pytest

from capture_guidance.timer import CaptureTriggerTimer


@pytest.fixture
def timer():
    t = CaptureTriggerTimer(name="test-timer")
    yield t
    t.stop()


def test_stop_before_first_interval_fires_nothing(timer):
    calls = []
    assert timer.start(trigger_every=10.0, on_trigger=lambda: calls.append(1))
    assert timer.is_running
    assert timer.stop()

    time.sleep(0.05)
    assert calls == []
    assert timer.trigger_count == 0
    assert not timer.is_running
    assert timer.time_remaining == 0.0


def test_second_start_while_running_is_rejected(timer):
    assert timer.start(trigger_every=10.0, on_trigger=lambda: None)
    assert not timer.start(trigger_every=10.0, on_trigger=lambda: None)


def test_stop_when_not_running_returns_false(timer):
    assert not timer.stop()


@pytest.mark.parametrize("trigger_every, update_every", [(0.0, 0.1), (-1.0, 0.1), (1.0, 0.0)])
def test_non_positive_intervals_rejected(timer, trigger_every, update_every):
    with pytest.raises(ValueError):
        timer.start(trigger_every=trigger_every, on_trigger=lambda: None, update_every=update_every)
    assert not timer.is_running


def test_triggers_fire_periodically(timer):
    fired = threading.Event()
    calls = []

    def on_trigger():
        calls.append(time.perf_counter())
        if len(calls) >= 3:
            fired.set()

    timer.start(trigger_every=0.02, on_trigger=on_trigger)
    assert fired.wait(timeout=2.0)
    assert timer.trigger_count >= 3


def test_no_triggers_after_stop_returns(timer):
    fired = threading.Event()
    calls = []

    def on_trigger():
        calls.append(1)
        fired.set()

    timer.start(trigger_every=0.01, on_trigger=on_trigger)
    assert fired.wait(timeout=2.0)
    timer.stop()

    count = len(calls)
    time.sleep(0.1)
    assert len(calls) == count


def test_updates_report_time_remaining(timer):
    updates = []
    got_updates = threading.Event()

    def on_update(remaining):
        updates.append(remaining)
        if len(updates) >= 3:
            got_updates.set()

    timer.start(trigger_every=5.0, on_trigger=lambda: None, update_every=0.01, on_update=on_update)
    assert got_updates.wait(timeout=2.0)
    assert all(0.0 <= r <= 5.0 for r in updates)
    assert updates[-1] <= updates[0]
    assert 0.0 < timer.time_remaining <= 5.0


def test_failing_callback_does_not_stop_timer(timer):
    fired = threading.Event()
    calls = []

    def on_trigger():
        calls.append(1)
        if len(calls) >= 2:
            fired.set()
        raise RuntimeError("camera busy")

    timer.start(trigger_every=0.01, on_trigger=on_trigger)
    assert fired.wait(timeout=2.0)


def test_callback_can_stop_its_own_timer(timer):
    stopped = threading.Event()

    def on_trigger():
        timer.stop()
        stopped.set()

    timer.start(trigger_every=0.01, on_trigger=on_trigger)
    assert stopped.wait(timeout=2.0)
    assert not timer.is_running
    assert timer.trigger_count == 1


def test_timer_can_restart_after_stop(timer):
    fired = threading.Event()
    timer.start(trigger_every=10.0, on_trigger=lambda: None)
    timer.stop()

    assert timer.start(trigger_every=0.01, on_trigger=fired.set)
    assert fired.wait(timeout=2.0)
