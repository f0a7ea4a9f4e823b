from __future__ import annotations

import pytest

from backuptool.services.periodic_task import PeriodicTask


def test_restart_keeps_a_single_live_timer(qt_app, qtbot) -> None:
    ticks: list[int] = []
    task = PeriodicTask("probe", 20, lambda: ticks.append(1))

    task.start()
    task.start()
    task.start()
    qtbot.wait(110)
    task.stop()

    # Three overlapping timers would tick roughly three times as often
    assert 1 <= len(ticks) <= 7
    assert not task.is_active


def test_stop_cancels_future_ticks(qt_app, qtbot) -> None:
    ticks: list[int] = []
    task = PeriodicTask("probe", 10, lambda: ticks.append(1))

    task.start()
    qtbot.waitUntil(lambda: len(ticks) >= 1, timeout=1000)
    task.stop()
    seen = len(ticks)
    qtbot.wait(60)

    assert len(ticks) == seen


def test_stale_token_is_ignored(qt_app) -> None:
    ticks: list[int] = []
    task = PeriodicTask("probe", 1000, lambda: ticks.append(1))

    task.start()
    task._tick(0)
    assert ticks == []
    task.stop()


def test_failing_callback_keeps_ticking(qt_app, qtbot) -> None:
    calls: list[int] = []

    def boom() -> None:
        calls.append(1)
        raise RuntimeError("tick failed")

    task = PeriodicTask("probe", 10, boom)
    task.start()
    qtbot.waitUntil(lambda: len(calls) >= 2, timeout=1000)
    task.stop()


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: None)
