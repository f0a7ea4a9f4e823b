from __future__ import annotations

import pytest

from backuptool.core.errors import ConnectionAuthenticationError
from backuptool.services.connection_monitor import PROBE_INTERVAL_MS, ConnectionMonitor
from backuptool.services.mysql_connection import ConnectionCheckResult, ConnectionProfile

pytestmark = pytest.mark.integration


class FakeChecker:
    def __init__(self, result: ConnectionCheckResult | None = None) -> None:
        self.result = result or ConnectionCheckResult(success=True, db_exists=True)
        self.profiles: list[ConnectionProfile] = []

    def __call__(self, profile: ConnectionProfile) -> ConnectionCheckResult:
        self.profiles.append(profile)
        return self.result


def _monitor(checker, runner, interval_ms: int = PROBE_INTERVAL_MS) -> ConnectionMonitor:
    profile = ConnectionProfile(database="shop")
    return ConnectionMonitor(lambda: profile, checker=checker, runner=runner, interval_ms=interval_ms)


def test_probe_updates_connection_state(qt_app, qtbot, inline_runner) -> None:
    monitor = _monitor(FakeChecker(), inline_runner)

    with qtbot.waitSignal(monitor.connection_changed) as blocker:
        assert monitor.probe() is True

    assert blocker.args == [True]
    assert monitor.is_connected is True
    assert monitor.is_checking is False


def test_missing_database_means_disconnected(qt_app, inline_runner) -> None:
    monitor = _monitor(FakeChecker(ConnectionCheckResult(success=True, db_exists=False)), inline_runner)

    monitor.probe()

    assert monitor.is_connected is False


def test_probe_is_dropped_while_one_is_in_flight(qt_app, deferred_runner) -> None:
    checker = FakeChecker()
    monitor = _monitor(checker, deferred_runner)

    assert monitor.probe() is True
    assert monitor.probe() is False
    assert monitor.probe() is False
    assert len(deferred_runner.pending) == 1

    deferred_runner.complete_all()
    assert monitor.is_connected is True
    assert monitor.probe() is True


def test_repeated_start_never_overlaps_probes(qt_app, qtbot, deferred_runner) -> None:
    monitor = _monitor(FakeChecker(), deferred_runner, interval_ms=10)

    monitor.start()
    monitor.start()
    monitor.start()
    qtbot.wait(120)

    # Work never completed, so every later tick found the latch set
    assert len(deferred_runner.pending) == 1
    monitor.stop()
    assert monitor.is_running is False


def test_stop_lets_in_flight_probe_finish(qt_app, qtbot, deferred_runner) -> None:
    monitor = _monitor(FakeChecker(), deferred_runner, interval_ms=10)

    monitor.start()
    qtbot.waitUntil(lambda: len(deferred_runner.pending) == 1, timeout=1000)
    monitor.stop()
    deferred_runner.complete_all()

    assert monitor.is_connected is True
    assert monitor.is_checking is False


def test_manual_test_blocks_probes_and_reports_result(qt_app, qtbot, deferred_runner) -> None:
    error = ConnectionAuthenticationError("Access denied", title="Authentication Failed")
    result = ConnectionCheckResult(success=False, db_exists=False, error_message=error.message, error=error)
    monitor = _monitor(FakeChecker(result), deferred_runner)

    assert monitor.test_connection() is True
    assert monitor.is_loading is True
    assert monitor.test_connection() is False
    assert monitor.probe() is False

    with qtbot.waitSignal(monitor.test_finished) as blocker:
        deferred_runner.complete_all()

    assert blocker.args[0] is result
    assert monitor.is_loading is False
    assert monitor.is_connected is False


def test_checker_exception_clears_latch(qt_app, inline_runner) -> None:
    def broken(_profile):
        raise RuntimeError("driver crashed")

    monitor = _monitor(broken, inline_runner)

    assert monitor.probe() is True
    assert monitor.is_checking is False
    assert monitor.is_connected is False


def test_check_for_previous_profile_cannot_reconnect_after_reset(qt_app, deferred_runner) -> None:
    profiles = [ConnectionProfile(database="old")]
    checker = FakeChecker()
    monitor = ConnectionMonitor(lambda: profiles[-1], checker=checker, runner=deferred_runner)

    assert monitor.probe() is True
    profiles.append(ConnectionProfile(database="missing"))
    monitor.reset()
    deferred_runner.complete_all()

    assert [profile.database for profile in checker.profiles] == ["old"]
    assert monitor.is_connected is False
    assert monitor.is_checking is False

    checker.result = ConnectionCheckResult(success=True, db_exists=False)
    assert monitor.probe() is True
    deferred_runner.complete_all()
    assert checker.profiles[-1].database == "missing"
    assert monitor.is_connected is False


def test_manual_test_started_before_reset_still_reports_but_keeps_gate_closed(qt_app, qtbot, deferred_runner) -> None:
    monitor = _monitor(FakeChecker(), deferred_runner)

    assert monitor.test_connection() is True
    monitor.reset()
    with qtbot.waitSignal(monitor.test_finished) as blocker:
        deferred_runner.complete_all()

    assert blocker.args[0].connected is True
    assert monitor.is_connected is False
    assert monitor.is_loading is False
