from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from backuptool.core.errors import BackupEngineError, ConfigurationError, PersistenceError
from backuptool.services.app_state import KEY_LAST_BACKUP_TIME, BackupRun, BackupSettings
from backuptool.services.backup_executor import PROGRESS_EVENT, BackupExecutor, ProgressChannel
from backuptool.services.mysql_connection import ConnectionProfile
from backuptool.services.notifications import Notification
from backuptool.services.settings_store import SettingsStore
from backuptool.storage.file_adapter import FileSettingsBackend

pytestmark = pytest.mark.integration

NOW = datetime(2024, 1, 5, 9, 30, 12)


class FakeEngine:
    def __init__(self, events=(), error: Exception | None = None) -> None:
        self.events = list(events)
        self.error = error
        self.requests: list = []
        self.timeouts: list = []

    def __call__(self, request, progress, *, timeout=None) -> str:
        self.requests.append(request)
        self.timeouts.append(timeout)
        for event in self.events:
            progress(*event)
        if self.error is not None:
            raise self.error
        return request.output_path


class Notes:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.received: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.received.append(notification)
        if self.fail:
            raise RuntimeError("no tray")


class Harness:
    def __init__(self, tmp_path: Path, runner, *, engine=None, cleaner=None, notifier=None, store=None, **settings):
        base = dict(path="C:\\Backups\\MySQL\\", retention_days=7, engine="builtin")
        base.update(settings)
        self.settings = BackupSettings(**base)
        self.profile = ConnectionProfile(host="db", port=3306, username="u", password="pw", database="shop")
        self.connected = True
        self.engine = engine or FakeEngine()
        self.cleaned: list[tuple[str, int]] = []
        self.store = store or SettingsStore(lambda: FileSettingsBackend(tmp_path / ".settings.dat"))
        self.runs: list[BackupRun] = []

        def default_cleaner(directory: str, keep_days: int) -> int:
            self.cleaned.append((directory, keep_days))
            return 0

        self.executor = BackupExecutor(
            self.store,
            lambda: self.profile,
            lambda: self.settings,
            lambda: self.connected,
            engine=self.engine,
            cleaner=cleaner or default_cleaner,
            notifier=notifier,
            runner=runner,
            clock=lambda: NOW,
            engine_timeout=45,
        )
        self.executor.run_changed.connect(self.runs.append)


def test_not_connected_is_a_no_op(qt_app, tmp_path, inline_runner) -> None:
    h = Harness(tmp_path, inline_runner)
    h.connected = False

    assert h.executor.run() is False
    assert h.runs == []
    assert h.engine.requests == []
    assert h.executor.current_run == BackupRun()


def test_second_run_while_backing_up_is_a_no_op(qt_app, tmp_path, deferred_runner) -> None:
    h = Harness(tmp_path, deferred_runner)

    assert h.executor.run() is True
    before = list(h.runs)
    assert h.executor.run() is False
    assert h.runs == before
    assert len(deferred_runner.pending) == 1

    deferred_runner.complete_next()
    assert len(h.engine.requests) == 1


def test_missing_path_is_rejected_without_state_change(qt_app, qtbot, tmp_path, inline_runner) -> None:
    h = Harness(tmp_path, inline_runner, path="")

    with qtbot.waitSignal(h.executor.run_rejected) as blocker:
        assert h.executor.run() is False

    assert isinstance(blocker.args[0], ConfigurationError)
    assert h.runs == []
    assert h.engine.requests == []


def test_successful_run_bookkeeping(qt_app, qtbot, tmp_path, inline_runner) -> None:
    engine = FakeEngine(
        events=[(5, "Preparing", None), (150, "bogus", None), (40, "Dumping table...", "users"), (-1, "bogus", None)]
    )
    notes = Notes()
    h = Harness(tmp_path, inline_runner, engine=engine, notifier=notes)
    done: list = []
    stamps: list[str] = []
    h.executor.last_backup_time_changed.connect(stamps.append)

    with qtbot.waitSignal(h.executor.backup_succeeded) as blocker:
        assert h.executor.run(on_done=done.append) is True

    expected_path = "C:/Backups/MySQL/BACKUP_20240105_0930.zip"
    request = engine.requests[0]
    assert request.output_path == expected_path
    assert (request.host, request.database, request.engine) == ("db", "shop", "builtin")
    assert engine.timeouts == [45]

    progress = [run.progress for run in h.runs]
    assert progress[0] == 0
    assert 150 not in progress and -1 not in progress
    assert progress.count(100) >= 1
    assert [run for run in h.runs if run.current_table == "users"][0].progress == 40

    final = h.executor.current_run
    assert final.is_backing_up is False
    assert final.progress == 100
    assert final.status == "complete"

    assert blocker.args == [expected_path]
    assert done == [None]
    assert h.store.get(KEY_LAST_BACKUP_TIME) == "2024-01-05T09:30:12"
    assert stamps == ["2024-01-05T09:30:12"]
    assert h.cleaned == [("C:/Backups/MySQL", 7)]
    assert notes.received[0].title == "Backup complete"


def test_failed_run_resets_progress(qt_app, qtbot, tmp_path, inline_runner) -> None:
    engine = FakeEngine(events=[(30, "Dumping", "orders")], error=RuntimeError("disk full"))
    notes = Notes()
    h = Harness(tmp_path, inline_runner, engine=engine, notifier=notes)
    done: list = []

    with qtbot.waitSignal(h.executor.backup_failed) as blocker:
        h.executor.run(on_done=done.append)

    error = blocker.args[0]
    assert isinstance(error, BackupEngineError)
    assert error.message == "Backup failed: disk full"
    assert done == [error]

    final = h.executor.current_run
    assert final.progress == 0
    assert final.is_backing_up is False
    assert final.status == "error"
    assert h.store.get(KEY_LAST_BACKUP_TIME) is None
    assert h.cleaned == []
    assert notes.received[0].title == "Backup failed"


def test_engine_error_message_is_wrapped_once(qt_app, qtbot, tmp_path, inline_runner) -> None:
    engine = FakeEngine(error=BackupEngineError("mysqldump exited with code 2: boom"))
    h = Harness(tmp_path, inline_runner, engine=engine)

    with qtbot.waitSignal(h.executor.backup_failed) as blocker:
        h.executor.run()

    assert blocker.args[0].message == "Backup failed: mysqldump exited with code 2: boom"


def test_side_effect_failures_do_not_change_outcome(qt_app, qtbot, tmp_path, inline_runner) -> None:
    class FailingStore:
        def set(self, key, value):
            raise PersistenceError("read-only disk")

    def failing_cleaner(directory: str, keep_days: int) -> int:
        raise FileNotFoundError(directory)

    h = Harness(
        tmp_path,
        inline_runner,
        cleaner=failing_cleaner,
        notifier=Notes(fail=True),
        store=FailingStore(),
    )

    with qtbot.waitSignal(h.executor.backup_succeeded):
        h.executor.run()

    assert h.executor.current_run.progress == 100
    assert h.executor.current_run.is_backing_up is False


def test_late_progress_after_completion_is_ignored(qt_app, tmp_path, inline_runner) -> None:
    captured: list[ProgressChannel] = []

    def engine(request, progress, *, timeout=None):
        captured.append(progress.__self__)
        return request.output_path

    h = Harness(tmp_path, inline_runner, engine=engine)
    h.executor.run()
    count = len(h.runs)

    captured[0].publish(55, "stale", None)

    assert len(h.runs) == count
    assert h.executor.current_run.progress == 100
    assert captured[0].event_name == PROGRESS_EVENT


def test_progress_from_worker_thread_arrives_in_order(qt_app, qtbot, tmp_path) -> None:
    from backuptool.services.background_runner import run_bg

    steps = [(5, "a", None), (20, "b", "t1"), (45, "c", "t2"), (70, "d", None), (95, "e", None)]
    h = Harness(tmp_path, run_bg, engine=FakeEngine(events=steps))

    with qtbot.waitSignal(h.executor.backup_succeeded, timeout=5000):
        h.executor.run()

    seen = [run.progress for run in h.runs if run.is_backing_up]
    assert seen[:6] == [0, 5, 20, 45, 70, 95]
    assert h.executor.current_run.is_backing_up is False
