from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from backuptool.app.controllers.backup_controller import BackupController
from backuptool.core.errors import ConfigurationError
from backuptool.services.app_state import (
    KEY_BACKUP_ENGINE,
    KEY_BACKUP_FREQUENCY,
    KEY_BACKUP_PATH,
    KEY_CONNECTION_URL,
    KEY_LAST_BACKUP_TIME,
)
from backuptool.services.autostart import AutoStartManager
from backuptool.services.mysql_connection import ConnectionCheckResult, ConnectionProfile, parse_connection_url
from backuptool.services.settings_store import SettingsStore
from backuptool.storage.sqlite_adapter import SQLiteSettingsBackend

pytestmark = pytest.mark.integration

NOW = datetime(2024, 2, 1, 8, 15, 0)


class BrokenAutoStart(AutoStartManager):
    def enable(self) -> None:
        raise PermissionError("login items are locked")


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(lambda: SQLiteSettingsBackend(tmp_path / "settings.db"))


def _controller(tmp_path: Path, runner, *, store=None, autostart=None, engine=None, exists=True, opened=None):
    def checker(profile: ConnectionProfile) -> ConnectionCheckResult:
        return ConnectionCheckResult(success=True, db_exists=exists)

    def fake_engine(request, progress, *, timeout=None) -> str:
        progress(50, "Dumping", None)
        return request.output_path

    def open_url(url) -> bool:
        if opened is not None:
            opened.append(url.toLocalFile())
        return True

    return BackupController(
        store or _store(tmp_path),
        checker=checker,
        engine=engine or fake_engine,
        cleaner=lambda directory, keep_days: 0,
        autostart=autostart or AutoStartManager(["backuptool"], platform="linux", home=tmp_path),
        runner=runner,
        clock=lambda: NOW,
        open_url=open_url,
    )


def test_update_connection_persists_encrypted_url(qt_app, tmp_path, inline_runner) -> None:
    store = _store(tmp_path)
    controller = _controller(tmp_path, inline_runner, store=store)
    profile = ConnectionProfile(host="db.example", port=3307, username="backup", password="p@ss:w/ord", database="shop")

    assert controller.update_connection(profile) is True

    raw = store.backend().get(KEY_CONNECTION_URL)
    assert "p@ss" not in raw and "backup" not in raw
    assert parse_connection_url(store.get(KEY_CONNECTION_URL)) == profile


def test_invalid_profile_is_rejected(qt_app, qtbot, tmp_path, inline_runner) -> None:
    controller = _controller(tmp_path, inline_runner)

    with qtbot.waitSignal(controller.error_raised) as blocker:
        assert controller.update_connection(ConnectionProfile(host="")) is False
    assert isinstance(blocker.args[0], ConfigurationError)


def test_load_restores_state_and_starts_timers(qt_app, tmp_path, inline_runner) -> None:
    store = _store(tmp_path)
    first = _controller(tmp_path, inline_runner, store=store)
    first.update_connection(ConnectionProfile(host="db", username="root", password="pw", database="shop"))
    first.update_backup_settings(path="/srv/backups", auto=True, frequency="weekly", retention_days=14)
    first.set_minimize_to_tray(False)
    first.set_dark_mode(True)
    store.close()

    controller = _controller(tmp_path, inline_runner, store=_store(tmp_path))
    controller.load()
    try:
        assert controller.profile == ConnectionProfile(host="db", username="root", password="pw", database="shop")
        assert controller.backup.path == "/srv/backups"
        assert controller.backup.auto is True
        assert controller.backup.frequency == "weekly"
        assert controller.backup.retention_days == 14
        assert controller.backup.engine is None
        assert controller.preferences.minimize_to_tray is False
        assert controller.preferences.dark_mode is True
        assert controller.monitor.is_running
        assert controller.scheduler.is_running
    finally:
        controller.shutdown()
    assert not controller.monitor.is_running
    assert not controller.scheduler.is_running


def test_backup_settings_validation_and_engine_reset(qt_app, qtbot, tmp_path, inline_runner) -> None:
    store = _store(tmp_path)
    controller = _controller(tmp_path, inline_runner, store=store)

    assert controller.update_backup_settings(engine="mysqldump") is True
    assert store.get(KEY_BACKUP_ENGINE) == "mysqldump"
    assert controller.update_backup_settings(engine=None) is True
    assert store.get(KEY_BACKUP_ENGINE) is None

    with qtbot.waitSignal(controller.error_raised):
        assert controller.update_backup_settings(frequency="hourly") is False
    assert store.get(KEY_BACKUP_FREQUENCY) is None

    with pytest.raises(TypeError):
        controller.update_backup_settings(colour="blue")


def test_auto_start_is_applied_to_os_not_settings(qt_app, tmp_path, inline_runner) -> None:
    store = _store(tmp_path)
    controller = _controller(tmp_path, inline_runner, store=store)

    assert controller.set_auto_start(True) is True
    assert controller.preferences.auto_start is True
    assert (tmp_path / ".config" / "autostart" / "MySQLBackupTool.desktop").exists()
    assert not any("auto" in key.lower() and "start" in key.lower() for key in store.get_all())

    assert controller.set_auto_start(False) is True
    assert controller.preferences.auto_start is False


def test_auto_start_failure_refreshes_from_os(qt_app, qtbot, tmp_path, inline_runner) -> None:
    controller = _controller(
        tmp_path, inline_runner, autostart=BrokenAutoStart(["backuptool"], platform="linux", home=tmp_path)
    )

    with qtbot.waitSignal(controller.error_raised):
        assert controller.set_auto_start(True) is False
    assert controller.preferences.auto_start is False


def test_manual_backup_end_to_end(qt_app, qtbot, tmp_path, inline_runner) -> None:
    store = _store(tmp_path)
    controller = _controller(tmp_path, inline_runner, store=store)
    controller.update_connection(ConnectionProfile(database="shop"))
    controller.update_backup_settings(path=str(tmp_path / "out"))

    assert controller.start_backup() is False

    controller.monitor.probe()
    assert controller.is_connected is True

    with qtbot.waitSignal(controller.backup_succeeded) as blocker:
        assert controller.start_backup() is True

    assert blocker.args[0].endswith("/BACKUP_20240201_0815.zip")
    assert controller.backup.last_backup_time == "2024-02-01T08:15:00"
    assert store.get(KEY_LAST_BACKUP_TIME) == "2024-02-01T08:15:00"
    assert controller.current_run.progress == 100


def test_scheduler_triggers_backup_when_due(qt_app, tmp_path, inline_runner) -> None:
    controller = _controller(tmp_path, inline_runner)
    controller.update_connection(ConnectionProfile(database="shop"))
    controller.update_backup_settings(path=str(tmp_path / "out"), auto=True, last_backup_time="2024-01-30T08:00:00")
    controller.monitor.probe()

    assert controller.scheduler.evaluate() is True
    assert controller.backup.last_backup_time == "2024-02-01T08:15:00"
    # The fresh timestamp keeps the next evaluation quiet
    assert controller.scheduler.evaluate() is False


def test_open_backup_folder(qt_app, qtbot, tmp_path, inline_runner) -> None:
    opened: list[str] = []
    controller = _controller(tmp_path, inline_runner, opened=opened)

    with qtbot.waitSignal(controller.error_raised):
        assert controller.open_backup_folder() is False

    controller.update_backup_settings(path=str(tmp_path))
    assert controller.open_backup_folder() is True
    assert Path(opened[0]) == tmp_path


def test_path_setting_round_trips(qt_app, tmp_path, inline_runner) -> None:
    store = _store(tmp_path)
    controller = _controller(tmp_path, inline_runner, store=store)

    controller.update_backup_settings(path="D:\\dumps")

    assert store.get(KEY_BACKUP_PATH) == "D:\\dumps"


def test_profile_change_during_connection_check_keeps_backups_blocked(qt_app, tmp_path, deferred_runner) -> None:
    controller = _controller(tmp_path, deferred_runner)
    controller.update_connection(ConnectionProfile(database="old"))
    controller.update_backup_settings(path=str(tmp_path / "out"))

    controller.monitor.probe()
    controller.update_connection(ConnectionProfile(database="missing"))
    deferred_runner.complete_all()

    assert controller.is_connected is False
    assert controller.start_backup() is False
