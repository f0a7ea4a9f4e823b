from __future__ import annotations

from pathlib import Path

import pytest

from backuptool.app.controllers.backup_controller import BackupController
from backuptool.app.main_window import MainWindow
from backuptool.services.autostart import AutoStartManager
from backuptool.services.backup_executor import BackupRun
from backuptool.services.mysql_connection import ConnectionCheckResult, ConnectionProfile
from backuptool.services.settings_store import SettingsStore
from backuptool.storage.file_adapter import FileSettingsBackend

pytestmark = pytest.mark.integration


def _window(qtbot, tmp_path: Path, inline_runner, *, tray_available: bool = True):
    controller = BackupController(
        SettingsStore(lambda: FileSettingsBackend(tmp_path / ".settings.dat")),
        checker=lambda profile: ConnectionCheckResult(success=True, db_exists=True),
        autostart=AutoStartManager(["backuptool"], platform="linux", home=tmp_path),
        runner=inline_runner,
    )
    win = MainWindow(controller, tray_available=tray_available)
    qtbot.addWidget(win)
    return controller, win


def test_close_hides_to_tray_by_default(qt_app, qtbot, tmp_path, inline_runner) -> None:
    controller, win = _window(qtbot, tmp_path, inline_runner)
    quits: list[bool] = []
    win.quit_requested.connect(lambda: quits.append(True))
    win.show()

    win.close()

    assert controller.preferences.minimize_to_tray is True
    assert not win.isVisible()
    assert quits == []


def test_close_exits_when_tray_minimize_disabled(qt_app, qtbot, tmp_path, inline_runner) -> None:
    controller, win = _window(qtbot, tmp_path, inline_runner)
    controller.set_minimize_to_tray(False)
    win.show()

    with qtbot.waitSignal(win.quit_requested):
        win.close()


def test_close_exits_without_system_tray(qt_app, qtbot, tmp_path, inline_runner) -> None:
    _controller, win = _window(qtbot, tmp_path, inline_runner, tray_available=False)
    win.show()

    with qtbot.waitSignal(win.quit_requested):
        win.close()


def test_tray_exit_quits_even_when_minimizing(qt_app, qtbot, tmp_path, inline_runner) -> None:
    _controller, win = _window(qtbot, tmp_path, inline_runner)
    win.show()

    with qtbot.waitSignal(win.quit_requested):
        win.request_quit()
    assert not win.isVisible()


def test_form_reflects_state(qt_app, qtbot, tmp_path, inline_runner) -> None:
    controller, win = _window(qtbot, tmp_path, inline_runner)

    win.host_edit.setText("db.internal")
    win.port_spin.setValue(3307)
    win.user_edit.setText("backup")
    win.password_edit.setText("pw")
    win.database_edit.setText("shop")
    win.btn_save_connection.click()

    assert controller.profile == ConnectionProfile(
        host="db.internal", port=3307, username="backup", password="pw", database="shop"
    )
    assert not win.btn_backup.isEnabled()

    controller.monitor.probe()
    assert win.connection_label.text() == "Connected"
    assert win.btn_backup.isEnabled()

    win.show_run(BackupRun(is_backing_up=True, progress=40, status="Dumping table...", current_table="users"))
    assert win.status_label.text() == "Dumping table... (users)"
    assert win.progress_bar.value() == 40


def test_test_button_is_released_when_no_check_starts(qt_app, qtbot, tmp_path, deferred_runner) -> None:
    controller, win = _window(qtbot, tmp_path, deferred_runner)
    win.database_edit.setText("shop")

    win.btn_test_connection.click()
    assert not win.btn_test_connection.isEnabled()
    assert controller.monitor.is_loading

    # A second request while the first check runs is refused
    win.btn_test_connection.setEnabled(True)
    win.btn_test_connection.click()
    assert win.btn_test_connection.isEnabled()

    deferred_runner.complete_all()
    assert win.btn_test_connection.isEnabled()
    assert not controller.monitor.is_loading


def test_test_button_is_released_after_synchronous_check(qt_app, qtbot, tmp_path, inline_runner) -> None:
    _controller, win = _window(qtbot, tmp_path, inline_runner)
    win.database_edit.setText("shop")

    win.btn_test_connection.click()

    assert win.btn_test_connection.isEnabled()
