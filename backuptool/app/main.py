from __future__ import annotations

import logging
import sys
from typing import Sequence

from PySide6 import QtWidgets

from backuptool.app.controllers.backup_controller import BackupController
from backuptool.app.main_window import MainWindow
from backuptool.core.config import AppConfig
from backuptool.lib.paths import file_settings_path, sqlite_settings_path
from backuptool.logging.config import configure_logging
from backuptool.logging.gui_bridge import build_gui_handler
from backuptool.services.background_runner import shutdown_background
from backuptool.services.notifications import LogNotifier, TrayNotifier
from backuptool.services.settings_store import SettingsStore
from backuptool.storage.file_adapter import FileSettingsBackend
from backuptool.storage.sqlite_adapter import SQLiteSettingsBackend
from backuptool.ui.tray import TrayIcon, default_icon


def build_settings_store(config: AppConfig) -> SettingsStore:
    if config.settings_backend == "file":
        return SettingsStore(lambda: FileSettingsBackend(file_settings_path()))
    return SettingsStore(lambda: SQLiteSettingsBackend(sqlite_settings_path()))


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv if argv is None else argv)
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(args)
    app.setApplicationName("MySQL Backup Tool")
    app.setQuitOnLastWindowClosed(False)

    config = AppConfig.from_env()
    controller = BackupController(
        build_settings_store(config),
        engine_timeout=config.engine_timeout_seconds,
    )

    tray_available = QtWidgets.QSystemTrayIcon.isSystemTrayAvailable()
    window = MainWindow(controller, tray_available=tray_available)
    configure_logging(lambda: build_gui_handler(window.log_panel.append_record), level=config.log_level)
    logger = logging.getLogger(__name__)
    logger.info("Starting", extra={"settings_backend": config.settings_backend})

    tray = None
    if tray_available:
        tray = TrayIcon(default_icon(), app)
        tray.show_requested.connect(window.restore)
        tray.exit_requested.connect(window.request_quit)
        tray.show()
        controller.set_notifier(TrayNotifier(tray))
    else:
        controller.set_notifier(LogNotifier())

    window.quit_requested.connect(app.quit)
    app.aboutToQuit.connect(controller.shutdown)

    controller.load()
    window.resize(640, 760)
    if "--minimized" in args and tray_available:
        logger.info("Started minimized to tray")
    else:
        window.show()

    try:
        return app.exec()
    finally:
        if tray is not None:
            tray.hide()
        shutdown_background(wait=False)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
