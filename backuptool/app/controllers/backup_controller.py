from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QUrl, Signal
from PySide6.QtGui import QDesktopServices

from backuptool.core.errors import ConfigurationError, PersistenceError, UserFacingError
from backuptool.services.app_state import (
    BACKUP_SETTING_KEYS,
    ENGINES,
    FREQUENCIES,
    KEY_CONNECTION_URL,
    KEY_DARK_MODE,
    KEY_MINIMIZE_TO_TRAY,
    BackupRun,
    BackupSettings,
    SystemPreferences,
)
from backuptool.services.autostart import AutoStartManager
from backuptool.services.background_runner import Runner, run_bg
from backuptool.services.backup_engine import backup_mysql
from backuptool.services.backup_executor import BackupExecutor
from backuptool.services.backup_scheduler import BackupScheduler
from backuptool.services.connection_monitor import ConnectionMonitor
from backuptool.services.mysql_connection import (
    ConnectionProfile,
    build_connection_url,
    check_database_exists,
    parse_connection_url,
)
from backuptool.services.notifications import Notifier
from backuptool.services.retention import cleanup_old_backups
from backuptool.services.settings_store import SettingsStore


class BackupController(QObject):
    """Owns the application state and wires monitor, scheduler and executor.

    All state lives here and is only changed through the command methods
    below; each command persists what it changed before returning.
    """

    profile_changed = Signal(object)  # ConnectionProfile
    backup_settings_changed = Signal(object)  # BackupSettings
    preferences_changed = Signal(object)  # SystemPreferences
    connection_changed = Signal(bool)
    connection_tested = Signal(object)  # ConnectionCheckResult
    run_changed = Signal(object)  # BackupRun
    backup_succeeded = Signal(str)
    error_raised = Signal(object)  # UserFacingError

    def __init__(
        self,
        store: SettingsStore,
        *,
        checker: Callable[..., Any] = check_database_exists,
        engine: Callable[..., str] = backup_mysql,
        cleaner: Callable[[str, int], int] = cleanup_old_backups,
        autostart: Optional[AutoStartManager] = None,
        notifier: Optional[Notifier] = None,
        runner: Runner = run_bg,
        clock: Callable[[], datetime] = datetime.now,
        engine_timeout: Optional[float] = None,
        open_url: Callable[[QUrl], bool] = QDesktopServices.openUrl,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._store = store
        self._autostart = autostart or AutoStartManager()
        self._open_url = open_url
        self._logger = logging.getLogger(__name__)

        self.profile = ConnectionProfile()
        self.backup = BackupSettings()
        self.preferences = SystemPreferences()
        self._loaded = False

        self.monitor = ConnectionMonitor(lambda: self.profile, checker=checker, runner=runner, parent=self)
        self.executor = BackupExecutor(
            store,
            lambda: self.profile,
            lambda: self.backup,
            lambda: self.monitor.is_connected,
            engine=engine,
            cleaner=cleaner,
            notifier=notifier,
            runner=runner,
            clock=clock,
            engine_timeout=engine_timeout,
            parent=self,
        )
        self.scheduler = BackupScheduler(
            lambda: self.backup,
            lambda: self.monitor.is_connected,
            lambda: self.executor.is_backing_up,
            self.start_backup,
            clock=clock,
            parent=self,
        )

        self.monitor.connection_changed.connect(self.connection_changed)
        self.monitor.test_finished.connect(self.connection_tested)
        self.executor.run_changed.connect(self.run_changed)
        self.executor.backup_succeeded.connect(self.backup_succeeded)
        self.executor.backup_failed.connect(self.error_raised)
        self.executor.run_rejected.connect(self.error_raised)
        self.executor.last_backup_time_changed.connect(self._on_last_backup_time)

    # State -----------------------------------------------------------
    @property
    def is_connected(self) -> bool:
        return self.monitor.is_connected

    @property
    def current_run(self) -> BackupRun:
        return self.executor.current_run

    def set_notifier(self, notifier: Optional[Notifier]) -> None:
        self.executor.set_notifier(notifier)

    # Commands --------------------------------------------------------
    def load(self) -> None:
        """Restore persisted state once, then start the monitor and scheduler."""
        url = self._store.get(KEY_CONNECTION_URL, "")
        profile = parse_connection_url(url) if isinstance(url, str) and url else None
        if profile is not None:
            self.profile = profile
        self.backup = BackupSettings.from_store(self._store)
        self.preferences = SystemPreferences.from_store(self._store, auto_start=self._autostart.is_enabled())
        self._loaded = True
        self._logger.info(
            "Settings loaded",
            extra={**self.profile.sanitized(), "auto": self.backup.auto, "frequency": self.backup.frequency},
        )
        self.profile_changed.emit(self.profile)
        self.backup_settings_changed.emit(self.backup)
        self.preferences_changed.emit(self.preferences)

        self.monitor.start()
        self.scheduler.start()

    def update_connection(self, profile: ConnectionProfile) -> bool:
        try:
            profile.validate()
        except ConfigurationError as exc:
            self.error_raised.emit(exc)
            return False
        previous = self.profile
        self.profile = profile
        try:
            self._store.set(KEY_CONNECTION_URL, build_connection_url(profile))
        except PersistenceError as exc:
            self.error_raised.emit(exc)
            return False
        finally:
            self.profile_changed.emit(self.profile)
        if previous.sanitized() != profile.sanitized() or previous.password != profile.password:
            self.monitor.reset()
        self._logger.info("Connection settings saved", extra=profile.sanitized())
        return True

    def update_backup_settings(self, **changes: Any) -> bool:
        unknown = set(changes) - set(BACKUP_SETTING_KEYS)
        if unknown:
            raise TypeError(f"Unknown backup settings: {', '.join(sorted(unknown))}")
        try:
            self._validate_backup_changes(changes)
        except ConfigurationError as exc:
            self.error_raised.emit(exc)
            return False

        self.backup = self.backup.updated(**changes)
        try:
            for name, value in changes.items():
                key = BACKUP_SETTING_KEYS[name]
                if value is None:
                    self._store.delete(key)
                else:
                    self._store.set(key, value)
        except PersistenceError as exc:
            self.error_raised.emit(exc)
            return False
        finally:
            self.backup_settings_changed.emit(self.backup)
        self._logger.info("Backup settings saved", extra={"changed": sorted(changes)})
        return True

    def set_dark_mode(self, enabled: bool) -> bool:
        self.preferences.dark_mode = bool(enabled)
        return self._save_preference(KEY_DARK_MODE, self.preferences.dark_mode)

    def set_minimize_to_tray(self, enabled: bool) -> bool:
        self.preferences.minimize_to_tray = bool(enabled)
        return self._save_preference(KEY_MINIMIZE_TO_TRAY, self.preferences.minimize_to_tray)

    def set_auto_start(self, enabled: bool) -> bool:
        """Apply the OS registration; on failure re-read the real state."""
        try:
            if enabled:
                self._autostart.enable()
            else:
                self._autostart.disable()
        except Exception as exc:
            self._logger.error("Changing auto-start failed", exc_info=True)
            self.preferences.auto_start = self._autostart.is_enabled()
            self.preferences_changed.emit(self.preferences)
            self.error_raised.emit(
                ConfigurationError(
                    f"Could not {'enable' if enabled else 'disable'} launch at login: {exc}",
                    title="Auto-start",
                    remediation="Check that your user may change login items.",
                )
            )
            return False
        self.preferences.auto_start = bool(enabled)
        self.preferences_changed.emit(self.preferences)
        return True

    def test_connection(self) -> bool:
        return self.monitor.test_connection()

    def start_backup(self) -> bool:
        return self.executor.run()

    def open_backup_folder(self) -> bool:
        if not self.backup.path:
            self.error_raised.emit(
                ConfigurationError(
                    "No backup directory is configured.",
                    title="Backup Path Missing",
                    remediation="Choose a backup directory in the settings first.",
                )
            )
            return False
        opened = bool(self._open_url(QUrl.fromLocalFile(self.backup.path)))
        if not opened:
            self._logger.warning("Could not open backup folder", extra={"path": self.backup.path})
            self.error_raised.emit(
                UserFacingError(
                    f"Could not open {self.backup.path}.",
                    title="Open Folder",
                    remediation="Make sure the directory exists.",
                )
            )
        return opened

    def shutdown(self) -> None:
        self.monitor.stop()
        self.scheduler.stop()
        self._store.close()
        self._logger.info("Controller shut down")

    # Internals -------------------------------------------------------
    def _on_last_backup_time(self, stamp: str) -> None:
        self.backup = self.backup.updated(last_backup_time=stamp)
        self.backup_settings_changed.emit(self.backup)

    def _save_preference(self, key: str, value: bool) -> bool:
        try:
            self._store.set(key, value)
        except PersistenceError as exc:
            self.error_raised.emit(exc)
            return False
        finally:
            self.preferences_changed.emit(self.preferences)
        return True

    @staticmethod
    def _validate_backup_changes(changes: dict[str, Any]) -> None:
        frequency = changes.get("frequency")
        if frequency is not None and frequency not in FREQUENCIES:
            raise ConfigurationError(
                f"Unknown backup frequency {frequency!r}.",
                title="Invalid Setting",
                remediation=f"Use one of: {', '.join(FREQUENCIES)}.",
            )
        engine = changes.get("engine")
        if engine is not None and engine not in ENGINES:
            raise ConfigurationError(
                f"Unknown backup engine {engine!r}.",
                title="Invalid Setting",
                remediation=f"Use one of: {', '.join(ENGINES)}, or leave it unset.",
            )
        if "retention_days" in changes and not isinstance(changes["retention_days"], int):
            raise ConfigurationError(
                "Retention days must be a whole number.",
                title="Invalid Setting",
                remediation="Use 0 to keep backups forever.",
            )


__all__ = ["BackupController"]
