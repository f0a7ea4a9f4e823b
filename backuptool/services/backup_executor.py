from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, Signal, Slot

from backuptool.core.errors import BackupEngineError, ConfigurationError, PersistenceError, UserFacingError
from backuptool.lib.paths import backup_file_path, normalize_backup_dir
from backuptool.lib.redaction import redact
from backuptool.services.app_state import (
    KEY_LAST_BACKUP_TIME,
    STATUS_COMPLETE,
    STATUS_ERROR,
    STATUS_PREPARING,
    BackupRun,
    BackupSettings,
)
from backuptool.services.background_runner import Runner, run_bg
from backuptool.services.backup_engine import BackupRequest, backup_mysql
from backuptool.services.mysql_connection import ConnectionProfile
from backuptool.services.notifications import ICON_ERROR, ICON_SUCCESS, Notification, Notifier, deliver
from backuptool.services.retention import cleanup_old_backups

PROGRESS_EVENT = "backup-progress"

Engine = Callable[..., str]
Cleaner = Callable[[str, int], int]
DoneCallback = Callable[[Optional[BackupEngineError]], None]


class ProgressChannel(QObject):
    """Per-run ``backup-progress`` event source handed to the engine.

    The engine calls ``publish`` from its worker thread; receivers living on
    the UI thread get the events queued, in emission order.
    """

    event_name = PROGRESS_EVENT
    progress = Signal(int, int, str, object)  # run id, percent, status, current table

    def __init__(self, run_id: int, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._run_id = run_id

    @property
    def run_id(self) -> int:
        return self._run_id

    def publish(self, percent: int, status: str, current_table: Optional[str] = None) -> None:
        self.progress.emit(self._run_id, int(percent), status, current_table)


class BackupExecutor(QObject):
    """Single-flight backup run with progress relay and completion bookkeeping."""

    run_changed = Signal(object)  # BackupRun
    backup_succeeded = Signal(str)
    backup_failed = Signal(object)  # BackupEngineError
    run_rejected = Signal(object)  # UserFacingError
    last_backup_time_changed = Signal(str)

    def __init__(
        self,
        settings_store: Any,
        profile_provider: Callable[[], ConnectionProfile],
        settings_provider: Callable[[], BackupSettings],
        is_connected: Callable[[], bool],
        *,
        engine: Engine = backup_mysql,
        cleaner: Cleaner = cleanup_old_backups,
        notifier: Optional[Notifier] = None,
        runner: Runner = run_bg,
        clock: Callable[[], datetime] = datetime.now,
        engine_timeout: Optional[float] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._store = settings_store
        self._profile_provider = profile_provider
        self._settings_provider = settings_provider
        self._is_connected = is_connected
        self._engine = engine
        self._cleaner = cleaner
        self._notifier = notifier
        self._runner = runner
        self._clock = clock
        self._engine_timeout = engine_timeout
        self._run = BackupRun()
        self._run_id = 0
        self._channel: Optional[ProgressChannel] = None
        self._logger = logging.getLogger(__name__)

    @property
    def current_run(self) -> BackupRun:
        return self._run

    @property
    def is_backing_up(self) -> bool:
        return self._run.is_backing_up

    def set_notifier(self, notifier: Optional[Notifier]) -> None:
        self._notifier = notifier

    def run(self, on_done: Optional[DoneCallback] = None) -> bool:
        """Start a backup; False when one is running, offline or unconfigured."""
        if self._run.is_backing_up or not self._is_connected():
            return False

        settings = self._settings_provider()
        if not settings.path:
            error = ConfigurationError(
                "No backup directory is configured.",
                title="Backup Path Missing",
                remediation="Choose a backup directory in the settings first.",
            )
            self._logger.warning("Backup rejected: no output path")
            self.run_rejected.emit(error)
            return False

        output_path = backup_file_path(settings.path, self._clock())
        self._run_id += 1
        self._set_run(
            BackupRun(is_backing_up=True, progress=0, status=STATUS_PREPARING, output_path=output_path)
        )

        profile = self._profile_provider()
        request = BackupRequest(
            host=profile.host,
            port=profile.port,
            username=profile.username,
            password=profile.password,
            database=profile.database,
            output_path=output_path,
            engine=settings.engine,
        )
        channel = ProgressChannel(self._run_id, parent=self)
        channel.progress.connect(self._on_progress)
        self._channel = channel
        self._logger.info(
            "Backup started",
            extra={"output": output_path, "engine": settings.engine or "auto", "database": profile.database},
        )

        engine = self._engine
        timeout = self._engine_timeout
        try:
            self._runner(
                lambda: engine(request, channel.publish, timeout=timeout),
                on_result=lambda path: self._on_success(path, settings, on_done),
                on_error=lambda exc: self._on_failure(exc, on_done),
            )
        except Exception as exc:
            self._on_failure(exc, on_done)
        return True

    # Progress (UI thread) --------------------------------------------
    @Slot(int, int, str, object)
    def _on_progress(self, run_id: int, percent: int, status: str, current_table: Optional[str]) -> None:
        if run_id != self._run_id or not self._run.is_backing_up:
            return
        if not 0 <= percent <= 100:
            self._logger.debug("Ignoring out-of-range progress", extra={"percent": percent})
            return
        self._set_run(self._run.copy(progress=percent, status=status, current_table=current_table))

    # Completion (UI thread) ------------------------------------------
    def _on_success(self, output_path: str, settings: BackupSettings, on_done: Optional[DoneCallback]) -> None:
        path = output_path or self._run.output_path or ""
        try:
            self._set_run(self._run.copy(progress=100, status=STATUS_COMPLETE, current_table=None))
            stamp = self._clock().isoformat(timespec="seconds")
            try:
                self._store.set(KEY_LAST_BACKUP_TIME, stamp)
            except PersistenceError:
                self._logger.error("Could not persist last backup time", exc_info=True)
            self.last_backup_time_changed.emit(stamp)
            self._logger.info("Backup finished", extra={"output": path})
        finally:
            self._finish()

        self._start_retention(settings)
        deliver(
            self._notifier,
            Notification("Backup complete", f"Database backup saved to:\n{path}", ICON_SUCCESS),
        )
        self.backup_succeeded.emit(path)
        if on_done is not None:
            on_done(None)

    def _on_failure(self, exc: BaseException, on_done: Optional[DoneCallback]) -> None:
        cause = exc.message if isinstance(exc, UserFacingError) else str(exc) or type(exc).__name__
        remediation = getattr(exc, "remediation", "") or (
            "Check the connection settings and the backup directory, then try again."
        )
        error = BackupEngineError(f"Backup failed: {redact(cause)}", remediation=remediation)
        error.__cause__ = exc
        try:
            self._set_run(self._run.copy(progress=0, status=STATUS_ERROR, current_table=None))
            self._logger.error("Backup failed", extra={"error": redact(cause)})
        finally:
            self._finish()

        deliver(self._notifier, Notification("Backup failed", error.message, ICON_ERROR))
        self.backup_failed.emit(error)
        if on_done is not None:
            on_done(error)

    # Internals -------------------------------------------------------
    def _finish(self) -> None:
        channel = self._channel
        self._channel = None
        if channel is not None:
            try:
                channel.progress.disconnect(self._on_progress)
            except (RuntimeError, TypeError):
                self._logger.debug("Progress channel already disconnected")
            channel.deleteLater()
        self._set_run(self._run.copy(is_backing_up=False))

    def _start_retention(self, settings: BackupSettings) -> None:
        directory = normalize_backup_dir(settings.path)
        keep_days = settings.retention_days
        cleaner = self._cleaner
        try:
            self._runner(
                lambda: cleaner(directory, keep_days),
                on_result=lambda removed: self._logger.info(
                    "Old backups cleaned up", extra={"removed": removed, "keep_days": keep_days}
                ),
                on_error=lambda exc: self._logger.warning("Retention cleanup failed: %s", exc),
            )
        except Exception:
            self._logger.warning("Could not schedule retention cleanup", exc_info=True)

    def _set_run(self, run: BackupRun) -> None:
        self._run = run
        self.run_changed.emit(run)


__all__ = ["BackupExecutor", "ProgressChannel", "PROGRESS_EVENT"]
