from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal

from backuptool.services.app_state import BackupSettings
from backuptool.services.periodic_task import PeriodicTask

EVALUATION_INTERVAL_MS = 10 * 60 * 1000

FREQUENCY_THRESHOLDS: dict[str, timedelta] = {
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}
DEFAULT_THRESHOLD = FREQUENCY_THRESHOLDS["daily"]

# Legacy records were written with a locale string; accept the common shapes
_LEGACY_TIME_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d, %H:%M:%S",
    "%m/%d/%Y, %I:%M:%S %p",
)


def parse_backup_time(text: Optional[str]) -> Optional[datetime]:
    """Parse a stored ``lastBackupTime``; None when empty or unreadable."""
    if not text:
        return None
    value = text.strip()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in _LEGACY_TIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def backup_due(last: Optional[datetime], frequency: str, now: datetime) -> bool:
    """True when no backup ever ran or the frequency window has elapsed."""
    if last is None:
        return True
    if last.tzinfo is not None and now.tzinfo is None:
        last = last.astimezone().replace(tzinfo=None)
    threshold = FREQUENCY_THRESHOLDS.get(frequency, DEFAULT_THRESHOLD)
    return now - last >= threshold


class BackupScheduler(QObject):
    backup_triggered = Signal()

    def __init__(
        self,
        settings_provider: Callable[[], BackupSettings],
        is_connected: Callable[[], bool],
        is_backing_up: Callable[[], bool],
        run_backup: Callable[[], object],
        *,
        clock: Callable[[], datetime] = datetime.now,
        interval_ms: int = EVALUATION_INTERVAL_MS,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._settings_provider = settings_provider
        self._is_connected = is_connected
        self._is_backing_up = is_backing_up
        self._run_backup = run_backup
        self._clock = clock
        self._ticker = PeriodicTask("backup-scheduler", interval_ms, self.evaluate, parent=self)
        self._logger = logging.getLogger(__name__)

    @property
    def is_running(self) -> bool:
        return self._ticker.is_active

    def start(self) -> None:
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.stop()

    def evaluate(self) -> bool:
        """Trigger one backup when all gates pass and the window has elapsed."""
        settings = self._settings_provider()
        if not settings.auto:
            return False
        if not self._is_connected() or self._is_backing_up():
            return False
        if not settings.path:
            return False

        last = parse_backup_time(settings.last_backup_time)
        if last is None and settings.last_backup_time:
            self._logger.warning(
                "Unreadable last backup time, treating as never backed up",
                extra={"last_backup_time": settings.last_backup_time},
            )
        if not backup_due(last, settings.frequency, self._clock()):
            return False

        self._logger.info(
            "Scheduled backup due",
            extra={"frequency": settings.frequency, "last_backup_time": settings.last_backup_time},
        )
        self.backup_triggered.emit()
        self._run_backup()
        return True


__all__ = [
    "BackupScheduler",
    "backup_due",
    "parse_backup_time",
    "FREQUENCY_THRESHOLDS",
    "EVALUATION_INTERVAL_MS",
]
