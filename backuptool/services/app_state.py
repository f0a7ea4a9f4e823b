from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

# Settings keys -------------------------------------------------------
KEY_CONNECTION_URL = "database.connectionUrl"
KEY_BACKUP_PATH = "backup.path"
KEY_BACKUP_AUTO = "backup.auto"
KEY_BACKUP_FREQUENCY = "backup.frequency"
KEY_BACKUP_RETENTION_DAYS = "backup.retentionDays"
# Written by earlier releases; read only when retentionDays was never saved
KEY_LEGACY_KEEP_COUNT = "backup.keepCount"
KEY_BACKUP_ENGINE = "backup.engine"
KEY_LAST_BACKUP_TIME = "lastBackupTime"
KEY_DARK_MODE = "system.darkMode"
KEY_MINIMIZE_TO_TRAY = "system.minimizeToTray"

FREQUENCIES = ("daily", "weekly", "monthly")
ENGINES = ("mysqldump", "builtin")
DEFAULT_RETENTION_DAYS = 5

STATUS_IDLE = "idle"
STATUS_PREPARING = "preparing"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"


@dataclass(slots=True)
class BackupSettings:
    path: str = ""
    auto: bool = False
    frequency: str = "daily"
    retention_days: int = DEFAULT_RETENTION_DAYS
    engine: Optional[str] = None
    last_backup_time: str = ""

    @classmethod
    def from_store(cls, store: Any) -> "BackupSettings":
        engine = store.get(KEY_BACKUP_ENGINE, None)
        return cls(
            path=_as_str(store.get(KEY_BACKUP_PATH, "")),
            auto=bool(store.get(KEY_BACKUP_AUTO, False)),
            frequency=_as_str(store.get(KEY_BACKUP_FREQUENCY, "daily")) or "daily",
            retention_days=_as_int(
                store.get(KEY_BACKUP_RETENTION_DAYS, store.get(KEY_LEGACY_KEEP_COUNT, DEFAULT_RETENTION_DAYS))
            ),
            engine=engine if engine in ENGINES else None,
            last_backup_time=_as_str(store.get(KEY_LAST_BACKUP_TIME, "")),
        )

    def updated(self, **changes: Any) -> "BackupSettings":
        return replace(self, **changes)


@dataclass(slots=True)
class BackupRun:
    """Ephemeral state of the single live backup; a fresh copy per update."""

    is_backing_up: bool = False
    progress: int = 0
    status: str = STATUS_IDLE
    current_table: Optional[str] = None
    output_path: Optional[str] = None

    def copy(self, **changes: Any) -> "BackupRun":
        return replace(self, **changes)


@dataclass(slots=True)
class SystemPreferences:
    dark_mode: bool = False
    # Mirrors the OS registration; never written to the settings store
    auto_start: bool = False
    minimize_to_tray: bool = True

    @classmethod
    def from_store(cls, store: Any, *, auto_start: bool = False) -> "SystemPreferences":
        return cls(
            dark_mode=bool(store.get(KEY_DARK_MODE, False)),
            auto_start=auto_start,
            minimize_to_tray=bool(store.get(KEY_MINIMIZE_TO_TRAY, True)),
        )


# Internals -----------------------------------------------------------
def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_RETENTION_DAYS


# Field name -> settings key for BackupSettings persistence
BACKUP_SETTING_KEYS: dict[str, str] = {
    "path": KEY_BACKUP_PATH,
    "auto": KEY_BACKUP_AUTO,
    "frequency": KEY_BACKUP_FREQUENCY,
    "retention_days": KEY_BACKUP_RETENTION_DAYS,
    "engine": KEY_BACKUP_ENGINE,
    "last_backup_time": KEY_LAST_BACKUP_TIME,
}


__all__ = [
    "BackupSettings",
    "BackupRun",
    "SystemPreferences",
    "BACKUP_SETTING_KEYS",
    "FREQUENCIES",
    "ENGINES",
    "KEY_CONNECTION_URL",
    "KEY_BACKUP_PATH",
    "KEY_BACKUP_AUTO",
    "KEY_BACKUP_FREQUENCY",
    "KEY_BACKUP_RETENTION_DAYS",
    "KEY_LEGACY_KEEP_COUNT",
    "KEY_BACKUP_ENGINE",
    "KEY_LAST_BACKUP_TIME",
    "KEY_DARK_MODE",
    "KEY_MINIMIZE_TO_TRAY",
    "STATUS_IDLE",
    "STATUS_PREPARING",
    "STATUS_COMPLETE",
    "STATUS_ERROR",
]
