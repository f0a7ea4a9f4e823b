"""Paths utilities for the backup tool.

- Resolves the user-scope application data directory per platform
- Provides the canonical locations of the settings files
- Builds backup artifact names and normalizes user-entered directories
"""
from __future__ import annotations

import os
import sys
from datetime import datetime
from pathlib import Path


_APP_DIR_NAME = "MySQLBackupTool"
_SQLITE_SETTINGS_FILENAME = "settings.db"
_FILE_SETTINGS_FILENAME = ".settings.dat"

BACKUP_FILE_PREFIX = "BACKUP_"
BACKUP_FILE_SUFFIX = ".zip"
_BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M"


def get_user_app_data_dir() -> Path:
    """Return the user-scope application data directory.

    ``BACKUPTOOL_HOME`` wins when set. Otherwise %APPDATA% on Windows,
    ~/Library/Application Support on macOS and $XDG_DATA_HOME (or
    ~/.local/share) elsewhere.
    """
    override = os.getenv("BACKUPTOOL_HOME")
    if override:
        return Path(override)
    if sys.platform == "win32":
        appdata = os.getenv("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        xdg = os.getenv("XDG_DATA_HOME")
        base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / _APP_DIR_NAME


def ensure_user_app_data_dir() -> Path:
    """Ensure the user app data directory exists and return it."""
    p = get_user_app_data_dir()
    p.mkdir(parents=True, exist_ok=True)
    return p


def sqlite_settings_path() -> Path:
    return ensure_user_app_data_dir() / _SQLITE_SETTINGS_FILENAME


def file_settings_path() -> Path:
    return ensure_user_app_data_dir() / _FILE_SETTINGS_FILENAME


def normalize_backup_dir(directory: str | os.PathLike[str]) -> str:
    """Use forward slashes and drop trailing separators (a bare root stays '/')."""
    s = str(directory).replace("\\", "/")
    stripped = s.rstrip("/")
    return stripped or s[:1]


def backup_file_name(moment: datetime) -> str:
    """Artifact name with minute resolution, e.g. BACKUP_20240105_0930.zip."""
    return f"{BACKUP_FILE_PREFIX}{moment.strftime(_BACKUP_TIMESTAMP_FORMAT)}{BACKUP_FILE_SUFFIX}"


def backup_file_path(directory: str | os.PathLike[str], moment: datetime) -> str:
    base = normalize_backup_dir(directory)
    if base.endswith("/"):
        return f"{base}{backup_file_name(moment)}"
    return f"{base}/{backup_file_name(moment)}"


def is_backup_artifact(name: str) -> bool:
    return name.startswith(BACKUP_FILE_PREFIX) and name.endswith(BACKUP_FILE_SUFFIX)
