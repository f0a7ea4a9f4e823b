from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from backuptool.lib.paths import is_backup_artifact

_logger = logging.getLogger(__name__)


def cleanup_old_backups(
    backup_dir: str | os.PathLike[str],
    keep_days: int,
    *,
    now: Optional[datetime] = None,
    remove: Callable[[Path], None] = os.remove,
) -> int:
    """Delete ``BACKUP_*.zip`` artifacts last modified at or before the window.

    ``keep_days <= 0`` means unlimited retention: nothing is read or deleted.
    A missing directory raises ``FileNotFoundError``; a single file that cannot
    be removed is logged and skipped. Returns the number of files deleted.
    """
    if keep_days <= 0:
        _logger.info("Retention unlimited, skipping cleanup", extra={"keep_days": keep_days})
        return 0

    directory = Path(backup_dir)
    if not directory.is_dir():
        raise FileNotFoundError(f"Backup directory {directory} does not exist or is not a directory")

    cutoff = ((now or datetime.now()) - timedelta(days=keep_days)).timestamp()
    removed = 0
    for entry in directory.iterdir():
        if not is_backup_artifact(entry.name):
            continue
        try:
            if not entry.is_file():
                continue
            modified = entry.stat().st_mtime
        except OSError:
            continue
        if modified > cutoff:
            continue
        try:
            remove(entry)
        except OSError as exc:
            _logger.warning("Could not delete expired backup", extra={"file": entry.name, "error": str(exc)})
            continue
        removed += 1
        _logger.info("Deleted expired backup", extra={"file": entry.name})

    _logger.info("Retention cleanup finished", extra={"removed": removed, "keep_days": keep_days})
    return removed


__all__ = ["cleanup_old_backups"]
