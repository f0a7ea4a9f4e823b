from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Optional

from backuptool.core.errors import PersistenceError

from .adapter import SettingsBackend


class FileSettingsBackend(SettingsBackend):
    """Settings persisted as one JSON key->string map in a dedicated file.

    Writes go to memory; ``flush`` replaces the file atomically. A failed
    flush rolls memory back to what is on disk.
    """

    backend: str = "file"

    def __init__(self, file_path: Path | str) -> None:
        self._path = Path(file_path)
        self._data: dict[str, str] | None = None
        self._flushed: dict[str, str] = {}
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        with self._lock:
            if self._data is not None:
                return
            self._data = self._load()
            self._flushed = dict(self._data)

    def close(self) -> None:
        with self._lock:
            self._data = None
            self._flushed = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._ensure_data().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._ensure_data()[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._ensure_data().pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._ensure_data().clear()

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._ensure_data())

    def flush(self) -> None:
        with self._lock:
            data = self._ensure_data()
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(json.dumps(data, ensure_ascii=True, indent=2), encoding="utf-8")
                os.replace(tmp_path, self._path)
            except OSError as exc:
                self._data = dict(self._flushed)
                raise PersistenceError(
                    f"Could not write settings file {self._path}: {exc}",
                    remediation="Verify the settings folder is writable.",
                ) from exc
            self._flushed = dict(data)

    def _ensure_data(self) -> dict[str, str]:
        if self._data is None:
            raise PersistenceError("Settings backend is not open.")
        return self._data

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise PersistenceError(
                f"Settings file {self._path} is corrupted: {exc}",
                remediation="Restore the file from a backup or delete it to start over.",
            ) from exc
        except OSError as exc:
            raise PersistenceError(f"Could not read settings file {self._path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise PersistenceError(f"Settings file {self._path} does not contain a key/value map.")
        return {str(key): value if isinstance(value, str) else json.dumps(value) for key, value in payload.items()}


__all__ = ["FileSettingsBackend"]
