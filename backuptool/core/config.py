from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

SETTINGS_BACKENDS = ("sqlite", "file")


@dataclass(frozen=True)
class AppConfig:
    """Process-level configuration read from the environment at startup.

    User-editable settings (connection, backup policy, preferences) live in
    the settings store, not here.
    """

    settings_backend: str = "sqlite"
    log_level: int = logging.INFO
    engine_timeout_seconds: Optional[float] = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        env = os.environ if environ is None else environ

        backend = (env.get("BACKUPTOOL_SETTINGS_BACKEND") or "sqlite").strip().lower()
        if backend not in SETTINGS_BACKENDS:
            logging.getLogger(__name__).warning(
                "Unknown settings backend, using sqlite", extra={"backend": backend}
            )
            backend = "sqlite"

        level_name = (env.get("BACKUPTOOL_LOG_LEVEL") or "INFO").strip().upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO

        timeout: Optional[float] = None
        raw_timeout = (env.get("BACKUPTOOL_ENGINE_TIMEOUT") or "").strip()
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                timeout = None
            if timeout is not None and timeout <= 0:
                timeout = None

        return cls(settings_backend=backend, log_level=level, engine_timeout_seconds=timeout)


__all__ = ["AppConfig", "SETTINGS_BACKENDS"]
