"""Launch-at-login registration.

The OS is the source of truth: ``is_enabled`` always inspects the platform
entry and nothing here is written to the settings store.

- Linux/BSD: XDG autostart ``.desktop`` file
- macOS: LaunchAgent property list
- Windows: ``HKCU\\Software\\Microsoft\\Windows\\CurrentVersion\\Run`` value
"""
from __future__ import annotations

import logging
import os
import plistlib
import shlex
import sys
from pathlib import Path
from typing import Optional, Sequence

APP_ID = "MySQLBackupTool"
_LAUNCH_AGENT_LABEL = "com.mysqlbackuptool.app"
_RUN_KEY = r"Software\Microsoft\Windows\CurrentVersion\Run"
# Started minimized to the tray when launched at login
_AUTOSTART_FLAG = "--minimized"


def default_launch_command() -> list[str]:
    if getattr(sys, "frozen", False):
        return [sys.executable, _AUTOSTART_FLAG]
    return [sys.executable, "-m", "backuptool.app.main", _AUTOSTART_FLAG]


class AutoStartManager:
    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        *,
        platform: Optional[str] = None,
        home: Optional[Path] = None,
    ) -> None:
        self._command = list(command) if command else default_launch_command()
        self._platform = platform or sys.platform
        self._home = home
        self._logger = logging.getLogger(__name__)

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def is_enabled(self) -> bool:
        try:
            if self._platform == "win32":
                return self._registry_value() is not None
            return self.entry_path().exists()
        except OSError:
            self._logger.warning("Could not read auto-start state", exc_info=True)
            return False

    def enable(self) -> None:
        if self._platform == "win32":
            self._write_registry_value()
        elif self._platform == "darwin":
            path = self.entry_path()
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as fh:
                plistlib.dump(
                    {"Label": _LAUNCH_AGENT_LABEL, "ProgramArguments": self._command, "RunAtLoad": True},
                    fh,
                )
        else:
            path = self.entry_path()
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self._desktop_entry(), encoding="utf-8")
        self._logger.info("Auto-start enabled", extra={"platform": self._platform})

    def disable(self) -> None:
        if self._platform == "win32":
            self._delete_registry_value()
        else:
            self.entry_path().unlink(missing_ok=True)
        self._logger.info("Auto-start disabled", extra={"platform": self._platform})

    def entry_path(self) -> Path:
        home = self._home or Path.home()
        if self._platform == "darwin":
            return home / "Library" / "LaunchAgents" / f"{_LAUNCH_AGENT_LABEL}.plist"
        config_home = os.getenv("XDG_CONFIG_HOME") if self._home is None else None
        base = Path(config_home) if config_home else home / ".config"
        return base / "autostart" / f"{APP_ID}.desktop"

    # Internals ---------------------------------------------------------
    def _desktop_entry(self) -> str:
        return (
            "[Desktop Entry]\n"
            "Type=Application\n"
            "Name=MySQL Backup Tool\n"
            f"Exec={shlex.join(self._command)}\n"
            "X-GNOME-Autostart-enabled=true\n"
            "Terminal=false\n"
        )

    def _registry_value(self) -> Optional[str]:
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_CURRENT_USER, _RUN_KEY) as key:
                value, _ = winreg.QueryValueEx(key, APP_ID)
        except FileNotFoundError:
            return None
        return value

    def _write_registry_value(self) -> None:
        import subprocess
        import winreg

        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, _RUN_KEY, 0, winreg.KEY_SET_VALUE) as key:
            winreg.SetValueEx(key, APP_ID, 0, winreg.REG_SZ, subprocess.list2cmdline(self._command))

    def _delete_registry_value(self) -> None:
        import winreg

        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, _RUN_KEY, 0, winreg.KEY_SET_VALUE) as key:
            try:
                winreg.DeleteValue(key, APP_ID)
            except FileNotFoundError:
                pass


__all__ = ["AutoStartManager", "APP_ID", "default_launch_command"]
