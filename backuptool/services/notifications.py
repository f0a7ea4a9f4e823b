from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from PySide6.QtWidgets import QSystemTrayIcon

ICON_INFO = "info"
ICON_SUCCESS = "success"
ICON_ERROR = "error"

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    title: str
    body: str
    icon: str = ICON_INFO


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


def deliver(notifier: Optional[Notifier], notification: Notification) -> bool:
    """Fire-and-forget delivery; a failing sink is logged and never re-raised."""
    if notifier is None:
        return False
    try:
        notifier.notify(notification)
    except Exception:
        _logger.warning("Notification delivery failed", extra={"title": notification.title}, exc_info=True)
        return False
    return True


class LogNotifier:
    """Headless sink: notifications go to the log only."""

    def notify(self, notification: Notification) -> None:
        level = logging.ERROR if notification.icon == ICON_ERROR else logging.INFO
        _logger.log(level, "%s: %s", notification.title, notification.body)


class TrayNotifier:
    """Desktop balloon/toast through the system tray icon."""

    _ICONS = {
        ICON_INFO: QSystemTrayIcon.MessageIcon.Information,
        ICON_SUCCESS: QSystemTrayIcon.MessageIcon.Information,
        ICON_ERROR: QSystemTrayIcon.MessageIcon.Critical,
    }

    def __init__(self, tray: QSystemTrayIcon, *, timeout_ms: int = 5000) -> None:
        self._tray = tray
        self._timeout_ms = timeout_ms

    def notify(self, notification: Notification) -> None:
        if not QSystemTrayIcon.supportsMessages():
            LogNotifier().notify(notification)
            return
        icon = self._ICONS.get(notification.icon, QSystemTrayIcon.MessageIcon.Information)
        self._tray.showMessage(notification.title, notification.body, icon, self._timeout_ms)


__all__ = [
    "Notification",
    "Notifier",
    "deliver",
    "LogNotifier",
    "TrayNotifier",
    "ICON_INFO",
    "ICON_SUCCESS",
    "ICON_ERROR",
]
