from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, QTimer


class PeriodicTask(QObject):
    """Repeating ticker with a cancellation token, driven by the Qt event loop.

    ``start`` always cancels the previous schedule first, so at most one
    ticker is ever live per task. ``stop`` only cancels future ticks; work a
    tick already started is left to finish. Every start/stop bumps the token
    so a timeout already queued by a cancelled schedule is ignored.
    """

    def __init__(
        self,
        name: str,
        interval_ms: int,
        callback: Callable[[], object],
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._name = name
        self._interval_ms = interval_ms
        self._callback = callback
        self._token = 0
        self._timer: Optional[QTimer] = None
        self._logger = logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def is_active(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    def start(self) -> None:
        self.stop()
        self._token += 1
        token = self._token
        timer = QTimer(self)
        timer.setInterval(self._interval_ms)
        timer.timeout.connect(lambda: self._tick(token))
        self._timer = timer
        timer.start()
        self._logger.info(
            "Periodic task started", extra={"task": self._name, "interval_ms": self._interval_ms}
        )

    def stop(self) -> None:
        timer = self._timer
        if timer is None:
            return
        self._timer = None
        self._token += 1
        timer.stop()
        timer.deleteLater()
        self._logger.info("Periodic task stopped", extra={"task": self._name})

    def _tick(self, token: int) -> None:
        if token != self._token:
            return
        try:
            self._callback()
        except Exception:
            self._logger.exception("Periodic task tick failed", extra={"task": self._name})


__all__ = ["PeriodicTask"]
