from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from PySide6 import QtCore

from backuptool.lib.redaction import redact

# Extras worth showing next to a line in the activity panel
PANEL_CONTEXT_FIELDS = ("output", "database", "removed", "error", "reason")


@dataclass(slots=True)
class GuiLogRecord:
    message: str
    level: str
    time: str
    logger: str
    detail: str = ""

    @property
    def is_problem(self) -> bool:
        return self.level in ("warning", "error", "critical")

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "GuiLogRecord":
        parts = [
            f"{name}={redact(str(getattr(record, name)))}"
            for name in PANEL_CONTEXT_FIELDS
            if getattr(record, name, None) not in (None, "")
        ]
        return cls(
            message=redact(record.getMessage()),
            level=record.levelname.lower(),
            # Local wall-clock time, same clock as the backup file names
            time=datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            logger=record.name,
            detail=", ".join(parts),
        )


class _RecordRelay(QtCore.QObject):
    record_ready = QtCore.Signal(object)


class QtSignalHandler(logging.Handler):
    """Hand records to the activity panel on the UI thread.

    Engine and probe threads log too; their records travel through a queued
    signal. Below ``level`` nothing reaches the panel, which keeps the
    once-a-second probe chatter out of it.
    """

    def __init__(self, emitter: Callable[[GuiLogRecord], None], level: int = logging.INFO) -> None:
        super().__init__(level)
        self._relay = _RecordRelay()
        self._relay.record_ready.connect(emitter)

    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self._relay.record_ready.emit(GuiLogRecord.from_record(record))
        except Exception:  # pragma: no cover - logging must never raise
            self.handleError(record)


def build_gui_handler(emitter: Callable[[GuiLogRecord], None]) -> QtSignalHandler:
    return QtSignalHandler(emitter)


__all__ = ["GuiLogRecord", "QtSignalHandler", "build_gui_handler", "PANEL_CONTEXT_FIELDS"]
