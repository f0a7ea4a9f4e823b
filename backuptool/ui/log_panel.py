from __future__ import annotations

from typing import Dict

from PySide6 import QtCore, QtGui, QtWidgets

from backuptool.logging.gui_bridge import GuiLogRecord

SEVERITY_COLOR: Dict[str, QtGui.QColor] = {
    "info": QtGui.QColor("#1f3a5f"),
    "warning": QtGui.QColor("#8a6d00"),
    "error": QtGui.QColor("#9b1c1c"),
    "critical": QtGui.QColor("#7a0f0f"),
    "debug": QtGui.QColor("#5c5c5c"),
}


class LogPanel(QtWidgets.QWidget):
    """Activity log for backups and connection checks, newest at the bottom."""

    MAX_ITEMS = 500

    def __init__(self, parent: QtWidgets.QWidget | None = None) -> None:
        super().__init__(parent)
        self._list = QtWidgets.QListWidget(self)
        self._list.setSelectionMode(QtWidgets.QAbstractItemView.NoSelection)
        self._list.setFocusPolicy(QtCore.Qt.NoFocus)
        self._list.setUniformItemSizes(True)
        layout = QtWidgets.QVBoxLayout(self)
        layout.addWidget(self._list)
        layout.setContentsMargins(0, 0, 0, 0)

    @QtCore.Slot(object)
    def append_record(self, record: GuiLogRecord) -> None:
        text = f"{record.time}  {record.level.upper():<8} {record.message}"
        if record.detail:
            text = f"{text}  [{record.detail}]"
        item = QtWidgets.QListWidgetItem(text)
        item.setForeground(SEVERITY_COLOR.get(record.level, SEVERITY_COLOR["info"]))
        if record.is_problem:
            font = item.font()
            font.setBold(True)
            item.setFont(font)
        item.setToolTip(record.logger)
        self._list.addItem(item)
        self._list.scrollToBottom()
        while self._list.count() > self.MAX_ITEMS:
            self._list.takeItem(0)

    def count(self) -> int:
        return self._list.count()

    def item_text(self, row: int) -> str:
        item = self._list.item(row)
        return item.text() if item is not None else ""

    def clear(self) -> None:
        self._list.clear()


__all__ = ["LogPanel"]
