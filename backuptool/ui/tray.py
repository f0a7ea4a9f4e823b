from __future__ import annotations

from typing import Optional

from PySide6 import QtCore, QtGui, QtWidgets


class TrayIcon(QtWidgets.QSystemTrayIcon):
    """Tray entry with 'Show main window' and 'Exit'.

    A left click (or double click) also restores the window.
    """

    show_requested = QtCore.Signal()
    exit_requested = QtCore.Signal()

    def __init__(self, icon: QtGui.QIcon, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(icon, parent)
        self.setToolTip("MySQL Backup Tool")
        self._menu = QtWidgets.QMenu()
        self.act_show = self._menu.addAction("Show main window")
        self._menu.addSeparator()
        self.act_exit = self._menu.addAction("Exit")
        self.act_show.triggered.connect(self.show_requested)
        self.act_exit.triggered.connect(self.exit_requested)
        self.setContextMenu(self._menu)
        self.activated.connect(self._on_activated)

    def _on_activated(self, reason: QtWidgets.QSystemTrayIcon.ActivationReason) -> None:
        if reason in (
            QtWidgets.QSystemTrayIcon.ActivationReason.Trigger,
            QtWidgets.QSystemTrayIcon.ActivationReason.DoubleClick,
        ):
            self.show_requested.emit()


def default_icon() -> QtGui.QIcon:
    style = QtWidgets.QApplication.style()
    return style.standardIcon(QtWidgets.QStyle.StandardPixmap.SP_DriveHDIcon)


__all__ = ["TrayIcon", "default_icon"]
