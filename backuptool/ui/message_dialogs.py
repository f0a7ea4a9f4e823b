from __future__ import annotations

from PySide6 import QtWidgets

from backuptool.core.errors import UserFacingError


def show_error(parent: QtWidgets.QWidget | None, title: str, message: str) -> None:
    QtWidgets.QMessageBox.critical(parent, title, message)


def show_info(parent: QtWidgets.QWidget | None, title: str, message: str) -> None:
    QtWidgets.QMessageBox.information(parent, title, message)


def format_user_error(error: UserFacingError) -> str:
    body = error.message or "An error occurred."
    if error.remediation:
        body = f"{body}\n\n{error.remediation}"
    return body


def show_user_error(parent: QtWidgets.QWidget | None, error: UserFacingError) -> None:
    QtWidgets.QMessageBox.critical(parent, error.title, format_user_error(error))


__all__ = [
    "show_error",
    "show_info",
    "format_user_error",
    "show_user_error",
]
