from __future__ import annotations

import os
from typing import Iterator

import pytest
from PySide6 import QtWidgets

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from backuptool.services.background_runner import run_inline  # noqa: E402
from backuptool.services.settings_store import SettingsStore  # noqa: E402
from backuptool.storage.file_adapter import FileSettingsBackend  # noqa: E402
from backuptool.storage.sqlite_adapter import SQLiteSettingsBackend  # noqa: E402


@pytest.fixture(scope="session")
def qt_app() -> Iterator[QtWidgets.QApplication]:
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app


@pytest.fixture
def inline_runner():
    """Runs background work synchronously on the calling thread."""
    return run_inline


class DeferredRunner:
    """Queues background work so tests decide when each job completes."""

    def __init__(self) -> None:
        self.pending: list[tuple] = []

    def __call__(self, fn, *, on_result=None, on_error=None):
        self.pending.append((fn, on_result, on_error))

    def complete_next(self) -> None:
        fn, on_result, on_error = self.pending.pop(0)
        run_inline(fn, on_result=on_result, on_error=on_error)

    def complete_all(self) -> None:
        while self.pending:
            self.complete_next()


@pytest.fixture
def deferred_runner() -> DeferredRunner:
    return DeferredRunner()


@pytest.fixture(params=["sqlite", "file"])
def settings_store(request, tmp_path) -> Iterator[SettingsStore]:
    if request.param == "sqlite":
        store = SettingsStore(lambda: SQLiteSettingsBackend(tmp_path / "settings.db"))
    else:
        store = SettingsStore(lambda: FileSettingsBackend(tmp_path / ".settings.dat"))
    yield store
    store.close()
