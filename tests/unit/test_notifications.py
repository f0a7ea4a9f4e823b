from __future__ import annotations

import logging

from backuptool.services.notifications import (
    ICON_ERROR,
    LogNotifier,
    Notification,
    deliver,
)


class Broken:
    def notify(self, notification: Notification) -> None:
        raise RuntimeError("tray went away")


class Collecting:
    def __init__(self) -> None:
        self.received: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.received.append(notification)


def test_delivery_errors_are_swallowed(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        assert deliver(Broken(), Notification("Backup complete", "done")) is False
    assert "Notification delivery failed" in caplog.text


def test_delivery_without_sink_is_a_no_op() -> None:
    assert deliver(None, Notification("t", "b")) is False


def test_delivery_reaches_sink() -> None:
    sink = Collecting()
    note = Notification("Backup failed", "boom", ICON_ERROR)

    assert deliver(sink, note) is True
    assert sink.received == [note]


def test_log_notifier_uses_error_level_for_failures(caplog) -> None:
    with caplog.at_level(logging.INFO):
        LogNotifier().notify(Notification("Backup failed", "disk full", ICON_ERROR))
    assert caplog.records[-1].levelno == logging.ERROR
    assert "disk full" in caplog.records[-1].getMessage()
