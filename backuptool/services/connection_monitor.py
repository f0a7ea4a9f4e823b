from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal

from backuptool.services.background_runner import Runner, run_bg
from backuptool.services.mysql_connection import (
    ConnectionCheckResult,
    ConnectionProfile,
    check_database_exists,
)
from backuptool.services.periodic_task import PeriodicTask

PROBE_INTERVAL_MS = 1000

Checker = Callable[[ConnectionProfile], ConnectionCheckResult]


class ConnectionMonitor(QObject):
    """Keeps ``is_connected`` current by probing the target schema every second.

    Probes and the manual test share one latch discipline: while either is in
    flight, further probe ticks are dropped (never queued).
    """

    connection_changed = Signal(bool)
    test_started = Signal()
    test_finished = Signal(object)  # ConnectionCheckResult

    def __init__(
        self,
        profile_provider: Callable[[], ConnectionProfile],
        *,
        checker: Checker = check_database_exists,
        runner: Runner = run_bg,
        interval_ms: int = PROBE_INTERVAL_MS,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._profile_provider = profile_provider
        self._checker = checker
        self._runner = runner
        self._is_checking = False
        self._is_loading = False
        self._is_connected = False
        # Bumped by reset(); results from an older generation are dropped
        self._generation = 0
        self._ticker = PeriodicTask("connection-monitor", interval_ms, self.probe, parent=self)
        self._logger = logging.getLogger(__name__)

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def is_checking(self) -> bool:
        return self._is_checking

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_running(self) -> bool:
        return self._ticker.is_active

    def start(self) -> None:
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.stop()

    def probe(self) -> bool:
        """Run one existence check unless one is already in flight."""
        if self._is_checking or self._is_loading:
            return False
        self._is_checking = True
        profile = self._snapshot()
        generation = self._generation
        try:
            self._runner(
                lambda: self._checker(profile),
                on_result=lambda result: self._on_probe_result(result, generation),
                on_error=lambda exc: self._on_probe_error(exc, generation),
            )
        except Exception:
            self._is_checking = False
            self._logger.exception("Could not schedule connection probe")
            return False
        return True

    def test_connection(self) -> bool:
        """Manual 'test connection' action; reports the classified result."""
        if self._is_loading:
            return False
        self._is_loading = True
        self.test_started.emit()
        profile = self._snapshot()
        generation = self._generation
        self._logger.info("Testing database connection", extra=profile.sanitized())
        try:
            self._runner(
                lambda: self._checker(profile),
                on_result=lambda result: self._on_test_result(result, generation),
                on_error=lambda exc: self._on_test_error(exc, generation),
            )
        except Exception:
            self._is_loading = False
            self._logger.exception("Could not schedule connection test")
            return False
        return True

    def reset(self) -> None:
        """Forget the last verdict, e.g. after the profile changed.

        Checks still in flight finish but can no longer change ``is_connected``.
        """
        self._generation += 1
        self._set_connected(False)

    # Completions (UI thread) -----------------------------------------
    def _on_probe_result(self, result: ConnectionCheckResult, generation: int) -> None:
        try:
            if generation == self._generation:
                self._set_connected(result.connected)
        finally:
            self._is_checking = False

    def _on_probe_error(self, exc: BaseException, generation: int) -> None:
        try:
            self._logger.warning("Connection probe raised: %s", exc)
            if generation == self._generation:
                self._set_connected(False)
        finally:
            self._is_checking = False

    def _on_test_result(self, result: ConnectionCheckResult, generation: int) -> None:
        try:
            if generation == self._generation:
                self._set_connected(result.connected)
            if result.connected:
                self._logger.info("Database connection test succeeded")
            else:
                self._logger.warning(
                    "Database connection test failed",
                    extra={"reason": result.error_message or "database does not exist"},
                )
            self.test_finished.emit(result)
        finally:
            self._is_loading = False

    def _on_test_error(self, exc: BaseException, generation: int) -> None:
        try:
            if generation == self._generation:
                self._set_connected(False)
            self._logger.error("Database connection test raised", exc_info=exc)
            self.test_finished.emit(
                ConnectionCheckResult(success=False, db_exists=False, error_message=str(exc))
            )
        finally:
            self._is_loading = False

    def _set_connected(self, connected: bool) -> None:
        if connected == self._is_connected:
            return
        self._is_connected = connected
        self._logger.info("Connection state changed", extra={"connected": connected})
        self.connection_changed.emit(connected)

    def _snapshot(self) -> ConnectionProfile:
        profile = self._profile_provider()
        return ConnectionProfile(
            host=profile.host,
            port=profile.port,
            username=profile.username,
            password=profile.password,
            database=profile.database,
        )


__all__ = ["ConnectionMonitor", "PROBE_INTERVAL_MS"]
