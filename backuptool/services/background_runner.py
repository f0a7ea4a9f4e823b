from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, Protocol

from PySide6.QtCore import QObject, Qt, Signal

_logger = logging.getLogger(__name__)

# Probes and backups are the only background work; two workers keep a slow
# engine run from starving the 1s connectivity probe.
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="backup-bg")


class Runner(Protocol):
    def __call__(
        self,
        fn: Callable[[], Any],
        *,
        on_result: Optional[Callable[[Any], None]] = ...,
        on_error: Optional[Callable[[BaseException], None]] = ...,
    ) -> Any: ...


class _UiInvoker(QObject):
    """Lives on the UI thread and runs marshalled callbacks there."""

    callback_signal = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self.callback_signal.connect(self._execute_callback, Qt.QueuedConnection)

    def _execute_callback(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            _logger.exception("Unhandled exception in UI callback")


# Import this module on the UI thread so the invoker gets UI-thread affinity.
_invoke_target = _UiInvoker()


def _on_ui(cb: Callable[[], None]) -> None:
    _invoke_target.callback_signal.emit(cb)


def run_bg(
    fn: Callable[[], Any],
    *,
    on_result: Optional[Callable[[Any], None]] = None,
    on_error: Optional[Callable[[BaseException], None]] = None,
) -> Future:
    """Run a callable in background and post callbacks on the UI thread.

    - fn: blocking work executed off the UI thread
    - on_result: called on the UI thread with the return value
    - on_error: called on the UI thread with the exception if fn raises
    """
    fut: Future = _executor.submit(fn)

    def _done_cb(f: Future) -> None:
        try:
            res = f.result()
        except BaseException as exc:
            if on_error is not None:
                captured_exc = exc
                _on_ui(lambda: on_error(captured_exc))
            else:
                _logger.error("Background task failed", exc_info=exc)
            return
        if on_result is not None:
            _on_ui(lambda: on_result(res))

    fut.add_done_callback(_done_cb)
    return fut


def run_inline(
    fn: Callable[[], Any],
    *,
    on_result: Optional[Callable[[Any], None]] = None,
    on_error: Optional[Callable[[BaseException], None]] = None,
) -> None:
    """Same contract as run_bg but on the calling thread (headless use, tests)."""
    try:
        res = fn()
    except Exception as exc:
        if on_error is None:
            raise
        on_error(exc)
        return
    if on_result is not None:
        on_result(res)


def shutdown_background(wait: bool = False) -> None:
    """Stop accepting work; running tasks finish unless the process exits."""
    _executor.shutdown(wait=wait, cancel_futures=True)


__all__ = ["Runner", "run_bg", "run_inline", "shutdown_background"]
