from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional, TextIO

from backuptool.lib.redaction import redact

REDACTED_VALUE = "***REDACTED***"
SENSITIVE_KEYS = frozenset(
    {"password", "pwd", "secret", "token", "api_key", "apikey", "access_key", "connection_url"}
)
# Everything a bare LogRecord carries; the rest arrived through ``extra=``
_RESERVED_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_HANDLER_MARKER = "_backuptool_handler"


def is_sensitive_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


class SensitiveDataFilter(logging.Filter):
    """Mask secret-looking ``extra=`` fields and credentials inside URLs."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for key in list(record.__dict__):
            if key not in _RESERVED_ATTRS and is_sensitive_field(key):
                setattr(record, key, REDACTED_VALUE)
        if isinstance(record.args, dict):
            record.args = {
                key: REDACTED_VALUE if is_sensitive_field(str(key)) else value
                for key, value in record.args.items()
            }
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields go under ``context``."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        if record.threadName and record.threadName != threading.main_thread().name:
            payload["thread"] = record.threadName
        context = {
            key: REDACTED_VALUE if is_sensitive_field(key) else _json_value(value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=True)


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    return redact(str(value))


def configure_logging(
    gui_handler_factory: Optional[Callable[[], logging.Handler]] = None,
    *,
    level: int = logging.INFO,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Route the root logger to stderr (and the activity panel) as redacted JSON.

    Calling this again replaces the handlers installed by a previous call.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in [h for h in root.handlers if getattr(h, _HANDLER_MARKER, False)]:
        root.removeHandler(handler)
        handler.close()

    _install(root, logging.StreamHandler(stream))
    if gui_handler_factory is not None:
        try:
            _install(root, gui_handler_factory())
        except Exception:  # pragma: no cover - headless sessions have no panel
            root.warning("Activity panel logging unavailable", exc_info=True)
    return root


def _install(root: logging.Logger, handler: logging.Handler) -> None:
    handler.setFormatter(JsonFormatter())
    handler.addFilter(SensitiveDataFilter())
    setattr(handler, _HANDLER_MARKER, True)
    root.addHandler(handler)


__all__ = [
    "JsonFormatter",
    "SensitiveDataFilter",
    "configure_logging",
    "is_sensitive_field",
    "REDACTED_VALUE",
    "SENSITIVE_KEYS",
]
