from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from backuptool.core.errors import DecryptionFailure, PersistenceError
from backuptool.services.credential_vault import CredentialVault, EncryptedValue
from backuptool.storage.adapter import SettingsBackend

CONNECTION_URL_KEY = "database.connectionUrl"

BackendFactory = Callable[[], SettingsBackend]


def is_password_key(key: str) -> bool:
    return "password" in key.lower()


class SettingsStore:
    """Typed key/value settings with transparent secret handling.

    The backend is opened lazily by the first caller. Concurrent first
    callers all wait on the same one-shot future, so exactly one handle is
    ever opened. A failed open is forgotten and retried by the next caller.
    """

    def __init__(self, backend_factory: BackendFactory, *, vault: Optional[CredentialVault] = None) -> None:
        self._backend_factory = backend_factory
        self._vault = vault or CredentialVault()
        self._open_lock = threading.Lock()
        self._backend_future: Future[SettingsBackend] | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def vault(self) -> CredentialVault:
        return self._vault

    def backend(self) -> SettingsBackend:
        with self._open_lock:
            future = self._backend_future
            owner = future is None
            if owner:
                future = Future()
                self._backend_future = future
        assert future is not None
        if owner:
            try:
                backend = self._backend_factory()
                backend.open()
            except BaseException as exc:
                with self._open_lock:
                    self._backend_future = None
                future.set_exception(exc)
                raise
            self._logger.info("Settings backend opened", extra={"backend": backend.backend})
            future.set_result(backend)
        return future.result()

    # Writes -----------------------------------------------------------
    def set(self, key: str, value: Any) -> None:
        text = value if isinstance(value, str) else json.dumps(value)
        if text and self._needs_encryption(key):
            text = self._vault.encrypt(text)
        try:
            backend = self.backend()
            backend.set(key, text)
            backend.flush()
        except PersistenceError:
            self._logger.error("Saving setting failed", extra={"key": key}, exc_info=True)
            raise
        except Exception as exc:
            self._logger.error("Saving setting failed", extra={"key": key}, exc_info=True)
            raise PersistenceError(f"Could not save setting '{key}': {exc}") from exc
        self._logger.debug("Setting saved", extra={"key": key})

    def delete(self, key: str) -> None:
        try:
            backend = self.backend()
            backend.delete(key)
            backend.flush()
        except PersistenceError:
            self._logger.error("Deleting setting failed", extra={"key": key}, exc_info=True)
            raise
        except Exception as exc:
            self._logger.error("Deleting setting failed", extra={"key": key}, exc_info=True)
            raise PersistenceError(f"Could not delete setting '{key}': {exc}") from exc

    def clear(self) -> None:
        try:
            backend = self.backend()
            backend.clear()
            backend.flush()
        except PersistenceError:
            self._logger.error("Clearing settings failed", exc_info=True)
            raise
        except Exception as exc:
            self._logger.error("Clearing settings failed", exc_info=True)
            raise PersistenceError(f"Could not clear settings: {exc}") from exc

    # Reads ------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = self.backend().get(key)
        except Exception:
            self._logger.error("Reading setting failed", extra={"key": key}, exc_info=True)
            return default
        if raw is None:
            return default
        return self._decode(key, raw)

    def get_all(self) -> dict[str, Any]:
        try:
            keys = self.backend().keys()
        except Exception:
            self._logger.error("Listing settings failed", exc_info=True)
            return {}
        settings: dict[str, Any] = {}
        for key in keys:
            try:
                raw = self.backend().get(key)
                if raw is not None:
                    settings[key] = self._decode(key, raw)
            except Exception:
                self._logger.warning("Skipping unreadable setting", extra={"key": key}, exc_info=True)
        return settings

    def close(self) -> None:
        with self._open_lock:
            future = self._backend_future
            self._backend_future = None
        if future is None or not future.done() or future.exception() is not None:
            return
        future.result().close()

    # Internals --------------------------------------------------------
    def _needs_encryption(self, key: str) -> bool:
        return self._vault.is_sensitive_key(key) or key == CONNECTION_URL_KEY

    def _decode(self, key: str, raw: str) -> Any:
        if is_password_key(key):
            # Passwords are always written encrypted, so decrypt without the heuristic
            try:
                return self._vault.decrypt(raw)
            except DecryptionFailure:
                self._logger.warning("Stored password could not be decrypted", extra={"key": key})
                return ""

        if key == CONNECTION_URL_KEY:
            stored = self._vault.classify(raw)
            if isinstance(stored, EncryptedValue):
                return self._vault.try_decrypt(stored.payload)
            return stored.text

        value = raw
        if self._vault.is_sensitive_key(key):
            stored = self._vault.classify(raw)
            value = self._vault.try_decrypt(stored.payload) if isinstance(stored, EncryptedValue) else stored.text

        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value


__all__ = ["SettingsStore", "CONNECTION_URL_KEY", "is_password_key"]
