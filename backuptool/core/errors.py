from __future__ import annotations


class UserFacingError(Exception):
    """Base exception carrying user-presentable context."""

    def __init__(self, message: str, *, title: str, remediation: str | None = None) -> None:
        super().__init__(message)
        self.title = title
        self.remediation = remediation or ""

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ""


class ConfigurationError(UserFacingError):
    """Required configuration (database name, backup path) is missing or invalid."""


class ConnectivityError(UserFacingError):
    """The MySQL server could not be reached or rejected the session."""


class ConnectionTimeoutError(ConnectivityError):
    pass


class ConnectionAuthenticationError(ConnectivityError):
    pass


class QueryError(UserFacingError):
    """The schema lookup failed although the server was reachable."""


class BackupEngineError(UserFacingError):
    """The backup engine reported a failure."""

    def __init__(
        self,
        message: str,
        *,
        title: str = "Backup Failed",
        remediation: str | None = None,
    ) -> None:
        super().__init__(message, title=title, remediation=remediation)


class PersistenceError(UserFacingError):
    """Reading or writing the settings store failed."""

    def __init__(
        self,
        message: str,
        *,
        title: str = "Settings Error",
        remediation: str | None = None,
    ) -> None:
        super().__init__(message, title=title, remediation=remediation)


class DecryptionFailure(Exception):
    """A stored secret could not be decoded. Always recovered locally."""


__all__ = [
    "UserFacingError",
    "ConfigurationError",
    "ConnectivityError",
    "ConnectionTimeoutError",
    "ConnectionAuthenticationError",
    "QueryError",
    "BackupEngineError",
    "PersistenceError",
    "DecryptionFailure",
]
