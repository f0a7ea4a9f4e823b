from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional
from urllib.parse import quote, unquote

import pymysql

from backuptool.core.errors import (
    ConfigurationError,
    ConnectionAuthenticationError,
    ConnectionTimeoutError,
    ConnectivityError,
    QueryError,
    UserFacingError,
)

DEFAULT_PORT = 3306
SYSTEM_SCHEMA = "information_schema"
CONNECT_TIMEOUT_SECONDS = 5
CONNECTION_URL_PATTERN = re.compile(r"mysql://([^:]+):([^@]+)@([^:]+):(\d+)/(.*)$")

_URI_COMPONENT_SAFE = "-_.!~*'()"
# MySQL client error codes: access denied, unknown host, lost connection, cannot connect
_AUTH_ERROR_CODES = {1044, 1045, 1698}
_UNREACHABLE_ERROR_CODES = {2002, 2003, 2005, 2006, 2013}

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConnectionProfile:
    host: str = "localhost"
    port: int = DEFAULT_PORT
    username: str = "root"
    password: str = ""
    database: str = ""

    def validate(self) -> None:
        if not self.host:
            raise ConfigurationError(
                "Server host is required.",
                title="Incomplete Connection",
                remediation="Enter the MySQL server host name or address.",
            )
        if not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            raise ConfigurationError(
                f"Port {self.port!r} is out of range.",
                title="Invalid Port",
                remediation="Use a port between 1 and 65535 (MySQL default is 3306).",
            )

    def with_database(self, database: str) -> "ConnectionProfile":
        return replace(self, database=database)

    def sanitized(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "database": self.database,
        }


@dataclass(slots=True)
class ConnectionCheckResult:
    success: bool
    db_exists: Optional[bool] = None
    error_message: Optional[str] = None
    error: Optional[UserFacingError] = None

    @property
    def connected(self) -> bool:
        return self.success and bool(self.db_exists)


def build_connection_url(profile: ConnectionProfile) -> str:
    password = quote(profile.password, safe=_URI_COMPONENT_SAFE)
    return f"mysql://{profile.username}:{password}@{profile.host}:{profile.port}/{profile.database}"


def parse_connection_url(url: str) -> Optional[ConnectionProfile]:
    """Return the profile encoded in ``url`` or None when it does not match."""
    if not url:
        return None
    match = CONNECTION_URL_PATTERN.match(url)
    if not match:
        _logger.warning("Connection URL does not match the expected format")
        return None
    username, password, host, port, database = match.groups()
    return ConnectionProfile(
        host=host,
        port=int(port),
        username=username,
        password=unquote(password),
        database=database or "",
    )


def map_exception(exc: BaseException) -> ConnectivityError:
    """Classify a connect-time failure into an actionable, redacted error."""
    code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else None
    detail = str(exc.args[1]) if len(exc.args) > 1 else str(exc)
    lowered = detail.lower()

    if code in _AUTH_ERROR_CODES or "access denied" in lowered:
        return ConnectionAuthenticationError(
            f"Authentication with the MySQL server failed: {detail}",
            title="Authentication Failed",
            remediation="Confirm the username and password and that the user may connect from this host.",
        )
    if isinstance(exc, TimeoutError) or "timed out" in lowered or "timeout" in lowered:
        return ConnectionTimeoutError(
            "Connection attempt timed out or server unreachable.",
            title="Connection Timeout",
            remediation="Verify host/port, network/VPN, and firewall settings.",
        )
    if code in _UNREACHABLE_ERROR_CODES or isinstance(exc, OSError):
        return ConnectivityError(
            f"Unable to reach the MySQL server: {detail}",
            title="Connection Failed",
            remediation="Check the server address and port and that MySQL is running.",
        )
    return ConnectivityError(
        f"Connection failed: {detail}",
        title="Connection Failed",
        remediation="Verify server, port, and credentials.",
    )


def check_database_exists(
    profile: ConnectionProfile,
    *,
    connect: Callable[..., Any] = pymysql.connect,
    timeout: int = CONNECT_TIMEOUT_SECONDS,
) -> ConnectionCheckResult:
    """Connect to the server's system catalog and look the target schema up.

    Shared by the periodic monitor and the manual test action. Never raises.
    """
    if not profile.database:
        error = ConfigurationError(
            "Database name is required.",
            title="Incomplete Connection",
            remediation="Enter the name of the database to back up.",
        )
        return ConnectionCheckResult(success=False, db_exists=False, error_message=error.message, error=error)
    try:
        profile.validate()
    except ConfigurationError as error:
        return ConnectionCheckResult(success=False, db_exists=False, error_message=error.message, error=error)

    try:
        conn = connect(
            host=profile.host,
            port=profile.port,
            user=profile.username,
            password=profile.password,
            database=SYSTEM_SCHEMA,
            connect_timeout=timeout,
        )
    except Exception as exc:
        error = map_exception(exc)
        return ConnectionCheckResult(success=False, db_exists=False, error_message=error.message, error=error)

    try:
        with conn.cursor() as cursor:
            cursor.execute(
                "SELECT COUNT(*) FROM information_schema.SCHEMATA WHERE SCHEMA_NAME = %s",
                (profile.database,),
            )
            row = cursor.fetchone()
    except Exception as exc:
        error = QueryError(
            f"Schema lookup failed: {exc}",
            title="Query Failed",
            remediation="Make sure the user may read information_schema.",
        )
        return ConnectionCheckResult(success=False, db_exists=False, error_message=error.message, error=error)
    finally:
        try:
            conn.close()
        except Exception:
            _logger.debug("Closing probe connection failed", exc_info=True)

    count = row[0] if row else 0
    return ConnectionCheckResult(success=True, db_exists=count == 1)


__all__ = [
    "ConnectionProfile",
    "ConnectionCheckResult",
    "build_connection_url",
    "parse_connection_url",
    "check_database_exists",
    "map_exception",
    "DEFAULT_PORT",
]
