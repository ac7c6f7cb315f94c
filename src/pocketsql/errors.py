"""Classified errors for the session layer.

Raw driver, SSH and socket exceptions are classified exactly once, at the
point where they surface, into one of a small set of kinds. Each kind maps to
a fixed user-facing message chosen from an ordered substring table, so the
matching rules can be tested on their own.
"""

import asyncio
import logging
import socket
from enum import Enum
from typing import Optional

import paramiko
from sqlalchemy import exc as sa_exc

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Error taxonomy shared by every component."""

    CONNECTION = "connection"
    TUNNEL = "tunnel"
    DATABASE = "database"
    EXPORT = "export"
    UNKNOWN = "unknown"


# (substrings, message) pairs per kind; first match wins, matching is
# case-insensitive against the raw error message.
USER_MESSAGES: dict[ErrorKind, tuple[tuple[tuple[str, ...], str], ...]] = {
    ErrorKind.CONNECTION: (
        (
            ("timeout", "timed out"),
            "Connection timed out. Check the server address and your network.",
        ),
        (
            ("refused",),
            "Connection refused. Check that the server is running and the port is correct.",
        ),
        (
            (
                "unknown host",
                "name or service not known",
                "nodename nor servname",
                "getaddrinfo failed",
            ),
            "Server not found. Check the server address.",
        ),
        (
            ("access denied",),
            "Access denied. Check your username and password.",
        ),
        (
            ("authentication",),
            "Authentication failed. Check your username and password.",
        ),
    ),
    ErrorKind.TUNNEL: (
        (
            ("auth",),
            "SSH authentication failed. Check the SSH username and password.",
        ),
        (
            ("timeout", "timed out"),
            "SSH connection timed out. Check the SSH server address.",
        ),
        (
            ("refused",),
            "SSH connection refused. Check that the SSH server is running.",
        ),
        (
            ("key",),
            "SSH private key error. Check the key file.",
        ),
    ),
    ErrorKind.DATABASE: (
        (
            ("syntax",),
            "SQL syntax error. Check your query.",
        ),
        (
            ("doesn't exist",),
            "Database or table not found.",
        ),
        (
            ("duplicate",),
            "This record already exists. Primary key or unique constraint violation.",
        ),
        (
            ("foreign key",),
            "Foreign key constraint violation. Check the related records.",
        ),
        (
            ("permission", "denied"),
            "Permission error. You are not allowed to perform this operation.",
        ),
        (
            ("lock",),
            "The table is locked. Please try again later.",
        ),
    ),
    ErrorKind.EXPORT: (
        (
            ("permission",),
            "No permission to write the file. Check the application permissions.",
        ),
        (
            ("space",),
            "Not enough storage space. Free up space on the device.",
        ),
        (
            ("not found",),
            "File path not found.",
        ),
    ),
    ErrorKind.UNKNOWN: (),
}

FALLBACK_PREFIXES = {
    ErrorKind.CONNECTION: "Connection error",
    ErrorKind.TUNNEL: "SSH tunnel error",
    ErrorKind.DATABASE: "Database error",
    ErrorKind.EXPORT: "Export error",
    ErrorKind.UNKNOWN: "An unexpected error occurred",
}

# MySQL client/server codes that mean the server could not be reached or
# refused the login, as opposed to a failing statement.
CONNECTION_ERROR_CODES = frozenset({1045, 2002, 2003, 2005, 2006, 2013})


def user_message(kind: ErrorKind, message: str) -> str:
    """Map a raw message to the fixed user-facing message for its kind."""
    lowered = message.lower()
    for patterns, text in USER_MESSAGES[kind]:
        if any(pattern in lowered for pattern in patterns):
            return text
    return f"{FALLBACK_PREFIXES[kind]}: {message}"


class PocketSQLError(Exception):
    """Base class for every error raised across a component boundary."""

    kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        code: Optional[int] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.code = code
        self._user_message = user_message

    @property
    def user_message(self) -> str:
        """Fixed, user-facing message for this error."""
        if self._user_message is not None:
            return self._user_message
        return user_message(self.kind, self.message)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ConnectionFailedError(PocketSQLError):
    """Host unreachable, login rejected, or connection timed out."""

    kind = ErrorKind.CONNECTION


class TunnelError(PocketSQLError):
    """SSH tunnel could not be established.

    ``reason`` is one of ``identity``, ``auth``, ``timeout``, ``connect`` or
    ``forwarding``.
    """

    kind = ErrorKind.TUNNEL

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        reason: str = "connect",
    ):
        super().__init__(message, cause=cause)
        self.reason = reason


class DatabaseError(PocketSQLError):
    """Statement failed on the server (syntax, missing object, constraint...)."""

    kind = ErrorKind.DATABASE


class ExportError(PocketSQLError):
    """File output failed. Raised by export consumers of snapshots."""

    kind = ErrorKind.EXPORT


class UnknownError(PocketSQLError):
    """Anything that does not fit the other kinds."""

    kind = ErrorKind.UNKNOWN


def _driver_error_details(exc: sa_exc.DBAPIError) -> tuple[Optional[int], str]:
    """Extract (error code, message) from a wrapped DBAPI exception."""
    orig = exc.orig
    if orig is None:
        return None, str(exc)
    args = getattr(orig, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return args[0], str(args[1])
    return None, str(orig)


def classify(exc: BaseException) -> PocketSQLError:
    """
    Classify a raw exception into the error taxonomy.

    Args:
        exc: Exception raised by a driver, paramiko or the socket layer

    Returns:
        Classified error carrying the original exception as ``cause``
    """
    if isinstance(exc, PocketSQLError):
        return exc

    if isinstance(exc, paramiko.SSHException):
        return TunnelError(str(exc) or type(exc).__name__, cause=exc)

    if isinstance(exc, sa_exc.DBAPIError):
        code, message = _driver_error_details(exc)
        if code in CONNECTION_ERROR_CODES or exc.connection_invalidated:
            return ConnectionFailedError(message, cause=exc, code=code)
        return DatabaseError(message, cause=exc, code=code)

    if isinstance(exc, sa_exc.SQLAlchemyError):
        return DatabaseError(str(exc), cause=exc)

    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ConnectionFailedError(str(exc) or "Operation timed out", cause=exc)

    if isinstance(exc, (ConnectionError, socket.gaierror, socket.herror)):
        return ConnectionFailedError(str(exc) or type(exc).__name__, cause=exc)

    if isinstance(exc, OSError):
        return ExportError(str(exc) or type(exc).__name__, cause=exc)

    logger.debug(f"Unclassified error: {type(exc).__name__}: {exc}")
    return UnknownError(str(exc) or type(exc).__name__, cause=exc)


