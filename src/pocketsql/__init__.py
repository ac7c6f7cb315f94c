"""
pocketsql - MySQL/MariaDB session layer with SSH tunneling

Connects to a MySQL-compatible server directly or through an SSH local port
forward, browses databases and tables, runs user SQL with incremental paging,
and edits rows and table structure. An MCP server exposes the same operations
as tools.
"""

__version__ = "1.0.0"

from .errors import (
    ConnectionFailedError,
    DatabaseError,
    ErrorKind,
    ExportError,
    PocketSQLError,
    TunnelError,
    UnknownError,
)
from .models.config import ServerEndpoint, SessionSettings, TunnelSpec
from .models.query import AffectedRows, QueryOutcome, TabularSnapshot
from .models.table import ColumnSpec, TableDefinition

__all__ = [
    "ServerEndpoint",
    "TunnelSpec",
    "SessionSettings",
    "ColumnSpec",
    "TableDefinition",
    "TabularSnapshot",
    "AffectedRows",
    "QueryOutcome",
    "ErrorKind",
    "PocketSQLError",
    "ConnectionFailedError",
    "TunnelError",
    "DatabaseError",
    "ExportError",
    "UnknownError",
]
