"""Pydantic models for connection settings, table definitions and results."""

from .config import ServerEndpoint, SessionSettings, TunnelSpec
from .query import AffectedRows, QueryOutcome, TabularSnapshot
from .table import ColumnSpec, TableDefinition

__all__ = [
    "ServerEndpoint",
    "TunnelSpec",
    "SessionSettings",
    "ColumnSpec",
    "TableDefinition",
    "TabularSnapshot",
    "AffectedRows",
    "QueryOutcome",
]
