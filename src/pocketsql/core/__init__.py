"""Core session components."""

from .connection import SqlSession
from .manager import SessionManager
from .pagination import QueryPager
from .repository import DatabaseRepository
from .router import QueryRouter
from .tunnel import SecureTunnel

__all__ = [
    "SecureTunnel",
    "SqlSession",
    "QueryRouter",
    "QueryPager",
    "DatabaseRepository",
    "SessionManager",
]
