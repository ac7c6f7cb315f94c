"""Pytest configuration and shared fixtures for session tests"""

import asyncio
import os
import sys
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from pocketsql.core import QueryRouter, SessionManager, SqlSession
from pocketsql.models.config import ServerEndpoint, SessionSettings

# Load environment variables
load_dotenv()

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


# ==================== Configuration Fixtures ====================


@pytest.fixture(scope="session")
def mysql_database_url() -> Optional[str]:
    """MySQL test database URL from environment"""
    return os.getenv("MYSQL_TEST_DATABASE_URL")


@pytest.fixture
def settings() -> SessionSettings:
    """Short timeouts so failing tests fail fast"""
    return SessionSettings(
        tunnel_timeout=2,
        probe_timeout=1,
        connect_timeout=2,
        read_timeout=5,
        validation_timeout=1,
        page_size=3,
    )


# ==================== Local Fixtures ====================


class EngineRecorder:
    """Engine factory that ignores the MySQL URL and opens in-memory SQLite."""

    def __init__(self):
        self.calls: list[tuple[object, dict]] = []
        self.engines: list[AsyncEngine] = []

    def __call__(self, url, **kwargs) -> AsyncEngine:
        self.calls.append((url, kwargs))
        engine = create_async_engine("sqlite+aiosqlite://")
        self.engines.append(engine)
        return engine


@pytest.fixture
def engine_factory() -> EngineRecorder:
    """SQLite-backed stand-in for the MySQL engine factory"""
    return EngineRecorder()


@pytest.fixture
async def listening_endpoint() -> AsyncGenerator[ServerEndpoint, None]:
    """Endpoint pointing at a local TCP listener so the reachability probe passes"""

    def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.close()

    server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield ServerEndpoint(
            host="127.0.0.1",
            port=port,
            username="tester",
            password="secret",
            database="main",
        )
    finally:
        server.close()
        await server.wait_closed()


@pytest.fixture
async def session(
    settings: SessionSettings,
    engine_factory: EngineRecorder,
    listening_endpoint: ServerEndpoint,
) -> AsyncGenerator[SqlSession, None]:
    """Connected session backed by in-memory SQLite"""
    session = SqlSession(settings, engine_factory)
    await session.connect(listening_endpoint)
    try:
        yield session
    finally:
        await session.disconnect()


@pytest.fixture
def router(session: SqlSession) -> QueryRouter:
    return QueryRouter(session)


@pytest.fixture
async def people_table(session: SqlSession) -> str:
    """A small table with a primary key and one NULL cell"""
    await session.execute(
        "CREATE TABLE people (id INTEGER PRIMARY KEY, name VARCHAR(50), city VARCHAR(50))"
    )
    for statement in (
        "INSERT INTO people VALUES (1, 'Ada', 'London')",
        "INSERT INTO people VALUES (2, 'Grace', NULL)",
        "INSERT INTO people VALUES (3, 'Linus', 'Helsinki')",
        "INSERT INTO people VALUES (4, 'Barbara', '')",
        "INSERT INTO people VALUES (5, 'Edsger', 'Austin')",
    ):
        await session.execute(statement)
    return "people"


@pytest.fixture
async def manager(
    settings: SessionSettings, engine_factory: EngineRecorder
) -> AsyncGenerator[SessionManager, None]:
    manager = SessionManager(settings, engine_factory)
    try:
        yield manager
    finally:
        await manager.disconnect()


# ==================== MySQL Fixtures ====================


@pytest.fixture
def mysql_endpoint(mysql_database_url: Optional[str]) -> ServerEndpoint:
    """Live MySQL endpoint"""
    if not mysql_database_url:
        pytest.skip("MYSQL_TEST_DATABASE_URL not set in environment")
    return ServerEndpoint.from_url(mysql_database_url)


@pytest.fixture
async def mysql_manager() -> AsyncGenerator[SessionManager, None]:
    manager = SessionManager(SessionSettings())
    try:
        yield manager
    finally:
        await manager.disconnect()


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "mysql: MySQL-specific tests")
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring database"
    )
