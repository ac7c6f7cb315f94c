"""MySQL session management with SQLAlchemy."""

import asyncio
import contextlib
import logging
import ssl
from typing import Any, Callable, Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, CursorResult
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from pocketsql.core import builder
from pocketsql.errors import ConnectionFailedError, classify
from pocketsql.models.config import ServerEndpoint, SessionSettings

logger = logging.getLogger(__name__)

DRIVER_NAME = "mysql+aiomysql"

UNREACHABLE_MESSAGE = (
    "Cannot reach {host}:{port}. The server did not accept a TCP connection. "
    "Check that remote access is enabled for the database, that no firewall "
    "blocks the port, and that the address is correct. Hosted databases often "
    "require adding your IP address to an allow list in the hosting panel."
)

EngineFactory = Callable[..., AsyncEngine]


class SqlSession:
    """Owns at most one live connection to a MySQL/MariaDB server."""

    def __init__(
        self,
        settings: Optional[SessionSettings] = None,
        engine_factory: EngineFactory = create_async_engine,
    ):
        """
        Initialize the session.

        Args:
            settings: Timeouts; defaults apply when omitted
            engine_factory: Creates the async engine from a URL and options
        """
        self.settings = settings or SessionSettings()
        self._engine_factory = engine_factory
        self.engine: Optional[AsyncEngine] = None
        self._connection: Optional[AsyncConnection] = None
        self._endpoint: Optional[ServerEndpoint] = None

    async def connect(self, endpoint: ServerEndpoint) -> AsyncConnection:
        """
        Open a connection, replacing any existing one.

        A TCP probe runs first so an unreachable host fails fast with an
        actionable message. Selecting the default database and setting the
        server-side statement timeout are best-effort.

        Args:
            endpoint: Server to connect to

        Returns:
            The live connection

        Raises:
            ConnectionFailedError: If the server is unreachable or rejects the login
            PocketSQLError: Any other classified failure
        """
        await self.disconnect()
        await self._probe(endpoint)

        engine = self._engine_factory(
            self._build_url(endpoint),
            poolclass=NullPool,
            isolation_level="AUTOCOMMIT",
            echo=self.settings.echo_sql,
            connect_args=self._connect_args(endpoint),
        )
        try:
            conn = await engine.connect()
        except Exception as e:
            await engine.dispose()
            error = classify(e)
            logger.error(f"Connection to {endpoint.display_name} failed: {error}")
            raise error from e

        self.engine = engine
        self._connection = conn
        self._endpoint = endpoint
        logger.info(f"Connected to {endpoint.display_name}")

        await self._set_timeout(conn, self.settings.read_timeout)
        if endpoint.database:
            await self._use_database(conn, endpoint.database)
        return conn

    async def disconnect(self) -> None:
        """Close the connection and engine. Safe to call when not connected."""
        conn, engine, endpoint = self._connection, self.engine, self._endpoint
        self._connection = None
        self.engine = None
        self._endpoint = None
        try:
            if conn is not None:
                await conn.close()
        except Exception as e:
            logger.warning(f"Ignoring error while closing connection: {e}")
        finally:
            if engine is not None:
                try:
                    await engine.dispose()
                except Exception as e:
                    logger.warning(f"Ignoring error while disposing engine: {e}")
        if endpoint is not None:
            logger.info(f"Disconnected from {endpoint.display_name}")

    def get_connection(self) -> Optional[AsyncConnection]:
        """The live connection, or None."""
        if self._connection is None or self._connection.closed:
            return None
        return self._connection

    def require_connection(self) -> AsyncConnection:
        conn = self.get_connection()
        if conn is None:
            raise ConnectionFailedError(
                "No active connection",
                user_message="Not connected. Connect to a server first.",
            )
        return conn

    async def is_connected(self) -> bool:
        """Liveness check bounded by the validation timeout."""
        conn = self.get_connection()
        if conn is None:
            return False
        try:
            await asyncio.wait_for(
                conn.exec_driver_sql("SELECT 1"),
                timeout=self.settings.validation_timeout,
            )
            return True
        except Exception as e:
            logger.debug(f"Connection validation failed: {e}")
            return False

    async def test_connection(self) -> bool:
        """
        Run ``SELECT 1`` on the live connection.

        Raises:
            ConnectionFailedError: If not connected
            PocketSQLError: If the statement fails
        """
        result = await self.execute("SELECT 1")
        return result.first() is not None

    async def execute(
        self, statement: str, parameters: Optional[dict[str, Any]] = None
    ) -> CursorResult:
        """
        Execute one statement with the read timeout applied.

        Without parameters the text is passed to the driver untouched, so
        ``%`` and ``:`` in user SQL need no escaping. With parameters the
        text is compiled by ``sqlalchemy.text`` and ``:name`` binds apply.

        Raises:
            ConnectionFailedError: If not connected or the connection dropped
            DatabaseError: If the server rejects the statement
        """
        conn = self.require_connection()
        if parameters is None:
            coro = conn.exec_driver_sql(
                statement, execution_options={"no_parameters": True}
            )
        else:
            coro = conn.execute(text(statement), parameters)
        try:
            return await asyncio.wait_for(coro, timeout=self.settings.read_timeout)
        except Exception as e:
            raise classify(e) from e

    async def _probe(self, endpoint: ServerEndpoint) -> None:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(endpoint.host, endpoint.port),
                timeout=self.settings.probe_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Reachability probe to {endpoint.host}:{endpoint.port} failed: {e}")
            message = UNREACHABLE_MESSAGE.format(host=endpoint.host, port=endpoint.port)
            raise ConnectionFailedError(
                f"Server unreachable: {str(e) or type(e).__name__}",
                cause=e,
                user_message=message,
            ) from e
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    def _build_url(self, endpoint: ServerEndpoint) -> URL:
        return URL.create(
            DRIVER_NAME,
            username=endpoint.username,
            password=endpoint.password or None,
            host=endpoint.host,
            port=endpoint.port,
        )

    def _connect_args(self, endpoint: ServerEndpoint) -> dict[str, Any]:
        connect_args: dict[str, Any] = {
            "connect_timeout": self.settings.connect_timeout,
            "charset": "utf8mb4",
        }
        if endpoint.use_ssl:
            ctx = ssl.create_default_context()
            if endpoint.tunneled:
                # The certificate names the remote host, not the loopback
                # address; the chain is still verified.
                ctx.check_hostname = False
            connect_args["ssl"] = ctx
        return connect_args

    async def _use_database(self, conn: AsyncConnection, database: str) -> None:
        """Select the default database; failure leaves the session usable."""
        try:
            await conn.exec_driver_sql(
                builder.use_database(database),
                execution_options={"no_parameters": True},
            )
        except Exception as e:
            logger.warning(f"Could not select database {database}: {e}")

    async def _set_timeout(self, conn: AsyncConnection, timeout: float) -> None:
        """Set the server-side SELECT timeout where the dialect supports it."""
        if conn.dialect.name != "mysql":
            return
        timeout_ms = int(timeout * 1000)
        try:
            await conn.exec_driver_sql(f"SET SESSION max_execution_time = {timeout_ms}")
        except Exception as e:
            # MariaDB uses max_statement_time instead
            logger.debug(f"Could not set max_execution_time: {e}")

    @property
    def current_endpoint(self) -> Optional[ServerEndpoint]:
        return self._endpoint if self.get_connection() is not None else None

    @property
    def connected_database(self) -> Optional[str]:
        endpoint = self.current_endpoint
        return endpoint.database if endpoint else None

    async def __aenter__(self) -> "SqlSession":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.disconnect()
