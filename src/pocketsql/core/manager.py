"""Session lifecycle: optional SSH tunnel, then the SQL connection."""

import asyncio
import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import create_async_engine

from pocketsql.core.connection import EngineFactory, SqlSession
from pocketsql.core.repository import DatabaseRepository
from pocketsql.core.router import QueryRouter
from pocketsql.core.tunnel import SecureTunnel
from pocketsql.models.config import ServerEndpoint, SessionSettings, TunnelSpec

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Opens and tears down a complete session.

    Teardown order is always connection first, then tunnel. A connect that
    fails after the tunnel came up closes the tunnel before the error
    propagates.
    """

    def __init__(
        self,
        settings: Optional[SessionSettings] = None,
        engine_factory: EngineFactory = create_async_engine,
        tunnel: Optional[SecureTunnel] = None,
    ):
        self.settings = settings or SessionSettings()
        self.tunnel = tunnel or SecureTunnel(connect_timeout=self.settings.tunnel_timeout)
        self.session = SqlSession(self.settings, engine_factory)
        self.router = QueryRouter(self.session)
        self.repository = DatabaseRepository(
            self.session, self.router, page_size=self.settings.page_size
        )

    async def connect(
        self, endpoint: ServerEndpoint, tunnel: Optional[TunnelSpec] = None
    ) -> ServerEndpoint:
        """
        Open a session, through an SSH tunnel when ``tunnel`` is given.

        Args:
            endpoint: Database server and credentials
            tunnel: SSH tunnel settings, or None for a direct connection

        Returns:
            The endpoint actually connected to (loopback when tunneled)

        Raises:
            TunnelError: If the tunnel cannot be opened
            ConnectionFailedError: If the database cannot be reached
            PocketSQLError: Any other classified failure
        """
        await self.disconnect()
        self.repository.reset()

        target = endpoint
        if tunnel is not None:
            local_port = await self.tunnel.open(tunnel)
            target = endpoint.through_tunnel(local_port)

        try:
            await self.session.connect(target)
        except Exception:
            if tunnel is not None:
                logger.info("Closing SSH tunnel after failed connect")
                await self._close_tunnel()
            raise
        return target

    async def disconnect(self) -> None:
        """End the session. Safe to call when nothing is open."""
        await self.session.disconnect()
        await self._close_tunnel()

    async def _close_tunnel(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.tunnel.close)

    @property
    def is_tunneled(self) -> bool:
        return self.tunnel.is_active()

    async def status(self) -> dict[str, Any]:
        endpoint = self.session.current_endpoint
        return {
            "connected": await self.session.is_connected(),
            "endpoint": endpoint.display_name if endpoint else None,
            "database": self.session.connected_database,
            "tunnel_active": self.tunnel.is_active(),
            "tunnel_local_port": self.tunnel.local_port,
        }

    async def __aenter__(self) -> "SessionManager":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.disconnect()
