"""SSH local port forwarding with paramiko.

A ``SecureTunnel`` holds one SSH session and one listener on an ephemeral
loopback port. Each accepted local connection is relayed over a
``direct-tcpip`` channel to the remote database host.
"""

import asyncio
import io
import logging
import select
import socketserver
import threading
from typing import Optional

import paramiko

from pocketsql.errors import TunnelError
from pocketsql.models.config import LOOPBACK_HOST, TunnelSpec

logger = logging.getLogger(__name__)

KEY_TYPES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)

RELAY_BUFFER_SIZE = 16384


def load_private_key(key_text: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """
    Parse a private key from its text form.

    Raises:
        TunnelError: With reason ``identity`` if no supported key type parses
    """
    last_error: Optional[Exception] = None
    for key_class in KEY_TYPES:
        try:
            return key_class.from_private_key(io.StringIO(key_text), password=passphrase)
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise TunnelError(
        f"Private key could not be loaded: {last_error}",
        cause=last_error,
        reason="identity",
    )


class _ForwardServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(
        self,
        server_address: tuple[str, int],
        transport: paramiko.Transport,
        remote_host: str,
        remote_port: int,
    ):
        self.transport = transport
        self.remote_host = remote_host
        self.remote_port = remote_port
        super().__init__(server_address, _ForwardHandler)


class _ForwardHandler(socketserver.BaseRequestHandler):
    server: _ForwardServer

    def handle(self) -> None:
        try:
            channel = self.server.transport.open_channel(
                "direct-tcpip",
                (self.server.remote_host, self.server.remote_port),
                self.request.getpeername(),
            )
        except Exception as e:
            logger.warning(
                f"Forwarding request to {self.server.remote_host}:"
                f"{self.server.remote_port} failed: {e}"
            )
            return
        if channel is None:
            logger.warning("Forwarding request was rejected by the SSH server")
            return

        try:
            while True:
                readable, _, _ = select.select([self.request, channel], [], [])
                if self.request in readable:
                    data = self.request.recv(RELAY_BUFFER_SIZE)
                    if not data:
                        break
                    channel.sendall(data)
                if channel in readable:
                    data = channel.recv(RELAY_BUFFER_SIZE)
                    if not data:
                        break
                    self.request.sendall(data)
        except OSError as e:
            logger.debug(f"Relay closed: {e}")
        finally:
            channel.close()
            self.request.close()


class SecureTunnel:
    """One SSH session with one local port forward."""

    def __init__(self, connect_timeout: float = 10.0):
        self.connect_timeout = connect_timeout
        self._client: Optional[paramiko.SSHClient] = None
        self._server: Optional[_ForwardServer] = None
        self._thread: Optional[threading.Thread] = None
        self._local_port: Optional[int] = None

    async def open(self, spec: TunnelSpec) -> int:
        """
        Open the SSH session and start forwarding, replacing any open tunnel.

        Args:
            spec: SSH server, credentials and remote target

        Returns:
            Local loopback port that forwards to the remote target

        Raises:
            TunnelError: With ``reason`` identity, auth, timeout, connect or forwarding
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._open_blocking, spec)

    def _open_blocking(self, spec: TunnelSpec) -> int:
        self.close()

        pkey = None
        if spec.private_key:
            pkey = load_private_key(spec.private_key, spec.passphrase)

        client = paramiko.SSHClient()
        # Host keys are not verified; there is no known_hosts store to check against.
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=spec.host,
                port=spec.port,
                username=spec.username,
                password=spec.password,
                pkey=pkey,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                auth_timeout=self.connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise TunnelError(f"SSH authentication failed: {e}", cause=e, reason="auth") from e
        except TimeoutError as e:
            client.close()
            raise TunnelError(
                f"SSH connection timed out: {spec.host}:{spec.port}", cause=e, reason="timeout"
            ) from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise TunnelError(
                f"SSH connection to {spec.host}:{spec.port} failed: {e}", cause=e
            ) from e

        self._client = client
        try:
            server = _ForwardServer(
                (LOOPBACK_HOST, 0), client.get_transport(), spec.remote_host, spec.remote_port
            )
        except OSError as e:
            self.close()
            raise TunnelError(
                f"Port forwarding could not be set up: {e}", cause=e, reason="forwarding"
            ) from e

        port = server.server_address[1]
        thread = threading.Thread(
            target=server.serve_forever, name=f"ssh-forward-{port}", daemon=True
        )
        thread.start()
        self._server = server
        self._thread = thread
        self._local_port = port

        logger.info(
            f"SSH tunnel open: {LOOPBACK_HOST}:{port} -> "
            f"{spec.remote_host}:{spec.remote_port} via {spec.host}:{spec.port}"
        )
        return port

    def close(self) -> None:
        """Stop forwarding and end the SSH session. Safe to call repeatedly."""
        server, client, port = self._server, self._client, self._local_port
        try:
            if server is not None:
                server.shutdown()
                server.server_close()
        except Exception as e:
            logger.warning(f"Ignoring error while stopping port forward: {e}")
        finally:
            try:
                if client is not None:
                    client.close()
            except Exception as e:
                logger.warning(f"Ignoring error while closing SSH session: {e}")
            finally:
                self._server = None
                self._thread = None
                self._client = None
                self._local_port = None
        if port is not None:
            logger.info(f"SSH tunnel on local port {port} closed")

    def is_active(self) -> bool:
        if self._client is None or self._local_port is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    @property
    def local_port(self) -> Optional[int]:
        return self._local_port
