"""Tests for SecureTunnel with paramiko's SSHClient replaced by a fake."""

import asyncio
import socket
import threading
from typing import Optional
from unittest.mock import MagicMock

import paramiko
import pytest

from pocketsql.core.tunnel import SecureTunnel, load_private_key
from pocketsql.errors import TunnelError
from pocketsql.models.config import TunnelSpec


class FakeSSH:
    """Stands in for paramiko.SSHClient; records every client it creates."""

    def __init__(self):
        self.clients: list[MagicMock] = []
        self.connect_error: Optional[BaseException] = None

    def __call__(self) -> MagicMock:
        client = MagicMock(name="SSHClient")
        transport = MagicMock(name="Transport")
        transport.is_active.return_value = True
        client.get_transport.return_value = transport
        if self.connect_error is not None:
            client.connect.side_effect = self.connect_error
        self.clients.append(client)
        return client


@pytest.fixture
def fake_ssh(monkeypatch) -> FakeSSH:
    fake = FakeSSH()
    monkeypatch.setattr(paramiko, "SSHClient", fake)
    return fake


@pytest.fixture
def spec() -> TunnelSpec:
    return TunnelSpec(
        host="bastion.example.com",
        username="ops",
        password="pw",
        remote_host="10.0.0.5",
        remote_port=3306,
    )


@pytest.fixture
def tunnel():
    tunnel = SecureTunnel(connect_timeout=2)
    try:
        yield tunnel
    finally:
        tunnel.close()


class TestOpen:
    """Opening and replacing tunnels."""

    async def test_open_returns_local_port(self, fake_ssh, spec, tunnel):
        port = await tunnel.open(spec)

        assert 0 < port < 65536
        assert tunnel.local_port == port
        assert tunnel.is_active() is True

        client = fake_ssh.clients[0]
        kwargs = client.connect.call_args.kwargs
        assert kwargs["hostname"] == "bastion.example.com"
        assert kwargs["port"] == 22
        assert kwargs["username"] == "ops"
        assert kwargs["password"] == "pw"
        assert kwargs["timeout"] == 2
        assert kwargs["look_for_keys"] is False

    async def test_open_twice_leaves_one_tunnel(self, fake_ssh, spec, tunnel):
        await tunnel.open(spec)
        second_port = await tunnel.open(spec)

        assert len(fake_ssh.clients) == 2
        fake_ssh.clients[0].close.assert_called_once()
        fake_ssh.clients[1].close.assert_not_called()
        assert tunnel.local_port == second_port
        assert tunnel.is_active() is True

    async def test_forwards_bytes_over_channel(self, fake_ssh, spec, tunnel):
        channel_end, remote_end = socket.socketpair()
        port = await tunnel.open(spec)
        transport = fake_ssh.clients[0].get_transport.return_value
        transport.open_channel.return_value = channel_end

        def echo_upper():
            data = remote_end.recv(1024)
            remote_end.sendall(data.upper())

        echo = threading.Thread(target=echo_upper, daemon=True)
        echo.start()

        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"ping")
        await writer.drain()
        reply = await asyncio.wait_for(reader.readexactly(4), timeout=5)
        writer.close()

        assert reply == b"PING"
        kind, destination, _ = transport.open_channel.call_args.args
        assert kind == "direct-tcpip"
        assert destination == ("10.0.0.5", 3306)
        remote_end.close()


class TestFailures:
    """Each failure raises TunnelError with a distinct reason and leaves nothing open."""

    async def test_bad_private_key_is_identity_error(self, fake_ssh, spec, tunnel):
        spec = spec.model_copy(update={"private_key": "not a key"})

        with pytest.raises(TunnelError) as exc_info:
            await tunnel.open(spec)

        assert exc_info.value.reason == "identity"
        assert fake_ssh.clients == []
        assert tunnel.is_active() is False

    async def test_auth_failure(self, fake_ssh, spec, tunnel):
        fake_ssh.connect_error = paramiko.AuthenticationException("Authentication failed.")

        with pytest.raises(TunnelError) as exc_info:
            await tunnel.open(spec)

        assert exc_info.value.reason == "auth"
        assert exc_info.value.user_message.startswith("SSH authentication failed")
        fake_ssh.clients[0].close.assert_called_once()
        assert tunnel.local_port is None

    async def test_timeout(self, fake_ssh, spec, tunnel):
        fake_ssh.connect_error = TimeoutError("timed out")

        with pytest.raises(TunnelError) as exc_info:
            await tunnel.open(spec)

        assert exc_info.value.reason == "timeout"

    async def test_refused(self, fake_ssh, spec, tunnel):
        fake_ssh.connect_error = ConnectionRefusedError("Connection refused")

        with pytest.raises(TunnelError) as exc_info:
            await tunnel.open(spec)

        assert exc_info.value.reason == "connect"
        assert "refused" in exc_info.value.user_message

    async def test_failed_reopen_leaves_nothing_open(self, fake_ssh, spec, tunnel):
        await tunnel.open(spec)
        fake_ssh.connect_error = paramiko.AuthenticationException("denied")

        with pytest.raises(TunnelError):
            await tunnel.open(spec)

        fake_ssh.clients[0].close.assert_called_once()
        assert tunnel.is_active() is False


class TestClose:
    def test_close_without_open(self):
        SecureTunnel().close()

    async def test_close_twice(self, fake_ssh, spec, tunnel):
        await tunnel.open(spec)
        tunnel.close()
        tunnel.close()
        fake_ssh.clients[0].close.assert_called_once()
        assert tunnel.is_active() is False
        assert tunnel.local_port is None

    async def test_close_swallows_errors(self, fake_ssh, spec, tunnel):
        await tunnel.open(spec)
        fake_ssh.clients[0].close.side_effect = OSError("already gone")

        tunnel.close()

        assert tunnel.local_port is None

    def test_inactive_transport(self, fake_ssh):
        tunnel = SecureTunnel()
        assert tunnel.is_active() is False


class TestLoadPrivateKey:
    def test_garbage(self):
        with pytest.raises(TunnelError) as exc_info:
            load_private_key("-----BEGIN NOTHING-----\nabc\n-----END NOTHING-----")
        assert exc_info.value.reason == "identity"
        assert exc_info.value.user_message.startswith("SSH private key error")
