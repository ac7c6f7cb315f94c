"""Connection and session configuration models."""

import logging
import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.engine.url import make_url

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"

# Dialect spellings accepted in connection URLs; all of them speak the MySQL
# wire protocol.
DIALECT_VARIATIONS = {"mysql", "mariadb", "maria"}

TRUTHY = {"1", "true", "yes", "on", "require", "required"}


class ServerEndpoint(BaseModel):
    """Where and how to reach the MySQL/MariaDB server."""

    host: str = Field(..., min_length=1, description="Server hostname or IP address")
    port: int = Field(default=3306, ge=1, le=65535, description="Server port")
    username: str = Field(..., description="Login user")
    password: str = Field(default="", repr=False, description="Login password")
    database: Optional[str] = Field(
        default=None, description="Default database selected after connecting"
    )
    use_ssl: bool = Field(default=False, description="Require a TLS connection")
    tunneled: bool = Field(
        default=False, description="Addressed at a local SSH forwarding port"
    )

    @field_validator("host")
    @classmethod
    def strip_host(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("host must not be blank")
        return v

    @field_validator("database")
    @classmethod
    def blank_database_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @classmethod
    def from_url(cls, url: str) -> "ServerEndpoint":
        """
        Build an endpoint from a connection URL.

        Accepts ``mysql://``, ``mariadb://`` and ``mysql+driver://`` forms as
        well as JDBC URLs (the ``jdbc:`` prefix is stripped). ``ssl``,
        ``useSSL`` or ``ssl_mode`` query parameters switch on TLS.

        Args:
            url: Connection URL

        Returns:
            Parsed endpoint

        Raises:
            ValueError: If the URL is malformed or not a MySQL-family URL
        """
        if url.lower().startswith("jdbc:"):
            url = url[5:]
            logger.info("Converted JDBC URL to Python format (removed 'jdbc:' prefix)")

        try:
            parsed = make_url(url)
        except Exception as e:
            raise ValueError(f"Invalid database URL: {e}")

        dialect = parsed.drivername.split("+")[0].lower()
        if dialect not in DIALECT_VARIATIONS:
            raise ValueError(
                f"Unsupported database dialect: '{dialect}'. "
                f"Supported: {', '.join(sorted(DIALECT_VARIATIONS))}"
            )
        if not parsed.host:
            raise ValueError("Invalid database URL: missing host")

        query = {k.lower(): v for k, v in parsed.query.items()}
        ssl_value = query.get("ssl") or query.get("usessl") or query.get("ssl_mode")
        if isinstance(ssl_value, tuple):
            ssl_value = ssl_value[0]

        return cls(
            host=parsed.host,
            port=parsed.port or 3306,
            username=parsed.username or "",
            password=parsed.password or "",
            database=parsed.database,
            use_ssl=str(ssl_value).lower() in TRUTHY if ssl_value else False,
        )

    def through_tunnel(self, local_port: int) -> "ServerEndpoint":
        """Same credentials, addressed at a local forwarding port."""
        return self.model_copy(
            update={"host": LOOPBACK_HOST, "port": local_port, "tunneled": True}
        )

    @property
    def display_name(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


class TunnelSpec(BaseModel):
    """SSH bastion and the remote target reached through it."""

    host: str = Field(..., min_length=1, description="SSH server hostname")
    port: int = Field(default=22, ge=1, le=65535, description="SSH server port")
    username: str = Field(..., min_length=1, description="SSH user")
    password: Optional[str] = Field(default=None, repr=False, description="SSH password")
    private_key: Optional[str] = Field(
        default=None, repr=False, description="PEM/OpenSSH private key text"
    )
    passphrase: Optional[str] = Field(
        default=None, repr=False, description="Passphrase for the private key"
    )
    remote_host: str = Field(
        ..., min_length=1, description="Database host as seen from the SSH server"
    )
    remote_port: int = Field(
        default=3306, ge=1, le=65535, description="Database port on the remote side"
    )

    @field_validator("password", "private_key", "passphrase")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v

    @classmethod
    def from_env(cls, endpoint: ServerEndpoint) -> Optional["TunnelSpec"]:
        """
        Read SSH settings from the environment.

        Returns None when ``SSH_HOST`` is not set. The remote target is the
        endpoint's host and port, resolved on the SSH server side.
        """
        host = os.getenv("SSH_HOST")
        if not host:
            return None

        private_key = None
        key_file = os.getenv("SSH_PRIVATE_KEY_FILE")
        if key_file:
            with open(os.path.expanduser(key_file), encoding="utf-8") as f:
                private_key = f.read()

        return cls(
            host=host,
            port=int(os.getenv("SSH_PORT", "22")),
            username=os.getenv("SSH_USER", ""),
            password=os.getenv("SSH_PASSWORD"),
            private_key=private_key,
            passphrase=os.getenv("SSH_KEY_PASSPHRASE"),
            remote_host=endpoint.host,
            remote_port=endpoint.port,
        )


class SessionSettings(BaseModel):
    """Timeouts and paging limits for a session."""

    tunnel_timeout: float = Field(
        default=10.0, gt=0, description="SSH connect and auth timeout in seconds"
    )
    probe_timeout: float = Field(
        default=5.0, gt=0, description="TCP reachability probe timeout in seconds"
    )
    connect_timeout: int = Field(
        default=10, ge=1, le=300, description="Driver connect timeout in seconds"
    )
    read_timeout: float = Field(
        default=30.0, gt=0, description="Per-statement timeout in seconds"
    )
    validation_timeout: float = Field(
        default=5.0, gt=0, description="Liveness check timeout in seconds"
    )
    page_size: int = Field(
        default=200, ge=1, le=10000, description="Rows fetched per page"
    )
    echo_sql: bool = Field(default=False, description="Echo SQL statements to the log")

    @classmethod
    def from_env(cls) -> "SessionSettings":
        """Settings with ``POCKETSQL_*`` environment overrides applied."""
        overrides = {}
        for field_name in cls.model_fields:
            value = os.getenv(f"POCKETSQL_{field_name.upper()}")
            if value is not None:
                overrides[field_name] = value
        return cls(**overrides)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "tunnel_timeout": 10,
                    "probe_timeout": 5,
                    "connect_timeout": 10,
                    "read_timeout": 30,
                    "page_size": 200,
                }
            ]
        }
    }
