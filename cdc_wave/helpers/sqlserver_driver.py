# pyright: reportMissingImports=false
"""pymssql access for metadata collection.

pymssql needs FreeTDS to build, so it is imported optionally: configuration
validation, ``plan`` against a fake supplier and the tests keep working
without it. Only :func:`open_connection` requires the driver.

Connection settings come from ``SQLSERVER_<ALIAS>_*`` variables::

    settings = ConnectionSettings.from_env("crm", "CRMDB")
    conn = open_connection(settings)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from cdc_wave.core.errors import ConfigurationError, MetadataError
from cdc_wave.helpers.helpers_env import alias_env_key, get_env_or_default, require_env

if TYPE_CHECKING:
    from cdc_wave.helpers.mssql_types import MSSQLConnection, MSSQLModule

_pymssql: MSSQLModule | None = None

try:
    import pymssql as _pymssql_raw

    _pymssql = cast("MSSQLModule", _pymssql_raw)
except ImportError:
    pass

DEFAULT_PORT = 1433
LOGIN_TIMEOUT_SECONDS = 30

_INSTALL_HINT = (
    "pymssql is not installed. Install it with: pip install pymssql\n"
    "Note: pymssql requires FreeTDS. On macOS: brew install freetds"
)


class SqlServerDriverMissingError(MetadataError):
    """Metadata collection requested without pymssql installed."""


@dataclass(frozen=True)
class ConnectionSettings:
    """Where and how to reach one alias' database."""

    alias: str
    host: str
    port: int
    database: str
    user: str
    password: str

    @classmethod
    def from_env(cls, alias: str, database: str) -> ConnectionSettings:
        """Read ``SQLSERVER_<ALIAS>_HOST/_USER/_PASSWORD/_PORT``.

        Raises:
            EnvironmentMissingError: If host, user or password is unset.
            ConfigurationError: If the port is not a number.
        """
        port_key = alias_env_key(alias, "port")
        raw_port = get_env_or_default(port_key, str(DEFAULT_PORT)).strip()
        if not raw_port.isdigit():
            raise ConfigurationError(f"{port_key} must be a port number, got {raw_port!r}", alias=alias)

        return cls(
            alias=alias,
            host=require_env(alias_env_key(alias, "host"), alias=alias),
            port=int(raw_port),
            database=database,
            user=require_env(alias_env_key(alias, "user"), alias=alias),
            password=require_env(alias_env_key(alias, "password"), alias=alias),
        )

    def __str__(self) -> str:
        return f"{self.host}:{self.port}/{self.database}"


def open_connection(settings: ConnectionSettings) -> MSSQLConnection:
    """Connect with ``settings``.

    Raises:
        SqlServerDriverMissingError: If pymssql is not installed.
        MetadataError: If the server refuses or cannot be reached.
    """
    if _pymssql is None:
        raise SqlServerDriverMissingError(_INSTALL_HINT, alias=settings.alias)

    try:
        return _pymssql.connect(
            server=settings.host,
            port=settings.port,
            database=settings.database,
            user=settings.user,
            password=settings.password,
            login_timeout=LOGIN_TIMEOUT_SECONDS,
        )
    except Exception as exc:
        raise MetadataError(
            f"could not connect to SQL Server at {settings}: {exc}",
            alias=settings.alias,
            db=settings.database,
        ) from exc
