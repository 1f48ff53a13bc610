"""Protocols describing the part of pymssql the metadata supplier uses.

Only imported under ``TYPE_CHECKING``; pymssql ships no type information.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol


class MSSQLCursor(Protocol):
    """Cursor interface."""

    def execute(self, query: str, args: Sequence[object] | None = None) -> None:
        ...

    def fetchall(self) -> list[Any]:
        ...

    def close(self) -> None:
        ...


class MSSQLConnection(Protocol):
    """Connection interface."""

    def cursor(self, *, as_dict: bool = False) -> MSSQLCursor:
        ...

    def close(self) -> None:
        ...


class MSSQLModule(Protocol):
    """Module-level ``connect`` function."""

    def connect(
        self,
        *,
        server: str,
        port: int,
        database: str,
        user: str,
        password: str,
        login_timeout: int = 60,
    ) -> MSSQLConnection:
        ...
