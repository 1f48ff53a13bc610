"""SQL Server table metadata supplier.

Reads column definitions and approximate row counts for configured tables.
One supplier wraps one connection to one alias/database; the orchestrator
opens it per alias and closes it when the alias is done.

Connection variables per alias::

    SQLSERVER_<ALIAS>_HOST      (required)
    SQLSERVER_<ALIAS>_USER      (required)
    SQLSERVER_<ALIAS>_PASSWORD  (required)
    SQLSERVER_<ALIAS>_PORT      (default: 1433)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, cast

from cdc_wave.core.errors import MetadataError
from cdc_wave.core.grouping import TableMetadata
from cdc_wave.helpers.helpers_logging import format_context, print_info
from cdc_wave.helpers.sqlserver_driver import ConnectionSettings, open_connection
from cdc_wave.helpers.type_mapper import ColumnInfo, TypeMapper, build_business_columns_ddl

if TYPE_CHECKING:
    from cdc_wave.helpers.mssql_types import MSSQLConnection

_COLUMNS_SQL = """
SELECT
  COLUMN_NAME,
  DATA_TYPE,
  IS_NULLABLE,
  CHARACTER_MAXIMUM_LENGTH,
  NUMERIC_PRECISION,
  NUMERIC_SCALE
FROM INFORMATION_SCHEMA.COLUMNS
WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
ORDER BY ORDINAL_POSITION
"""

# Partition stats avoid a full COUNT(*) scan on large tables
_ROW_COUNT_SQL = """
SELECT
  SUM(p.row_count) AS row_count
FROM sys.dm_db_partition_stats AS p
JOIN sys.tables t   ON p.object_id = t.object_id
JOIN sys.schemas s  ON t.schema_id = s.schema_id
WHERE p.index_id IN (0,1)
  AND s.name = %s
  AND t.name = %s
"""


class TableMetadataSupplier(Protocol):
    """Source of column and row-count information for one database."""

    def fetch_columns(self, schema: str, table: str) -> list[ColumnInfo]:
        ...

    def fetch_row_count(self, schema: str, table: str) -> int:
        ...

    def close(self) -> None:
        ...


class SqlServerMetadataSupplier:
    """Metadata supplier over a pymssql connection."""

    def __init__(self, connection: MSSQLConnection, alias: str = "", database: str = "") -> None:
        self._conn = connection
        self.alias = alias
        self.database = database

    @classmethod
    def from_alias(cls, alias: str, database: str) -> SqlServerMetadataSupplier:
        """Connect using the ``SQLSERVER_<ALIAS>_*`` variables.

        Raises:
            EnvironmentMissingError: If host, user or password is unset.
            MetadataError: If pymssql is missing or the connection fails.
        """
        settings = ConnectionSettings.from_env(alias, database)
        print_info(f"{format_context(alias=alias)} connecting to {settings}")
        return cls(open_connection(settings), alias=alias, database=database)

    def _query(self, sql: str, args: Sequence[object]) -> list[dict[str, Any]]:
        cursor = self._conn.cursor(as_dict=True)
        try:
            cursor.execute(sql, tuple(args))
            return cast(list[dict[str, Any]], cursor.fetchall())
        finally:
            cursor.close()

    def fetch_columns(self, schema: str, table: str) -> list[ColumnInfo]:
        """Return the table's columns in ordinal order.

        Raises:
            MetadataError: If the query fails or the table has no columns.
        """
        ctx = {"alias": self.alias, "db": self.database, "schema": schema, "table": table}
        try:
            rows = self._query(_COLUMNS_SQL, (schema, table))
        except Exception as exc:
            raise MetadataError(f"failed to read columns: {exc}", **ctx) from exc

        if not rows:
            raise MetadataError("no columns found (does the table exist?)", **ctx)

        return [
            ColumnInfo(
                name=str(row["COLUMN_NAME"]),
                data_type=str(row["DATA_TYPE"]),
                is_nullable=str(row["IS_NULLABLE"]),
                char_max_length=row.get("CHARACTER_MAXIMUM_LENGTH"),
                numeric_precision=row.get("NUMERIC_PRECISION"),
                numeric_scale=row.get("NUMERIC_SCALE"),
            )
            for row in rows
        ]

    def fetch_row_count(self, schema: str, table: str) -> int:
        """Return the approximate row count (0 when SQL Server reports NULL).

        Raises:
            MetadataError: If the query fails.
        """
        try:
            rows = self._query(_ROW_COUNT_SQL, (schema, table))
        except Exception as exc:
            raise MetadataError(
                f"failed to read row count: {exc}",
                alias=self.alias, db=self.database, schema=schema, table=table,
            ) from exc

        if not rows or rows[0].get("row_count") is None:
            return 0
        return int(rows[0]["row_count"])

    def close(self) -> None:
        self._conn.close()


def collect_table_metadata(
    supplier: TableMetadataSupplier,
    schema: str,
    table: str,
    *,
    with_row_count: bool,
    mapper: TypeMapper | None = None,
) -> TableMetadata:
    """Collect :class:`TableMetadata` for one table.

    Row counts are only queried when ``with_row_count`` is set, because the
    grouping only needs them under a row limit.
    """
    columns = supplier.fetch_columns(schema, table)
    row_count = supplier.fetch_row_count(schema, table) if with_row_count else 0
    return TableMetadata(
        name=table,
        schema=schema,
        row_count=row_count,
        column_ddl=build_business_columns_ddl(columns, mapper),
    )
