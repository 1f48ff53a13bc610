"""Partition tables into bounded source-connector groups.

Each group becomes one Debezium source connector, so the grouping bounds how
many tables (and how many rows, as a proxy for snapshot cost) a single
connector has to carry.

Packing is a first-fit-decreasing heuristic:

    1. Stable sort by ``row_count`` descending (ties keep input order).
    2. For each table, scan groups in creation order and place it in the
       first one that still accepts it under both limits.
    3. If none accepts it, open a new group.

A table whose own row count exceeds ``max_rows`` cannot fit anywhere, so it
is placed alone in a new group and a warning is printed. Such a group is the
only case where ``total_rows > max_rows``.

Example:
    >>> tables = [TableMetadata("A", "dbo", 1000), TableMetadata("B", "dbo", 500),
    ...           TableMetadata("C", "dbo", 500), TableMetadata("D", "dbo", 10)]
    >>> [g.table_names for g in group_tables(tables, max_tables=2, max_rows=1100)]
    [['A', 'D'], ['B', 'C']]
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from cdc_wave.helpers.helpers_logging import print_warning


@dataclass(frozen=True)
class TableMetadata:
    """Collected metadata for one source table.

    Attributes:
        name: Table name as configured.
        schema: Source schema.
        row_count: Row count; 0 when row counts were not collected.
        column_ddl: Rendered Snowflake column definitions for the job template.
    """

    name: str
    schema: str
    row_count: int = 0
    column_ddl: str = ""

    def __post_init__(self) -> None:
        if self.row_count < 0:
            msg = f"row_count must be non-negative, got {self.row_count} for {self.schema}.{self.name}"
            raise ValueError(msg)


@dataclass
class SourceGroup:
    """Ordered set of tables handled by one source connector."""

    tables: list[TableMetadata] = field(default_factory=list[TableMetadata])
    total_rows: int = 0

    def add(self, table: TableMetadata) -> None:
        self.tables.append(table)
        self.total_rows += table.row_count

    def accepts(self, table: TableMetadata, max_tables: int, max_rows: int) -> bool:
        """Check whether ``table`` fits in this group under both limits."""
        if max_tables > 0 and len(self.tables) >= max_tables:
            return False
        return max_rows <= 0 or self.total_rows + table.row_count <= max_rows

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def __len__(self) -> int:
        return len(self.tables)


def group_tables(
    tables: Sequence[TableMetadata],
    max_tables: int = 0,
    max_rows: int = 0,
) -> list[SourceGroup]:
    """Partition ``tables`` into source groups.

    Args:
        tables: Tables in configuration order.
        max_tables: Maximum tables per group; ``<= 0`` means unlimited.
        max_rows: Maximum aggregate row count per group; ``<= 0`` means unlimited.

    Returns:
        Groups in creation order. Every input table appears in exactly one group.
    """
    if not tables:
        return []

    if max_tables <= 0 and max_rows <= 0:
        single = SourceGroup()
        for table in tables:
            single.add(table)
        return [single]

    # sorted() is stable, so equal row counts keep their input order
    ordered = sorted(tables, key=lambda t: t.row_count, reverse=True)

    groups: list[SourceGroup] = []
    for table in ordered:
        target = _first_fit(groups, table, max_tables, max_rows)
        if target is None:
            if max_rows > 0 and table.row_count > max_rows:
                print_warning(
                    f"Table {table.schema}.{table.name} has {table.row_count} rows, "
                    + f"above maxRowsPerSource={max_rows}; placing it alone in "
                    + f"source group {len(groups) + 1}"
                )
            groups.append(SourceGroup())
            target = len(groups) - 1
        groups[target].add(table)

    return groups


def _first_fit(
    groups: list[SourceGroup],
    table: TableMetadata,
    max_tables: int,
    max_rows: int,
) -> int | None:
    """Return the index of the first group accepting ``table``, if any."""
    for index, group in enumerate(groups):
        if group.accepts(table, max_tables, max_rows):
            return index
    return None
