"""Column type mapping from the source engine to Snowflake.

Mapping files live in ``cdc_wave/adapters/`` and follow the naming
convention ``{source}-to-{sink}.mapping.yaml``::

    source_engine: mssql
    sink_engine: snowflake
    mappings:
        <source_type>: <target_type>
    fallback: VARCHAR

Example:
    >>> mapper = TypeMapper("mssql", "snowflake")
    >>> mapper.map_type("datetime2")
    'TIMESTAMP_NTZ'
    >>> mapper.map_column(ColumnInfo("price", "decimal", "NO", numeric_precision=18, numeric_scale=2))
    'NUMBER(18,2)'
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from cdc_wave.helpers.yaml_loader import load_yaml_file

# Adapters directory within the package
_ADAPTERS_DIR = Path(__file__).parent.parent / "adapters"

# Indentation of column lines inside the job's CREATE TABLE statements
_DDL_INDENT = " " * 6


@dataclass(frozen=True)
class ColumnInfo:
    """One source column as read from INFORMATION_SCHEMA.COLUMNS."""

    name: str
    data_type: str
    is_nullable: str
    char_max_length: int | None = None
    numeric_precision: int | None = None
    numeric_scale: int | None = None

    @property
    def nullable(self) -> bool:
        return self.is_nullable.strip().upper() == "YES"


class TypeMapper:
    """Type mapper between a source engine and a sink engine.

    Attributes:
        source_engine: Source database engine (e.g., 'mssql').
        sink_engine: Target database engine (e.g., 'snowflake').
        fallback: Default type when no mapping is found.
    """

    def __init__(self, source_engine: str = "mssql", sink_engine: str = "snowflake") -> None:
        """Load the mapping file for the engine pair.

        Raises:
            FileNotFoundError: If no mapping file exists for the engine pair.
        """
        self.source_engine = source_engine
        self.sink_engine = sink_engine
        self._mappings: dict[str, str] = {}
        self.fallback = "VARCHAR"
        self._load_mappings()

    def _load_mappings(self) -> None:
        mapping_file = _ADAPTERS_DIR / f"{self.source_engine}-to-{self.sink_engine}.mapping.yaml"
        if not mapping_file.exists():
            msg = (
                f"No type mapping file found for {self.source_engine}→{self.sink_engine}. "
                + f"Expected: {mapping_file.name} in {_ADAPTERS_DIR}"
            )
            raise FileNotFoundError(msg)

        data = cast(dict[str, Any], load_yaml_file(mapping_file))
        raw_mappings = data.get("mappings", {})
        if not isinstance(raw_mappings, dict):
            msg = f"Invalid mappings format in {mapping_file}"
            raise ValueError(msg)

        # Keys are matched case-insensitively
        self._mappings = {
            str(k).lower(): str(v) for k, v in cast(dict[str, Any], raw_mappings).items()
        }

        fallback = data.get("fallback")
        if isinstance(fallback, str):
            self.fallback = fallback

    def map_type(self, source_type: str) -> str:
        """Map a bare source type name, falling back to ``self.fallback``."""
        return self._mappings.get(source_type.strip().lower(), self.fallback)

    def map_column(self, column: ColumnInfo) -> str:
        """Map a column, adding precision/scale or length when known."""
        target = self.map_type(column.data_type)
        if target == "NUMBER":
            if column.numeric_precision is not None and column.numeric_scale is not None:
                return f"NUMBER({column.numeric_precision},{column.numeric_scale})"
            return target
        if target == "VARCHAR" and column.char_max_length and column.char_max_length > 0:
            return f"VARCHAR({column.char_max_length})"
        return target


def build_business_columns_ddl(columns: list[ColumnInfo], mapper: TypeMapper | None = None) -> str:
    """Render column definitions for the Snowflake job's CREATE TABLE blocks.

    Each column becomes ``"      NAME TYPE NULL|NOT NULL,\\n"``.
    """
    mapper = mapper or TypeMapper()
    lines: list[str] = []
    for column in columns:
        null_clause = "NULL" if column.nullable else "NOT NULL"
        lines.append(f"{_DDL_INDENT}{column.name} {mapper.map_column(column)} {null_clause},\n")
    return "".join(lines)
