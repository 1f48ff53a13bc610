"""Load and validate ``ingestion.yaml``.

Expected structure::

    groups:
      - name: grupo1
        maxTablesPerSource: 10        # optional, <= 0 / absent = unlimited
        maxRowsPerSource: 5000000     # optional, <= 0 / absent = unlimited
        sqlservers:
          - alias: crm
            database: CRMDB
            schema: dbo               # default schema (default: dbo)
            secretName: sqlserver-crm
            maxTablesPerSource: 5     # optional per-alias override
            tables:
              - name: Customer
              - name: Orders
                schema: sales         # optional per-table schema

Parsing is permissive and never raises for content problems; it only builds
the dataclasses. :func:`validate_ingestion_config` is a separate pass that
inspects everything and raises one :class:`ConfigurationError` listing all
problems.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from cdc_wave.core.errors import ConfigurationError, EnvironmentMissingError
from cdc_wave.helpers.helpers_env import REQUIRED_ALIAS_FIELDS, alias_env_key
from cdc_wave.helpers.yaml_loader import YAMLError, load_yaml_file

DEFAULT_SCHEMA = "dbo"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class TableEntry:
    """One configured table; ``schema`` empty means the alias default."""

    name: str
    schema: str = ""


@dataclass
class SqlServerEntry:
    """One source database reached through an alias.

    Attributes:
        alias: Logical server identifier (selects SQLSERVER_<ALIAS>_* variables).
        database: Database name.
        schema: Default schema for tables without one.
        secret_name: Kubernetes secret with the connector credentials.
        tables: Configured tables, in order.
        max_tables_per_source: Alias override of the group limit.
        max_rows_per_source: Alias override of the group limit.
    """

    alias: str
    database: str
    schema: str = DEFAULT_SCHEMA
    secret_name: str = ""
    tables: list[TableEntry] = field(default_factory=list[TableEntry])
    max_tables_per_source: object = None
    max_rows_per_source: object = None

    def table_schema(self, table: TableEntry) -> str:
        return table.schema.strip() or self.schema.strip() or DEFAULT_SCHEMA

    def effective_limits(self, group: WaveGroupConfig) -> tuple[int, int]:
        """Return ``(max_tables, max_rows)``, alias overrides first."""
        max_tables = _as_limit(self.max_tables_per_source)
        max_rows = _as_limit(self.max_rows_per_source)
        return (
            max_tables if max_tables is not None else _as_limit(group.max_tables_per_source) or 0,
            max_rows if max_rows is not None else _as_limit(group.max_rows_per_source) or 0,
        )


@dataclass
class WaveGroupConfig:
    """A named group of servers/tables deployed together as one wave."""

    name: str
    sqlservers: list[SqlServerEntry] = field(default_factory=list[SqlServerEntry])
    max_tables_per_source: object = None
    max_rows_per_source: object = None


@dataclass
class IngestionConfig:
    """Parsed ``ingestion.yaml``."""

    groups: list[WaveGroupConfig] = field(default_factory=list[WaveGroupConfig])
    source_path: Path | None = None

    def get_group(self, name: str) -> WaveGroupConfig:
        """Return the group called ``name``.

        Raises:
            ConfigurationError: If no such group exists.
        """
        for group in self.groups:
            if group.name == name:
                return group
        available = ", ".join(g.name for g in self.groups) or "none"
        raise ConfigurationError(
            f"group '{name}' not found in configuration (available: {available})",
            path=self.source_path,
        )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _as_limit(value: object) -> int | None:
    """Interpret a limit value; None when absent or not an integer."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _text(value: object) -> str:
    return str(value).strip() if value is not None else ""


def _parse_tables(raw: object) -> list[TableEntry]:
    if not isinstance(raw, list):
        return []
    tables: list[TableEntry] = []
    for item in cast(list[object], raw):
        if isinstance(item, dict):
            entry = cast(dict[str, object], item)
            tables.append(TableEntry(name=_text(entry.get("name")), schema=_text(entry.get("schema"))))
        else:
            # Shorthand: "- Customer"
            tables.append(TableEntry(name=_text(item)))
    return tables


def _parse_server(raw: dict[str, object]) -> SqlServerEntry:
    return SqlServerEntry(
        alias=_text(raw.get("alias")),
        database=_text(raw.get("database")),
        schema=_text(raw.get("schema")) or DEFAULT_SCHEMA,
        secret_name=_text(raw.get("secretName")),
        tables=_parse_tables(raw.get("tables")),
        max_tables_per_source=raw.get("maxTablesPerSource"),
        max_rows_per_source=raw.get("maxRowsPerSource"),
    )


def _parse_servers(raw: object) -> list[SqlServerEntry]:
    if not isinstance(raw, list):
        return []
    return [
        _parse_server(cast(dict[str, object], item))
        for item in cast(list[object], raw)
        if isinstance(item, dict)
    ]


def parse_ingestion_config(data: object, source_path: Path | None = None) -> IngestionConfig:
    """Build an :class:`IngestionConfig` from loaded YAML data.

    A document without ``groups`` but with a top-level ``sqlservers`` list is
    read as a single group named ``default``.
    """
    config = IngestionConfig(source_path=source_path)
    if not isinstance(data, dict):
        return config
    root = cast(dict[str, object], data)

    raw_groups = root.get("groups")
    if raw_groups is None and "sqlservers" in root:
        raw_groups = [{"name": "default", **root}]

    if isinstance(raw_groups, list):
        for item in cast(list[object], raw_groups):
            if not isinstance(item, dict):
                continue
            group = cast(dict[str, object], item)
            config.groups.append(
                WaveGroupConfig(
                    name=_text(group.get("name")),
                    sqlservers=_parse_servers(group.get("sqlservers")),
                    max_tables_per_source=group.get("maxTablesPerSource"),
                    max_rows_per_source=group.get("maxRowsPerSource"),
                )
            )
    return config


def load_ingestion_config(path: Path) -> IngestionConfig:
    """Load ``path`` and parse it (no validation).

    Raises:
        ConfigurationError: If the file is missing or is not valid YAML.
    """
    try:
        data = load_yaml_file(path)
    except FileNotFoundError as exc:
        raise ConfigurationError("configuration file not found", path=path) from exc
    except YAMLError as exc:
        raise ConfigurationError(f"invalid YAML: {exc}", path=path) from exc
    return parse_ingestion_config(data, source_path=path)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_limit(value: object, ctx: str, key: str, problems: list[str]) -> None:
    if value is not None and _as_limit(value) is None:
        problems.append(f"{ctx}: {key} must be an integer, got {value!r}")


def _validate_server(
    srv: SqlServerEntry,
    ctx: str,
    seen_aliases: set[str],
    seen_tables: set[str],
    problems: list[str],
) -> None:
    alias = srv.alias.strip()
    if not alias:
        problems.append(f"{ctx}: empty alias")
    elif alias.upper() in seen_aliases:
        problems.append(f"{ctx}: duplicate alias '{alias}'")
    else:
        seen_aliases.add(alias.upper())

    if not srv.database:
        problems.append(f"{ctx}: empty database")
    if not srv.secret_name:
        problems.append(f"{ctx}: empty secretName")
    if not srv.tables:
        problems.append(f"{ctx}: no tables configured")

    _check_limit(srv.max_tables_per_source, ctx, "maxTablesPerSource", problems)
    _check_limit(srv.max_rows_per_source, ctx, "maxRowsPerSource", problems)

    for j, table in enumerate(srv.tables):
        if not table.name:
            problems.append(f"{ctx}.tables[{j}]: empty name")
            continue
        schema = srv.table_schema(table)
        key = "|".join(part.upper() for part in (alias, srv.database, schema, table.name))
        if key in seen_tables:
            problems.append(
                f"{ctx}.tables[{j}]: duplicate table {schema}.{table.name} "
                + "in the same alias/database"
            )
        else:
            seen_tables.add(key)


def validate_ingestion_config(config: IngestionConfig) -> None:
    """Check the whole configuration and report every problem at once.

    Raises:
        ConfigurationError: If at least one problem was found.
    """
    problems: list[str] = []

    if not config.groups:
        problems.append("no groups defined")

    seen_groups: set[str] = set()
    for i, group in enumerate(config.groups):
        gctx = f"groups[{i}] (name={group.name})"
        if not group.name:
            problems.append(f"{gctx}: empty group name")
        elif group.name in seen_groups:
            problems.append(f"{gctx}: duplicate group name '{group.name}'")
        else:
            seen_groups.add(group.name)

        _check_limit(group.max_tables_per_source, gctx, "maxTablesPerSource", problems)
        _check_limit(group.max_rows_per_source, gctx, "maxRowsPerSource", problems)

        if not group.sqlservers:
            problems.append(f"{gctx}: no sqlservers defined")

        seen_aliases: set[str] = set()
        seen_tables: set[str] = set()
        for j, srv in enumerate(group.sqlservers):
            sctx = f"{gctx}.sqlservers[{j}] (alias={srv.alias})"
            _validate_server(srv, sctx, seen_aliases, seen_tables, problems)

    if problems:
        raise ConfigurationError("invalid ingestion configuration", problems, path=config.source_path)


def validate_env_for_aliases(group: WaveGroupConfig) -> None:
    """Check that every alias of ``group`` has its connection variables.

    Raises:
        EnvironmentMissingError: Listing every missing variable.
    """
    missing: list[str] = []
    for srv in group.sqlservers:
        if not srv.alias.strip():
            continue
        for field_name in REQUIRED_ALIAS_FIELDS:
            key = alias_env_key(srv.alias, field_name)
            if not os.getenv(key):
                missing.append(f"{key} (alias={srv.alias})")

    if missing:
        raise EnvironmentMissingError(missing, group=group.name)
