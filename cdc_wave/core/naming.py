"""Connector, topic and job naming.

Names are pure functions of configuration values, so a rerun of the same
wave regenerates the same file names and the kustomization merge converges
instead of accumulating duplicates.

    source   source-debeziumsqlserver-<db>-<schema>-<group>[-<n>]-<mode>-<size>
    topics   source_debeziumsqlserver_<db>_<schema>_<group>[_<n>]_<mode>_<size>
    topic    <topic prefix>.<DB>.<SCHEMA>.<TABLE>
    sink     sink-jdbcsnowflake-<logical>-<db>-<table>-<mode>-<size>-v1
    job      lz-sql-ih-<db>-<table>-v1

``<n>`` (1-based) is only added when a schema yields several source groups.
"""

from __future__ import annotations

from dataclasses import dataclass

SINK_VERSION = "v1"


@dataclass(frozen=True)
class SourceNames:
    """Names of one source connector."""

    connector: str
    topic_prefix: str
    schema_history_topic: str

    @property
    def file_name(self) -> str:
        return f"{self.connector}.yaml"


@dataclass(frozen=True)
class TableNames:
    """Names derived for one table (sink connector and preparation job)."""

    topic: str
    sink_connector: str
    job: str
    sql_configmap: str
    table_upper: str
    ingest_table: str

    @property
    def sink_file_name(self) -> str:
        return f"{self.sink_connector}.yaml"

    @property
    def job_file_name(self) -> str:
        return f"{self.job}.yaml"


def group_slug(group: str, index: int, total: int) -> str:
    """Return ``group`` or ``group-<index+1>`` when there are several groups."""
    return group if total <= 1 else f"{group}-{index + 1}"


def source_names(
    database: str,
    schema: str,
    group: str,
    mode: str,
    size: str,
    *,
    index: int = 0,
    total: int = 1,
) -> SourceNames:
    parts = [database.lower(), schema.lower(), group_slug(group, index, total), mode, size]
    topic_prefix = "source_debeziumsqlserver_" + "_".join(p.replace("-", "_") for p in parts)
    return SourceNames(
        connector="source-debeziumsqlserver-" + "-".join(parts),
        topic_prefix=topic_prefix,
        schema_history_topic=f"sh_{topic_prefix}",
    )


def table_names(
    source: SourceNames,
    database: str,
    schema: str,
    table: str,
    logical_destination: str,
    mode: str,
    size: str,
) -> TableNames:
    db_lower = database.lower()
    table_lower = table.lower()
    table_upper = table.upper()
    return TableNames(
        topic=f"{source.topic_prefix}.{database.upper()}.{schema.upper()}.{table_upper}",
        sink_connector=(
            f"sink-jdbcsnowflake-{logical_destination}-{db_lower}-{table_lower}"
            + f"-{mode}-{size}-{SINK_VERSION}"
        ),
        job=f"lz-sql-ih-{db_lower}-{table_lower}-{SINK_VERSION}",
        sql_configmap=f"lz-sql-ih-{db_lower}-{table_lower}-sql",
        table_upper=table_upper,
        ingest_table=f"{table_upper}_INGEST",
    )
