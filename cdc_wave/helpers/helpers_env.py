"""Environment variable access and process-wide defaults.

All connector-level constants (cluster name, Snowflake endpoints, schema
history brokers, ...) come from the environment with a fallback. They are
resolved once per run into an immutable :class:`WaveDefaults` value that
the orchestrator consumes; nothing else reads them from ``os.environ``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from cdc_wave.core.errors import EnvironmentMissingError

# ============================================================================
# Env access
# ============================================================================


def get_env_or_default(key: str, default: str) -> str:
    """Return ``$key`` or ``default`` when unset or empty."""
    value = os.getenv(key)
    return value if value else default


def require_env(key: str, **context: object) -> str:
    """Return ``$key`` or raise when unset or empty.

    Raises:
        EnvironmentMissingError: If the variable has no value.
    """
    value = os.getenv(key)
    if not value:
        raise EnvironmentMissingError([key], **context)
    return value


# Per-alias connection variables that must be set
REQUIRED_ALIAS_FIELDS: tuple[str, ...] = ("host", "user", "password")


def alias_env_key(alias: str, field: str) -> str:
    """Name of a per-alias SQL Server variable.

    Example:
        >>> alias_env_key("crm", "host")
        'SQLSERVER_CRM_HOST'
    """
    return f"SQLSERVER_{alias.strip().upper()}_{field.upper()}"


def load_env_file(env_file: Path | None = None) -> bool:
    """Load a ``.env`` file into the process environment.

    Variables already set in the environment win over the file.

    Returns:
        True if a file was found and loaded.
    """
    if env_file is not None:
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


# ============================================================================
# Wave defaults
# ============================================================================


@dataclass(frozen=True)
class WaveDefaults:
    """Connector constants shared by every manifest of a run.

    Attributes:
        cluster_name: Strimzi Kafka Connect cluster label.
        environment: Deployment environment used by the managed layout.
        source_provider: Source connector provider directory.
        schema_history_bootstrap: Kafka brokers for Debezium schema history.
        schema_registry_url: Avro schema registry URL.
        snowflake_jdbc_url: JDBC URL of the Snowflake sink.
        snowflake_user_secret: Secret holding the Snowflake user.
        snowflake_password_secret: Secret holding the Snowflake password.
        snowflake_logical_db: Logical destination slug (layout and sink names).
        snowflake_database: Snowflake database the jobs prepare.
        snowflake_role: Role used by preparation jobs.
        snowflake_conn_configmap: ConfigMap with the snowsql connection.
        source_namespace: Namespace stamped on source kustomizations.
        sink_namespace: Namespace stamped on sink kustomizations.
        job_namespace: Namespace stamped on job kustomizations.
    """

    cluster_name: str = "inthub-prd"
    environment: str = "production"
    source_provider: str = "debeziumsqlserver"
    schema_history_bootstrap: str = "kafka01:9092,kafka02:9092,kafka03:9092"
    schema_registry_url: str = "http://schema-registry-ih.kafka-admin:8081"
    snowflake_jdbc_url: str = (
        "jdbc:snowflake://account.snowflakecomputing.com"
        "?db=LZ_SQL_IH_PRD&warehouse=WH_IH_PROD&CLIENT_SESSION_KEEP_ALIVE=TRUE&tracing=WARNING"
    )
    snowflake_user_secret: str = "snowflake-creds"
    snowflake_password_secret: str = "snowflake-creds"
    snowflake_logical_db: str = "lz-sql-ih-prd"
    snowflake_database: str = "LZ_SQL_IH"
    snowflake_role: str = "SNFLK_INTEGRATION_HUB_ROLE"
    snowflake_conn_configmap: str = "lz-sql-ih-connection"
    source_namespace: str = ""
    sink_namespace: str = ""
    job_namespace: str = ""


# Field name -> environment variable
_DEFAULTS_ENV: dict[str, str] = {
    "cluster_name": "CONNECT_CLUSTER_NAME",
    "environment": "DEPLOY_ENV",
    "source_provider": "SOURCE_PROVIDER",
    "schema_history_bootstrap": "SCHEMA_HISTORY_BOOTSTRAP_SERVERS",
    "schema_registry_url": "SCHEMA_REGISTRY_URL",
    "snowflake_jdbc_url": "SNOWFLAKE_JDBC_URL",
    "snowflake_user_secret": "SNOWFLAKE_USER_SECRET",
    "snowflake_password_secret": "SNOWFLAKE_PASSWORD_SECRET",
    "snowflake_logical_db": "SNOWFLAKE_DB_LOGICAL",
    "snowflake_database": "SNOWFLAKE_DATABASE",
    "snowflake_role": "SNOWFLAKE_ROLE",
    "snowflake_conn_configmap": "SNOWFLAKE_CONN_CONFIGMAP",
    "source_namespace": "KUSTOMIZE_SOURCE_NAMESPACE",
    "sink_namespace": "KUSTOMIZE_SINK_NAMESPACE",
    "job_namespace": "KUSTOMIZE_JOB_NAMESPACE",
}


def resolve_wave_defaults(**overrides: str | None) -> WaveDefaults:
    """Resolve :class:`WaveDefaults` from the environment.

    Args:
        **overrides: Field values that win over the environment (None is ignored).

    Returns:
        The resolved defaults.
    """
    base = WaveDefaults()
    values: dict[str, str] = {}
    for field_name, env_key in _DEFAULTS_ENV.items():
        override = overrides.get(field_name)
        if override:
            values[field_name] = override
        else:
            values[field_name] = get_env_or_default(env_key, getattr(base, field_name))
    return WaveDefaults(**values)
