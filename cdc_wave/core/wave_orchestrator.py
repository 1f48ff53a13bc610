"""Plan and emit one ingestion wave.

For the selected group of ``ingestion.yaml`` the orchestrator processes every
SQL Server alias, one after the other::

    collect table metadata ─► split by schema ─► group_tables() per schema
        ─► per source group: 1 source connector + 1 sink and 1 job per table
        ─► merge file names into each directory's kustomization.yaml

and, in managed layout with Git synchronization configured, wraps the whole
write phase between ``GitSyncController.prepare()`` and
``GitSyncController.commit_and_push()``.

Grouping runs per schema rather than per alias: a source connector
directory is ``<db>_<schema>``, so one connector never spans schemas.

The first failure aborts the wave. Files already written stay on disk; a
rerun regenerates the same names and converges.

A dry run performs the same planning (metadata, grouping, naming, paths,
rendering) and logs every decision, but writes nothing and never touches
the repository. With synchronization configured it still plans under the
working copy, so planned paths equal the paths a real run writes.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from cdc_wave.core.errors import LayoutError, MetadataError, TemplateError, WaveError
from cdc_wave.core.git_sync import GitSyncController, SyncResult
from cdc_wave.core.grouping import SourceGroup, TableMetadata, group_tables
from cdc_wave.core.kustomization import KUSTOMIZATION_FILE, merge_kustomization
from cdc_wave.core.layout import Layout, LayoutMode
from cdc_wave.core.naming import SourceNames, source_names, table_names
from cdc_wave.core.renderer import (
    JOB_TEMPLATE,
    SINK_TEMPLATE,
    SOURCE_TEMPLATE,
    render,
    render_to_file,
)
from cdc_wave.helpers.helpers_env import WaveDefaults
from cdc_wave.helpers.helpers_logging import (
    format_context,
    print_dry_run,
    print_header,
    print_info,
    print_success,
    print_warning,
)
from cdc_wave.helpers.sqlserver_driver import ConnectionSettings
from cdc_wave.helpers.sqlserver_metadata import (
    SqlServerMetadataSupplier,
    TableMetadataSupplier,
    collect_table_metadata,
)
from cdc_wave.helpers.type_mapper import TypeMapper
from cdc_wave.validators.ingestion_config import (
    IngestionConfig,
    SqlServerEntry,
    WaveGroupConfig,
    validate_env_for_aliases,
    validate_ingestion_config,
)

SupplierFactory = Callable[[str, str], TableMetadataSupplier]

DEFAULT_MANAGED_BASE = Path("apps")
DEFAULT_LOCAL_BASE = Path("out")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WaveOptions:
    """Run-level switches of a wave.

    Attributes:
        group: Name of the group in ``ingestion.yaml``.
        mode: Connector mode slug used in names (online / batch).
        size: Connector size slug used in names (p / m / g).
        layout_mode: Managed (deployment tree) or local output.
        base_dir: ``apps/`` or ``out/`` directory; ignored when syncing,
            where the working copy's ``apps/`` is used.
        dry_run: Plan and log only.
        branch_suffix: Wave branch suffix; a timestamp when empty.
        max_tables_override: Replaces every configured maxTablesPerSource.
        max_rows_override: Replaces every configured maxRowsPerSource.
    """

    group: str
    mode: str = "online"
    size: str = "m"
    layout_mode: LayoutMode = LayoutMode.LOCAL
    base_dir: Path | None = None
    dry_run: bool = False
    branch_suffix: str | None = None
    max_tables_override: int | None = None
    max_rows_override: int | None = None


@dataclass
class WaveResult:
    """Outcome of a wave.

    Attributes:
        group: Wave group name.
        dry_run: Whether the run was a dry run.
        tables_processed: Number of tables planned.
        source_groups: Number of source connectors planned.
        written_files: Manifests created or changed.
        unchanged_files: Manifests regenerated with identical content.
        planned_files: Manifests a dry run would have written.
        kustomization_dirs: Directories whose kustomization.yaml was merged.
        sync: Git synchronization outcome, when it ran.
    """

    group: str
    dry_run: bool = False
    tables_processed: int = 0
    source_groups: int = 0
    written_files: list[Path] = field(default_factory=list[Path])
    unchanged_files: list[Path] = field(default_factory=list[Path])
    planned_files: list[Path] = field(default_factory=list[Path])
    kustomization_dirs: list[Path] = field(default_factory=list[Path])
    sync: SyncResult | None = None

    @property
    def changed_files(self) -> int:
        return len(self.written_files)


@dataclass
class _PendingResources:
    """File names to register in one directory's kustomization."""

    namespace: str
    names: list[str] = field(default_factory=list[str])


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class WaveOrchestrator:
    """Sequences metadata collection, grouping, emission and synchronization."""

    def __init__(
        self,
        config: IngestionConfig,
        options: WaveOptions,
        defaults: WaveDefaults,
        supplier_factory: SupplierFactory = SqlServerMetadataSupplier.from_alias,
        sync_controller: GitSyncController | None = None,
    ) -> None:
        self.config = config
        self.options = options
        self.defaults = defaults
        self.supplier_factory = supplier_factory
        self.sync_controller = sync_controller
        self.result = WaveResult(group=options.group, dry_run=options.dry_run)
        self._mapper = TypeMapper()

    # -- entry point --------------------------------------------------------

    def run(self) -> WaveResult:
        """Run the wave.

        Raises:
            ConfigurationError: Invalid configuration or unknown group.
            EnvironmentMissingError: Missing per-alias connection variables.
            MetadataError: Column / row-count collection failed.
            LayoutError: Managed root directory missing.
            SynchronizationError: A Git step failed.
        """
        validate_ingestion_config(self.config)
        group = self.config.get_group(self.options.group)
        validate_env_for_aliases(group)

        sync = self._active_sync()
        if sync is not None and not self.options.dry_run:
            sync.prepare(self.options.branch_suffix)

        layout = self._build_layout(sync)
        print_header(
            f"Wave '{group.name}' ({layout.mode.value} layout, base {layout.base_dir}"
            + (", DRY-RUN" if self.options.dry_run else "")
            + ")"
        )
        self._validate_roots(layout)

        for srv in group.sqlservers:
            self._process_alias(srv, group, layout)

        if sync is not None and not self.options.dry_run:
            self.result.sync = sync.commit_and_push(group.name)

        self._print_summary()
        return self.result

    # -- setup --------------------------------------------------------------

    def _active_sync(self) -> GitSyncController | None:
        """Controller whose working copy hosts the managed tree, if any.

        A dry run still gets it back for path planning but never calls
        ``prepare`` or ``commit_and_push`` on it.
        """
        if self.sync_controller is None:
            return None
        if self.options.layout_mode is not LayoutMode.MANAGED:
            print_info("GitOps: local layout selected, synchronization skipped")
            return None
        if self.options.dry_run:
            print_info(f"GitOps: dry run, planning under {self.sync_controller.local_path} without touching it")
        return self.sync_controller

    def _build_layout(self, sync: GitSyncController | None) -> Layout:
        if sync is not None:
            base_dir = sync.local_path / DEFAULT_MANAGED_BASE
        elif self.options.base_dir is not None:
            base_dir = self.options.base_dir
        elif self.options.layout_mode is LayoutMode.MANAGED:
            base_dir = DEFAULT_MANAGED_BASE
        else:
            base_dir = DEFAULT_LOCAL_BASE

        return Layout(
            base_dir=base_dir,
            environment=self.defaults.environment,
            source_provider=self.defaults.source_provider,
            logical_destination=self.defaults.snowflake_logical_db,
            mode=self.options.layout_mode,
        )

    def _validate_roots(self, layout: Layout) -> None:
        """Managed roots must pre-exist; they are never created here."""
        if not layout.is_managed:
            return
        for root in layout.roots():
            if root.is_dir():
                continue
            if self.options.dry_run:
                print_warning(f"Managed root directory missing (dry run continues): {root}")
                continue
            raise LayoutError(
                "required root directory does not exist in managed layout",
                path=root,
                env=layout.environment,
            )

    def _limits_for(self, srv: SqlServerEntry, group: WaveGroupConfig) -> tuple[int, int]:
        max_tables, max_rows = srv.effective_limits(group)
        if self.options.max_tables_override is not None:
            max_tables = self.options.max_tables_override
        if self.options.max_rows_override is not None:
            max_rows = self.options.max_rows_override
        return max_tables, max_rows

    # -- per alias ------------------------------------------------------------

    def _process_alias(self, srv: SqlServerEntry, group: WaveGroupConfig, layout: Layout) -> None:
        ctx = format_context(alias=srv.alias, db=srv.database.upper())
        max_tables, max_rows = self._limits_for(srv, group)
        print_info(
            f"{ctx} schemaDefault={srv.schema} tables={len(srv.tables)} "
            + f"maxTablesPerSource={max_tables} maxRowsPerSource={max_rows}"
        )

        settings = ConnectionSettings.from_env(srv.alias, srv.database)
        tables = self._collect_metadata(srv, with_row_count=max_rows > 0)

        pending: dict[Path, _PendingResources] = {}
        for schema, schema_tables in _split_by_schema(tables).items():
            groups = group_tables(schema_tables, max_tables, max_rows)
            for index, source_group in enumerate(groups):
                self._emit_group(
                    srv, group, schema, index, len(groups), source_group, layout, settings, pending,
                )

        self._merge_kustomizations(pending)

    def _collect_metadata(self, srv: SqlServerEntry, *, with_row_count: bool) -> list[TableMetadata]:
        supplier = self.supplier_factory(srv.alias, srv.database)
        try:
            collected: list[TableMetadata] = []
            for table in srv.tables:
                schema = srv.table_schema(table)
                try:
                    metadata = collect_table_metadata(
                        supplier, schema, table.name,
                        with_row_count=with_row_count, mapper=self._mapper,
                    )
                except WaveError:
                    raise
                except Exception as exc:
                    raise MetadataError(
                        f"metadata collection failed: {exc}",
                        alias=srv.alias, db=srv.database, schema=schema, table=table.name,
                    ) from exc
                collected.append(metadata)
                self.result.tables_processed += 1
            return collected
        finally:
            supplier.close()

    # -- emission ---------------------------------------------------------------

    def _emit_group(
        self,
        srv: SqlServerEntry,
        group: WaveGroupConfig,
        schema: str,
        index: int,
        total: int,
        source_group: SourceGroup,
        layout: Layout,
        settings: ConnectionSettings,
        pending: dict[Path, _PendingResources],
    ) -> None:
        opts = self.options
        names = source_names(srv.database, schema, group.name, opts.mode, opts.size, index=index, total=total)
        ctx = {"alias": srv.alias, "db": srv.database.upper(), "schema": schema, "group_index": index + 1}
        self.result.source_groups += 1

        print_info(
            f"{format_context(**ctx)} source={names.connector} tables={source_group.table_names} "
            + f"totalRows={source_group.total_rows}"
        )

        source_dir = layout.source_dir(srv.database, schema)
        source_content = self._render(SOURCE_TEMPLATE, self._source_variables(srv, names, source_group, settings), ctx)
        self._emit(source_content, source_dir / names.file_name, ctx)
        self._register(pending, source_dir, names.file_name, self.defaults.source_namespace)

        sink_dir = layout.sink_dir(srv.database)
        job_dir = layout.job_dir(srv.database)
        for table in source_group.tables:
            tn = table_names(
                names, srv.database, schema, table.name,
                self.defaults.snowflake_logical_db, opts.mode, opts.size,
            )
            table_ctx = {**ctx, "table": tn.table_upper}
            print_info(f"{format_context(**table_ctx)} sink={tn.sink_connector} job={tn.job}")

            sink_vars = {
                "NAME": tn.sink_connector,
                "CLUSTER_NAME": self.defaults.cluster_name,
                "TOPIC_NAME": tn.topic,
                "SNOWFLAKE_URL": self.defaults.snowflake_jdbc_url,
                "SNOWFLAKE_USER_SECRET": self.defaults.snowflake_user_secret,
                "SNOWFLAKE_PASSWORD_SECRET": self.defaults.snowflake_password_secret,
                "STAGE": tn.table_upper,
                "TABLE": tn.table_upper,
                "SCHEMA": srv.database.upper(),
                "SCHEMA_REGISTRY_URL": self.defaults.schema_registry_url,
            }
            self._emit(self._render(SINK_TEMPLATE, sink_vars, table_ctx), sink_dir / tn.sink_file_name, table_ctx)
            self._register(pending, sink_dir, tn.sink_file_name, self.defaults.sink_namespace)

            job_vars = {
                "JOB_NAME": tn.job,
                "CONNECTION_CONFIGMAP": self.defaults.snowflake_conn_configmap,
                "SQL_CONFIGMAP": tn.sql_configmap,
                "ROLE": self.defaults.snowflake_role,
                "DATABASE": self.defaults.snowflake_database,
                "SCHEMA": srv.database.upper(),
                "TABLE_INGEST": tn.ingest_table,
                "TABLE_FINAL": tn.table_upper,
                "STAGE_NAME": tn.table_upper,
                "BUSINESS_COLUMNS_DDL": table.column_ddl,
                "FINAL_COLUMNS_DDL": _without_trailing_comma(table.column_ddl),
            }
            self._emit(self._render(JOB_TEMPLATE, job_vars, table_ctx), job_dir / tn.job_file_name, table_ctx)
            self._register(pending, job_dir, tn.job_file_name, self.defaults.job_namespace)

    def _source_variables(
        self,
        srv: SqlServerEntry,
        names: SourceNames,
        source_group: SourceGroup,
        settings: ConnectionSettings,
    ) -> dict[str, object]:
        return {
            "NAME": names.connector,
            "CLUSTER_NAME": self.defaults.cluster_name,
            "DATABASE_HOST": settings.host,
            "DATABASE_PORT": settings.port,
            "DATABASE_SECRET": srv.secret_name,
            "DATABASE_NAME": srv.database.upper(),
            "TOPIC_PREFIX": names.topic_prefix,
            "TABLE_INCLUDE_LIST": ",".join(f"{t.schema}.{t.name}" for t in source_group.tables),
            "SCHEMA_HISTORY_BOOTSTRAP_SERVERS": self.defaults.schema_history_bootstrap,
            "SCHEMA_HISTORY_TOPIC": names.schema_history_topic,
            "SCHEMA_REGISTRY_URL": self.defaults.schema_registry_url,
        }

    @staticmethod
    def _render(template_id: str, variables: dict[str, object], ctx: dict[str, object]) -> str:
        try:
            return render(template_id, variables)
        except TemplateError as exc:
            raise TemplateError(exc.message, **ctx) from exc

    def _emit(self, content: str, path: Path, ctx: dict[str, object]) -> None:
        if self.options.dry_run:
            print_dry_run(f"would write {path}")
            self.result.planned_files.append(path)
            return

        try:
            written = render_to_file(content, path)
        except OSError as exc:
            raise WaveError(f"failed to write manifest: {exc}", path=path, **ctx) from exc

        if written:
            self.result.written_files.append(path)
        else:
            self.result.unchanged_files.append(path)

    @staticmethod
    def _register(pending: dict[Path, _PendingResources], directory: Path, file_name: str, namespace: str) -> None:
        pending.setdefault(directory, _PendingResources(namespace=namespace)).names.append(file_name)

    def _merge_kustomizations(self, pending: dict[Path, _PendingResources]) -> None:
        for directory, entry in pending.items():
            if self.options.dry_run:
                print_dry_run(f"would register {len(entry.names)} resource(s) in {directory / KUSTOMIZATION_FILE}")
                continue
            merge_kustomization(directory, entry.names, entry.namespace or None)
            self.result.kustomization_dirs.append(directory)

    # -- reporting --------------------------------------------------------------

    def _print_summary(self) -> None:
        r = self.result
        if r.dry_run:
            print_success(
                f"DRY-RUN finished: {r.tables_processed} table(s), {r.source_groups} source group(s), "
                + f"{len(r.planned_files)} file(s) planned, nothing written"
            )
            return

        print_success(
            f"Wave '{r.group}': {r.tables_processed} table(s), {r.source_groups} source group(s), "
            + f"{len(r.written_files)} file(s) written, {len(r.unchanged_files)} unchanged"
        )
        if r.sync is not None:
            print_success(f"GitOps: {r.sync.state.value} on {r.sync.branch} ({r.sync.commits} commit(s))")


def _split_by_schema(tables: list[TableMetadata]) -> dict[str, list[TableMetadata]]:
    """Bucket tables by schema, keeping first-seen schema and table order."""
    buckets: dict[str, list[TableMetadata]] = {}
    for table in tables:
        buckets.setdefault(table.schema, []).append(table)
    return buckets


def _without_trailing_comma(ddl: str) -> str:
    """Drop the comma after the last column (final table has no extra columns)."""
    stripped = ddl.rstrip()
    if stripped.endswith(","):
        stripped = stripped[:-1]
    return stripped + "\n" if stripped else ""


def run_wave(
    config: IngestionConfig,
    options: WaveOptions,
    defaults: WaveDefaults,
    supplier_factory: SupplierFactory = SqlServerMetadataSupplier.from_alias,
    sync_controller: GitSyncController | None = None,
) -> WaveResult:
    """Run one wave; see :class:`WaveOrchestrator`."""
    return WaveOrchestrator(config, options, defaults, supplier_factory, sync_controller).run()
