"""Output directory layout for generated manifests.

Two conventions exist:

* ``MANAGED`` – the ArgoCD deployment tree committed to Git::

      <base>/strimzi_conectores/envs/<env>/source/<provider>/<db>_<schema>/
      <base>/strimzi_conectores/envs/<env>/sink/jobsnowflake/<logical>/<db>/
      <base>/jobs/snowflake_envs/<env>/<logical>/<db>/

  The three roots must already exist; the orchestrator validates them and
  never creates them.

* ``LOCAL`` – a flat ``out/`` folder for ad hoc output::

      <base>/source/<provider>/<db>_<schema>/
      <base>/sink/jobsnowflake/<logical>/<db>/
      <base>/jobs/snowflake_envs/<env>/<logical>/<db>/

  Roots are created on demand.

Every method here is a pure path computation; nothing touches the disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class LayoutMode(str, Enum):
    """Directory convention selector."""

    MANAGED = "managed"
    LOCAL = "local"


@dataclass(frozen=True)
class Layout:
    """Directory layout of one wave.

    Attributes:
        base_dir: ``apps/`` of the deployment tree, or the local ``out/`` folder.
        environment: Deployment environment (production, homolog, development).
        source_provider: Source connector provider slug (e.g. ``debeziumsqlserver``).
        logical_destination: Logical Snowflake destination (e.g. ``lz-sql-ih-prd``).
        mode: Managed or local layout.
    """

    base_dir: Path
    environment: str
    source_provider: str
    logical_destination: str
    mode: LayoutMode = LayoutMode.LOCAL

    @property
    def is_managed(self) -> bool:
        return self.mode is LayoutMode.MANAGED

    def _connectors_base(self) -> Path:
        if self.is_managed:
            return self.base_dir / "strimzi_conectores" / "envs" / self.environment
        return self.base_dir

    def source_root(self) -> Path:
        return self._connectors_base() / "source" / self.source_provider

    def sink_root(self) -> Path:
        return self._connectors_base() / "sink" / "jobsnowflake" / self.logical_destination

    def job_root(self) -> Path:
        # Same skeleton in both modes
        return self.base_dir / "jobs" / "snowflake_envs" / self.environment / self.logical_destination

    def roots(self) -> list[Path]:
        """Return the source, sink and job roots in that order."""
        return [self.source_root(), self.sink_root(), self.job_root()]

    def source_dir(self, database: str, schema: str) -> Path:
        return self.source_root() / f"{database.lower()}_{schema.lower()}"

    def sink_dir(self, database: str) -> Path:
        return self.sink_root() / database.lower()

    def job_dir(self, database: str) -> Path:
        return self.job_root() / database.lower()
