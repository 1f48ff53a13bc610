"""Unit tests for cdc_wave.validators.ingestion_config.

Covers:
- Parsing groups, aliases, tables (object and shorthand forms)
- Legacy single-group documents
- Limit resolution (alias override, group default, unlimited)
- Whole-document validation reporting every problem
- Per-alias environment checks
"""

from __future__ import annotations

from pathlib import Path

import pytest

from cdc_wave.core.errors import ConfigurationError, EnvironmentMissingError
from cdc_wave.validators.ingestion_config import (
    IngestionConfig,
    SqlServerEntry,
    TableEntry,
    WaveGroupConfig,
    load_ingestion_config,
    parse_ingestion_config,
    validate_env_for_aliases,
    validate_ingestion_config,
)

_VALID_YAML = """\
# wave definitions
groups:
  - name: wave1
    maxTablesPerSource: 10
    maxRowsPerSource: 1000000
    sqlservers:
      - alias: crm
        database: CRMDB
        secretName: sqlserver-crm
        maxTablesPerSource: 3
        tables:
          - name: Customer
          - name: Orders
            schema: sales
          - Invoice
      - alias: erp
        database: ERPDB
        schema: fin
        secretName: sqlserver-erp
        tables:
          - name: Ledger
"""


def _server(alias: str = "crm", **overrides: object) -> SqlServerEntry:
    values: dict[str, object] = {
        "alias": alias,
        "database": "CRMDB",
        "secret_name": "sqlserver-crm",
        "tables": [TableEntry("Customer")],
    }
    values.update(overrides)
    return SqlServerEntry(**values)  # type: ignore[arg-type]


def _config(*groups: WaveGroupConfig) -> IngestionConfig:
    return IngestionConfig(groups=list(groups))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestLoadIngestionConfig:
    """Loading from disk."""

    def test_parses_full_document(self, tmp_path: Path) -> None:
        path = tmp_path / "ingestion.yaml"
        path.write_text(_VALID_YAML, encoding="utf-8")

        config = load_ingestion_config(path)

        assert config.source_path == path
        group = config.get_group("wave1")
        crm, erp = group.sqlservers
        assert crm.alias == "crm"
        assert crm.schema == "dbo"
        assert crm.secret_name == "sqlserver-crm"
        assert [t.name for t in crm.tables] == ["Customer", "Orders", "Invoice"]
        assert [crm.table_schema(t) for t in crm.tables] == ["dbo", "sales", "dbo"]
        assert erp.table_schema(erp.tables[0]) == "fin"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_ingestion_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "ingestion.yaml"
        path.write_text("groups: [\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_ingestion_config(path)


class TestParseIngestionConfig:
    """Parsing loaded data."""

    def test_non_mapping_yields_empty_config(self) -> None:
        assert parse_ingestion_config(["x"]).groups == []
        assert parse_ingestion_config(None).groups == []

    def test_top_level_sqlservers_become_default_group(self) -> None:
        data = {
            "maxTablesPerSource": 4,
            "sqlservers": [{"alias": "crm", "database": "CRMDB", "secretName": "s", "tables": ["A"]}],
        }
        config = parse_ingestion_config(data)
        group = config.get_group("default")
        assert group.max_tables_per_source == 4
        assert group.sqlservers[0].tables[0].name == "A"

    def test_unknown_group(self) -> None:
        config = parse_ingestion_config({"groups": [{"name": "wave1"}]})
        with pytest.raises(ConfigurationError, match="available: wave1"):
            config.get_group("wave2")


class TestEffectiveLimits:
    """Alias overrides win over the group, absent means unlimited."""

    def test_alias_override(self) -> None:
        group = WaveGroupConfig("g", max_tables_per_source=10, max_rows_per_source=500)
        srv = _server(max_tables_per_source=3)
        assert srv.effective_limits(group) == (3, 500)

    def test_group_default(self) -> None:
        group = WaveGroupConfig("g", max_tables_per_source=10)
        assert _server().effective_limits(group) == (10, 0)

    def test_unlimited_when_absent(self) -> None:
        assert _server().effective_limits(WaveGroupConfig("g")) == (0, 0)

    def test_alias_zero_disables_group_limit(self) -> None:
        group = WaveGroupConfig("g", max_tables_per_source=10)
        assert _server(max_tables_per_source=0).effective_limits(group) == (0, 0)

    def test_numeric_strings_accepted(self) -> None:
        group = WaveGroupConfig("g", max_rows_per_source="2000")
        assert _server().effective_limits(group) == (0, 2000)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateIngestionConfig:
    """The validation pass collects every problem."""

    def test_valid_config_passes(self, tmp_path: Path) -> None:
        path = tmp_path / "ingestion.yaml"
        path.write_text(_VALID_YAML, encoding="utf-8")
        validate_ingestion_config(load_ingestion_config(path))

    def test_no_groups(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            validate_ingestion_config(IngestionConfig())
        assert exc_info.value.problems == ["no groups defined"]

    def test_reports_all_problems(self) -> None:
        config = _config(
            WaveGroupConfig("", sqlservers=[_server()]),
            WaveGroupConfig("dup", sqlservers=[_server(database="")]),
            WaveGroupConfig("dup", sqlservers=[_server(secret_name="", tables=[])]),
        )
        with pytest.raises(ConfigurationError) as exc_info:
            validate_ingestion_config(config)

        problems = "\n".join(exc_info.value.problems)
        assert "empty group name" in problems
        assert "duplicate group name 'dup'" in problems
        assert "empty database" in problems
        assert "empty secretName" in problems
        assert "no tables configured" in problems
        assert len(exc_info.value.problems) == 5

    def test_group_without_servers(self) -> None:
        with pytest.raises(ConfigurationError, match="no sqlservers defined"):
            validate_ingestion_config(_config(WaveGroupConfig("g")))

    def test_duplicate_alias_case_insensitive(self) -> None:
        group = WaveGroupConfig("g", sqlservers=[_server("crm"), _server("CRM", database="OTHER")])
        with pytest.raises(ConfigurationError, match="duplicate alias 'CRM'"):
            validate_ingestion_config(_config(group))

    def test_same_alias_in_different_groups_allowed(self) -> None:
        validate_ingestion_config(_config(
            WaveGroupConfig("a", sqlservers=[_server("crm")]),
            WaveGroupConfig("b", sqlservers=[_server("crm")]),
        ))

    def test_empty_alias(self) -> None:
        with pytest.raises(ConfigurationError, match="empty alias"):
            validate_ingestion_config(_config(WaveGroupConfig("g", sqlservers=[_server(" ")])))

    def test_empty_table_name(self) -> None:
        srv = _server(tables=[TableEntry("A"), TableEntry("")])
        with pytest.raises(ConfigurationError, match=r"tables\[1\]: empty name"):
            validate_ingestion_config(_config(WaveGroupConfig("g", sqlservers=[srv])))

    def test_duplicate_table_case_insensitive(self) -> None:
        srv = _server(tables=[TableEntry("Orders"), TableEntry("ORDERS", schema="DBO")])
        with pytest.raises(ConfigurationError, match="duplicate table"):
            validate_ingestion_config(_config(WaveGroupConfig("g", sqlservers=[srv])))

    def test_same_table_in_different_schemas_allowed(self) -> None:
        srv = _server(tables=[TableEntry("Orders"), TableEntry("Orders", schema="sales")])
        validate_ingestion_config(_config(WaveGroupConfig("g", sqlservers=[srv])))

    def test_non_integer_limit(self) -> None:
        group = WaveGroupConfig("g", sqlservers=[_server(max_rows_per_source="lots")])
        with pytest.raises(ConfigurationError, match="maxRowsPerSource must be an integer"):
            validate_ingestion_config(_config(group))


class TestValidateEnvForAliases:
    """SQLSERVER_<ALIAS>_HOST/_USER/_PASSWORD must be set."""

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for alias in ("CRM", "ERP"):
            for field_name in ("HOST", "USER", "PASSWORD"):
                monkeypatch.delenv(f"SQLSERVER_{alias}_{field_name}", raising=False)

    def test_all_present(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for field_name in ("HOST", "USER", "PASSWORD"):
            monkeypatch.setenv(f"SQLSERVER_CRM_{field_name}", "x")
        validate_env_for_aliases(WaveGroupConfig("g", sqlservers=[_server("crm")]))

    def test_lists_every_missing_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SQLSERVER_CRM_HOST", "db.local")
        group = WaveGroupConfig("g", sqlservers=[_server("crm"), _server("erp")])

        with pytest.raises(EnvironmentMissingError) as exc_info:
            validate_env_for_aliases(group)

        assert exc_info.value.missing == [
            "SQLSERVER_CRM_USER (alias=crm)",
            "SQLSERVER_CRM_PASSWORD (alias=crm)",
            "SQLSERVER_ERP_HOST (alias=erp)",
            "SQLSERVER_ERP_USER (alias=erp)",
            "SQLSERVER_ERP_PASSWORD (alias=erp)",
        ]
        assert exc_info.value.context["group"] == "g"
