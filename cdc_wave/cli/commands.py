"""Command-line entry point for ingestion waves.

Usage:
    cdc-wave generate --config config/ingestion.yaml --group wave1
    cdc-wave generate --group wave1 --output-mode managed --branch-suffix wave1
    cdc-wave plan --group wave1 --max-tables-per-source 5
    cdc-wave validate --config config/ingestion.yaml

Connection variables (``SQLSERVER_<ALIAS>_*``), connector defaults and Git
settings (``GIT_REPO_URL`` ...) are read from the environment; a ``.env``
file is loaded first without overriding variables already set.

Exit codes: 0 on success (including a wave with nothing to commit),
1 on any wave error.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, NoReturn

import click
import yaml

from cdc_wave.core.errors import WaveError
from cdc_wave.core.git_sync import GitSyncController, load_sync_config_from_env
from cdc_wave.core.layout import LayoutMode
from cdc_wave.core.wave_orchestrator import WaveOptions, WaveResult, run_wave
from cdc_wave.helpers.helpers_env import load_env_file, resolve_wave_defaults
from cdc_wave.helpers.helpers_logging import print_error, print_info, print_success
from cdc_wave.validators.ingestion_config import (
    load_ingestion_config,
    validate_env_for_aliases,
    validate_ingestion_config,
)

DEFAULT_CONFIG_PATH = Path("config/ingestion.yaml")

_FAILURE_EXIT_CODE = 1


# ============================================================================
# Shared options
# ============================================================================


def _config_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--config", "config_path",
        type=click.Path(path_type=Path, dir_okay=False),
        default=DEFAULT_CONFIG_PATH, show_default=True,
        help="Ingestion configuration file",
    )(func)


def _wave_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by ``generate`` and ``plan``."""
    decorators = [
        _config_option,
        click.option("--group", required=True, help="Wave group from the configuration"),
        click.option("--mode", type=click.Choice(["online", "batch"]), default="online",
                     show_default=True, help="Connector mode used in names"),
        click.option("--size", type=click.Choice(["p", "m", "g"]), default="m",
                     show_default=True, help="Connector size used in names"),
        click.option("--output-mode", type=click.Choice([m.value for m in LayoutMode]),
                     default=LayoutMode.LOCAL.value, show_default=True,
                     help="managed: deployment repository tree, local: self-contained tree"),
        click.option("--out", "out_dir", type=click.Path(path_type=Path, file_okay=False),
                     default=None, help="Base directory (default: apps/ managed, out/ local)"),
        click.option("--env", "environment", default=None,
                     help="Deployment environment (overrides DEPLOY_ENV)"),
        click.option("--branch-suffix", default=None,
                     help="Wave branch suffix (default: timestamp)"),
        click.option("--max-tables-per-source", type=click.IntRange(min=0), default=None,
                     help="Override every configured table limit (0 = unlimited)"),
        click.option("--max-rows-per-source", type=click.IntRange(min=0), default=None,
                     help="Override every configured row limit (0 = unlimited)"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _fail(ctx: click.Context, exc: WaveError) -> NoReturn:
    print_error(str(exc))
    ctx.exit(_FAILURE_EXIT_CODE)


# ============================================================================
# Commands
# ============================================================================


@click.group(name="cdc-wave", help="Plan, generate and publish CDC ingestion waves")
@click.option("--env-file", type=click.Path(path_type=Path, dir_okay=False), default=None,
              help="dotenv file to load (default: nearest .env)")
def cli(env_file: Path | None) -> None:
    load_env_file(env_file)


def _execute_wave(
    *,
    config_path: Path,
    group: str,
    mode: str,
    size: str,
    output_mode: str,
    out_dir: Path | None,
    environment: str | None,
    branch_suffix: str | None,
    max_tables_per_source: int | None,
    max_rows_per_source: int | None,
    dry_run: bool,
) -> WaveResult:
    config = load_ingestion_config(config_path)
    defaults = resolve_wave_defaults(environment=environment)
    layout_mode = LayoutMode(output_mode)

    sync_controller: GitSyncController | None = None
    if layout_mode is LayoutMode.MANAGED:
        sync_config = load_sync_config_from_env()
        if sync_config is None:
            print_info("GitOps: GIT_REPO_URL not set, writing without repository synchronization")
        else:
            sync_controller = GitSyncController(sync_config, Path.cwd())

    options = WaveOptions(
        group=group,
        mode=mode,
        size=size,
        layout_mode=layout_mode,
        base_dir=out_dir,
        dry_run=dry_run,
        branch_suffix=branch_suffix,
        max_tables_override=max_tables_per_source,
        max_rows_override=max_rows_per_source,
    )
    return run_wave(config, options, defaults, sync_controller=sync_controller)


@cli.command(name="generate", help="Generate manifests for one wave group")
@_wave_options
@click.option("--dry-run", is_flag=True, help="Plan and log only, write nothing")
@click.pass_context
def generate_cmd(ctx: click.Context, **kwargs: Any) -> int:
    try:
        _execute_wave(**kwargs)
    except WaveError as exc:
        _fail(ctx, exc)
    return 0


@cli.command(name="plan", help="Show what 'generate' would do (dry run)")
@_wave_options
@click.pass_context
def plan_cmd(ctx: click.Context, **kwargs: Any) -> int:
    try:
        result = _execute_wave(dry_run=True, **kwargs)
    except WaveError as exc:
        _fail(ctx, exc)

    report = {
        "group": result.group,
        "tables": result.tables_processed,
        "source_groups": result.source_groups,
        "files": [str(path) for path in result.planned_files],
    }
    click.echo(yaml.dump(report, default_flow_style=False, sort_keys=False, indent=2))
    return 0


@cli.command(name="validate", help="Validate the configuration and connection variables")
@_config_option
@click.option("--group", default=None, help="Only check this group's connection variables")
@click.pass_context
def validate_cmd(ctx: click.Context, config_path: Path, group: str | None) -> int:
    try:
        config = load_ingestion_config(config_path)
        validate_ingestion_config(config)
        groups = [config.get_group(group)] if group else config.groups
        for wave_group in groups:
            validate_env_for_aliases(wave_group)
    except WaveError as exc:
        _fail(ctx, exc)

    tables = sum(len(srv.tables) for g in groups for srv in g.sqlservers)
    print_success(f"{config_path}: {len(groups)} group(s), {tables} table(s) valid")
    return 0


def main() -> int:
    """Main CLI entry point."""
    try:
        result = cli.main(args=sys.argv[1:], prog_name="cdc-wave", standalone_mode=False)
    except click.Abort:
        print("\n⚠️  Cancelled by user")
        return 130
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code

    return 0 if result is None else int(result)


if __name__ == "__main__":
    sys.exit(main())
