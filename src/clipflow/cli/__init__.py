"""CLI module for clipflow."""

import dataclasses
import logging
from pathlib import Path

import click

from clipflow.config import get_config
from clipflow.config.loader import ConfigError
from clipflow.config.models import ClipflowConfig
from clipflow.db.connection import ConnectionPool
from clipflow.db.schema import initialize_database
from clipflow.logging import configure_logging

logger = logging.getLogger(__name__)


def _apply_logging_overrides(
    config: ClipflowConfig,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Replace logging settings given on the command line."""
    overrides: dict[str, object] = {}
    if log_level:
        overrides["level"] = log_level
    if log_file:
        overrides["file"] = log_file
    if log_json:
        overrides["format"] = "json"
    if overrides:
        config.logging = dataclasses.replace(config.logging, **overrides)


def get_pool(ctx: click.Context) -> ConnectionPool:
    """Open (once per invocation) the database named by the configuration.

    The pool is closed when the command finishes.
    """
    obj = ctx.find_root().obj
    pool = obj.get("pool")
    if pool is None:
        config: ClipflowConfig = obj["config"]
        pool = ConnectionPool(config.database_path)
        try:
            with pool.connection() as conn:
                initialize_database(conn)
        except (RuntimeError, OSError) as e:
            pool.close()
            raise click.ClickException(f"Cannot open database: {e}") from e
        obj["pool"] = pool
        ctx.find_root().call_on_close(pool.close)
    return pool


@click.group()
@click.version_option(package_name="clipflow")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default: <data dir>/config.toml).",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Override database path.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    db_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """clipflow - Turn long videos into scheduled short-form uploads."""
    ctx.ensure_object(dict)
    if "config" not in ctx.obj:
        try:
            config = get_config(config_path, database_path=db_path, strict=True)
        except (ConfigError, ValueError) as e:
            raise click.ClickException(f"Invalid configuration: {e}") from e
        ctx.obj["config"] = config

    config = ctx.obj["config"]
    _apply_logging_overrides(config, log_level, log_file, log_json)
    configure_logging(config.logging)
    logger.debug("Using database %s", config.database_path)


# Defer import to avoid circular dependency
def _register_commands():
    from clipflow.cli.jobs import jobs_group
    from clipflow.cli.schedule import schedule_group
    from clipflow.cli.worker import worker_command

    main.add_command(jobs_group)
    main.add_command(schedule_group)
    main.add_command(worker_command)


_register_commands()
