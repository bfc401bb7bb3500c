"""CLI command that runs the clipflow daemon."""

import asyncio
import logging
import sys

import click

from clipflow.config.models import ClipflowConfig
from clipflow.daemon import run_daemon

logger = logging.getLogger(__name__)


@click.command("worker")
@click.option(
    "--adapters",
    default=None,
    help="Stage adapter factory as 'module:function' (overrides config).",
)
@click.pass_context
def worker_command(ctx: click.Context, adapters: str | None) -> None:
    """Run jobs and fire scheduled uploads until SIGINT/SIGTERM.

    The worker claims queued jobs up to the configured concurrency per
    job type, re-arms pending schedules, fires overdue ones, and purges
    old finished jobs.

    Examples:

        clipflow worker --adapters mypackage.adapters:create
    """
    config: ClipflowConfig = ctx.find_root().obj["config"]
    if adapters:
        config.adapters = adapters

    try:
        exit_code = asyncio.run(run_daemon(config))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)
