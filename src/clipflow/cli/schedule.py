"""CLI commands for scheduled uploads.

Schedules created here are only stored; a running ``clipflow worker``
fires them when they come due.
"""

import json
import logging
from pathlib import Path
from typing import Any

import click
import yaml

from clipflow.cli import get_pool
from clipflow.cli.formatting import format_timestamp, get_status_color, styled_cell
from clipflow.config.models import ClipflowConfig
from clipflow.db.types import Schedule, ScheduleStatus
from clipflow.exceptions import ClipflowError
from clipflow.jobs.orchestrator import JobOrchestrator
from clipflow.scheduler import SqliteScheduleStore, UploadScheduler

logger = logging.getLogger(__name__)


def _scheduler(ctx: click.Context) -> UploadScheduler:
    config: ClipflowConfig = ctx.find_root().obj["config"]
    pool = get_pool(ctx)
    return UploadScheduler(
        SqliteScheduleStore(pool),
        JobOrchestrator(pool, config.jobs, config.processing),
        default_timezone=config.scheduler.default_timezone,
        missed_policy=config.scheduler.missed_policy,
    )


def load_document(path: Path) -> Any:
    """Read a JSON or YAML file (chosen by extension)."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Cannot read {path}: {e}") from e
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise click.ClickException(f"Cannot parse {path}: {e}") from e


def _print_schedules(schedules: list[Schedule], json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps([s.to_dict() for s in schedules], indent=2))
        return
    if not schedules:
        click.echo("No schedules found.")
        return

    click.echo(f"{'ID':<10} {'STATUS':<11} {'TIME (UTC)':<20} {'TZ':<20} {'TITLE'}")
    click.echo("-" * 90)
    for schedule in schedules:
        title = schedule.upload_payload.get("metadata", {}).get("title", "")
        line = f"{schedule.id[:8]:<10} "
        line += styled_cell(schedule.status.value, 11, get_status_color(schedule.status))
        line += f" {format_timestamp(schedule.scheduled_time):<20} "
        line += f"{schedule.timezone:<20} {title[:40]}"
        click.echo(line)


def _print_schedule(schedule: Schedule) -> None:
    status_colored = click.style(
        schedule.status.value.upper(), fg=get_status_color(schedule.status)
    )
    click.echo(f"\nSchedule: {schedule.id}")
    click.echo("-" * 50)
    click.echo(f"  Status:      {status_colored}")
    click.echo(f"  Time:        {schedule.scheduled_time} ({schedule.timezone})")
    click.echo(f"  Video:       {schedule.upload_payload.get('video_path', '-')}")
    title = schedule.upload_payload.get("metadata", {}).get("title")
    if title:
        click.echo(f"  Title:       {title}")
    click.echo(f"  Created:     {schedule.created_at}")
    if schedule.job_id:
        click.echo(f"  Job:         {schedule.job_id}")
    if schedule.completed_at:
        click.echo(f"  Completed:   {schedule.completed_at}")
    if schedule.cancelled_at:
        click.echo(f"  Cancelled:   {schedule.cancelled_at}")
    if schedule.error:
        click.echo(f"  Error:       {click.style(schedule.error, fg='red')}")
    click.echo("")


@click.group("schedule")
def schedule_group() -> None:
    """Schedule uploads for later.

    Examples:

        # Publish one clip tomorrow morning, New York time
        clipflow schedule add clip.yaml --at 2030-01-02T09:00 --tz America/New_York

        # Spread a campaign every two hours
        clipflow schedule bulk campaign.yaml

        # What goes out next
        clipflow schedule upcoming
    """
    pass


@schedule_group.command("add")
@click.argument("payload_file", type=click.Path(exists=True, path_type=Path))
@click.option("--at", "at_time", required=True, help="When to upload (ISO-8601).")
@click.option("--tz", "timezone", default=None, help="Timezone for a naive --at.")
@click.pass_context
def add_command(
    ctx: click.Context, payload_file: Path, at_time: str, timezone: str | None
) -> None:
    """Schedule one upload described by PAYLOAD_FILE (JSON or YAML)."""
    payload = load_document(payload_file)
    try:
        schedule = _scheduler(ctx).schedule_upload(payload, at_time, timezone)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"{schedule.id} {schedule.scheduled_time}")


@schedule_group.command("bulk")
@click.argument("campaign_file", type=click.Path(exists=True, path_type=Path))
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def bulk_command(ctx: click.Context, campaign_file: Path, json_output: bool) -> None:
    """Schedule a campaign: ``uploads`` spread by ``pattern``.

    Either every upload is scheduled or, on any error, none is.
    """
    campaign = load_document(campaign_file)
    if not isinstance(campaign, dict) or "uploads" not in campaign:
        raise click.ClickException(
            f"{campaign_file}: expected a mapping with 'uploads' and 'pattern'"
        )
    try:
        schedules = _scheduler(ctx).schedule_bulk(
            campaign["uploads"] or [], campaign.get("pattern") or {}
        )
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    _print_schedules(schedules, json_output)


@schedule_group.command("list")
@click.option(
    "--status",
    "-s",
    type=click.Choice([s.value for s in ScheduleStatus]),
    default=None,
    help="Filter by status.",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def list_command(ctx: click.Context, status: str | None, json_output: bool) -> None:
    """List schedules, soonest first."""
    _print_schedules(_scheduler(ctx).list_schedules(status), json_output)


@schedule_group.command("upcoming")
@click.option("--limit", "-n", type=int, default=10, help="How many to show.")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def upcoming_command(ctx: click.Context, limit: int, json_output: bool) -> None:
    """Show the next pending uploads."""
    _print_schedules(_scheduler(ctx).get_upcoming(limit), json_output)


@schedule_group.command("show")
@click.argument("schedule_id")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def show_command(ctx: click.Context, schedule_id: str, json_output: bool) -> None:
    """Show one schedule."""
    try:
        schedule = _scheduler(ctx).get_schedule(schedule_id)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    if json_output:
        click.echo(json.dumps(schedule.to_dict(), indent=2))
    else:
        _print_schedule(schedule)


@schedule_group.command("cancel")
@click.argument("schedule_id")
@click.pass_context
def cancel_command(ctx: click.Context, schedule_id: str) -> None:
    """Cancel a pending schedule."""
    try:
        schedule = _scheduler(ctx).cancel_schedule(schedule_id)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Schedule {schedule.id} is {schedule.status.value}")


@schedule_group.command("reschedule")
@click.argument("schedule_id")
@click.option("--at", "at_time", required=True, help="New time (ISO-8601).")
@click.option("--tz", "timezone", default=None, help="Timezone for a naive --at.")
@click.pass_context
def reschedule_command(
    ctx: click.Context, schedule_id: str, at_time: str, timezone: str | None
) -> None:
    """Move a pending or failed schedule to a new time."""
    try:
        schedule = _scheduler(ctx).reschedule(schedule_id, at_time, timezone)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"{schedule.id} {schedule.scheduled_time}")


@schedule_group.command("cleanup")
@click.option(
    "--days",
    type=int,
    default=None,
    help="Maximum age in days (default: scheduler.cleanup_days).",
)
@click.pass_context
def cleanup_command(ctx: click.Context, days: int | None) -> None:
    """Delete finished schedules older than the cutoff."""
    config: ClipflowConfig = ctx.find_root().obj["config"]
    count = _scheduler(ctx).cleanup(
        days if days is not None else config.scheduler.cleanup_days
    )
    click.echo(f"Removed {count} schedule(s)")
