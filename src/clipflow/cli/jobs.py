"""CLI commands for job queue management."""

import json
import logging

import click

from clipflow.cli import get_pool
from clipflow.cli.formatting import format_timestamp, get_status_color, styled_cell
from clipflow.config.models import ClipflowConfig
from clipflow.core.datetime_utils import calculate_duration_seconds, to_aware
from clipflow.db.types import Job, JobState, JobType
from clipflow.exceptions import ClipflowError
from clipflow.jobs.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)


def _orchestrator(ctx: click.Context) -> JobOrchestrator:
    config: ClipflowConfig = ctx.find_root().obj["config"]
    return JobOrchestrator(get_pool(ctx), config.jobs, config.processing)


def _format_job_row(job: Job) -> str:
    progress = f"{job.progress}%" if job.state == JobState.ACTIVE else "-"
    line = f"{job.id[:8]:<10} "
    line += styled_cell(job.state.value, 11, get_status_color(job.state))
    line += f" {job.job_type.value:<14} {job.attempts}/{job.max_attempts:<5} "
    line += f"{progress:<6} {format_timestamp(job.created_at):<20}"
    return line


@click.group("jobs")
def jobs_group() -> None:
    """Submit and manage processing and upload jobs.

    Examples:

        # Queue a video for clipping
        clipflow jobs process https://example.com/watch?v=abc

        # List failed jobs
        clipflow jobs list --state failed

        # Requeue a failed job
        clipflow jobs retry <job-id>
    """
    pass


@jobs_group.command("process")
@click.argument("url")
@click.option("--clip-duration", type=int, default=None, help="Seconds per clip.")
@click.option("--start-time", type=float, default=None, help="Skip this many seconds.")
@click.option("--max-clips", type=int, default=None, help="Stop after N clips.")
@click.option(
    "--quality",
    type=click.Choice(["best", "1080p", "720p", "480p"]),
    default=None,
    help="Video quality to download.",
)
@click.option(
    "--audio-quality",
    type=click.Choice(["best", "good", "medium"]),
    default=None,
    help="Audio quality to download.",
)
@click.pass_context
def process_command(
    ctx: click.Context,
    url: str,
    clip_duration: int | None,
    start_time: float | None,
    max_clips: int | None,
    quality: str | None,
    audio_quality: str | None,
) -> None:
    """Queue a video for download, clipping and content generation."""
    options = {
        "clip_duration": clip_duration,
        "start_time": start_time,
        "max_clips": max_clips,
        "quality": quality,
        "audio_quality": audio_quality,
    }
    payload = {
        "url": url,
        "options": {k: v for k, v in options.items() if v is not None},
    }
    try:
        job_id = _orchestrator(ctx).submit_processing(payload)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    click.echo(job_id)


@jobs_group.command("upload")
@click.argument("video_path", type=click.Path(dir_okay=False))
@click.option("--title", required=True, help="Title of the published video.")
@click.option("--description", default="", help="Description text.")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable).")
@click.option(
    "--privacy",
    type=click.Choice(["public", "private", "unlisted"]),
    default="public",
    help="Visibility of the published video.",
)
@click.option("--category", "category_id", default=None, help="Platform category ID.")
@click.option(
    "--publish-at",
    default=None,
    help="Platform release time (ISO-8601); private until then.",
)
@click.option("--at", "at_time", default=None, help="Hold the job until this time.")
@click.option(
    "--tz", "timezone", default="UTC", help="Timezone for naive --at and --publish-at."
)
@click.pass_context
def upload_command(
    ctx: click.Context,
    video_path: str,
    title: str,
    description: str,
    tags: tuple[str, ...],
    privacy: str,
    category_id: str | None,
    publish_at: str | None,
    at_time: str | None,
    timezone: str,
) -> None:
    """Queue a clip for upload, now or (with --at) later.

    --at delays the upload itself; --publish-at uploads as private and lets
    the platform publish the clip at that time. Both read naive times in --tz.
    """
    try:
        release = to_aware(publish_at, timezone) if publish_at else None
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--publish-at") from e
    payload = {
        "video_path": video_path,
        "metadata": {
            "title": title,
            "description": description,
            "tags": list(tags),
            "privacy": privacy,
            "category_id": category_id,
            "publish_at": release,
        },
    }
    try:
        when = to_aware(at_time, timezone) if at_time else None
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--at") from e
    try:
        job_id = _orchestrator(ctx).submit_upload(payload, scheduled_time=when)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    click.echo(job_id)


@jobs_group.command("list")
@click.option(
    "--state",
    "-s",
    "states",
    type=click.Choice([s.value for s in JobState]),
    multiple=True,
    help="Filter by state (repeatable).",
)
@click.option(
    "--type",
    "-t",
    "job_type",
    type=click.Choice([t.value for t in JobType]),
    default=None,
    help="Filter by job type.",
)
@click.option("--limit", "-n", type=int, default=50, help="Maximum jobs to show.")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def list_jobs(
    ctx: click.Context,
    states: tuple[str, ...],
    job_type: str | None,
    limit: int,
    json_output: bool,
) -> None:
    """List jobs, newest first."""
    jobs = _orchestrator(ctx).list_jobs(
        states=states or None, job_type=job_type, limit=limit
    )

    if json_output:
        click.echo(json.dumps([job.to_dict() for job in jobs], indent=2))
        return

    if not jobs:
        click.echo("No jobs found.")
        return

    click.echo(
        f"{'ID':<10} {'STATE':<11} {'TYPE':<14} {'TRIES':<7} "
        f"{'PROG':<6} {'CREATED':<20}"
    )
    click.echo("-" * 72)
    for job in jobs:
        click.echo(_format_job_row(job))


@jobs_group.command("show")
@click.argument("job_id")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def show_job(ctx: click.Context, job_id: str, json_output: bool) -> None:
    """Show detailed information about a job."""
    try:
        job = _orchestrator(ctx).get_status(job_id)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        click.echo(json.dumps(job.to_dict(), indent=2))
        return

    state_colored = click.style(job.state.value.upper(), fg=get_status_color(job.state))
    click.echo(f"\nJob: {job.id}")
    click.echo("-" * 50)
    click.echo(f"  State:       {state_colored}")
    click.echo(f"  Type:        {job.job_type.value}")
    click.echo(f"  Attempts:    {job.attempts}/{job.max_attempts}")
    click.echo(f"  Progress:    {job.progress}% ({job.progress_stage or '-'})")
    click.echo("")
    click.echo(f"  Created:     {job.created_at}")
    click.echo(f"  Available:   {job.available_at}")
    if job.started_at:
        click.echo(f"  Started:     {job.started_at}")
    if job.finished_at:
        click.echo(f"  Finished:    {job.finished_at}")
    if job.started_at and job.finished_at:
        duration = calculate_duration_seconds(job.started_at, job.finished_at)
        if duration is not None:
            click.echo(f"  Duration:    {duration}s")
    if job.worker_id:
        click.echo(f"  Worker:      {job.worker_id}")
    if job.failure_reason:
        click.echo("")
        click.echo(f"  Error:       {click.style(job.failure_reason, fg='red')}")
    if job.result:
        click.echo("")
        click.echo("  Result:")
        for key, value in job.result.items():
            if isinstance(value, list):
                value = f"{len(value)} item(s)"
            click.echo(f"    {key}: {value}")
    click.echo("")


@jobs_group.command("cancel")
@click.argument("job_id")
@click.pass_context
def cancel_command(ctx: click.Context, job_id: str) -> None:
    """Remove a job from the queue."""
    try:
        _orchestrator(ctx).cancel(job_id)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Cancelled job {job_id}")


@jobs_group.command("retry")
@click.argument("job_id")
@click.pass_context
def retry_command(ctx: click.Context, job_id: str) -> None:
    """Requeue a failed job with a fresh attempt budget."""
    try:
        job = _orchestrator(ctx).retry(job_id)
    except ClipflowError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Requeued job {job.id} ({job.state.value})")


@jobs_group.command("purge")
@click.option(
    "--days",
    type=int,
    default=None,
    help="Retention in days (default: jobs.retention_days).",
)
@click.pass_context
def purge_command(ctx: click.Context, days: int | None) -> None:
    """Delete finished jobs older than the retention window."""
    count = _orchestrator(ctx).purge(days)
    click.echo(f"Purged {count} job(s)")


@jobs_group.command("stats")
@click.option(
    "--history",
    type=click.IntRange(min=0),
    default=10,
    show_default=True,
    help="Number of recently finished jobs to list.",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def stats_command(ctx: click.Context, history: int, json_output: bool) -> None:
    """Show queue statistics and processing activity."""
    orchestrator = _orchestrator(ctx)
    stats = orchestrator.stats()
    activity = orchestrator.analytics(history)
    if json_output:
        click.echo(json.dumps({**stats, "analytics": activity.to_dict()}, indent=2))
        return

    click.echo("Job Queue Status")
    click.echo("-" * 30)
    for state in JobState:
        click.echo(f"  {state.value.capitalize() + ':':<11}{stats[state.value]:>5}")
    click.echo("-" * 30)
    click.echo(f"  {'Total:':<11}{stats['total']:>5}")

    rate = activity.upload_success_rate
    average = activity.average_processing_seconds
    click.echo("")
    click.echo("Activity")
    click.echo("-" * 30)
    click.echo(f"  Videos processed:  {activity.videos_processed}")
    click.echo(f"  Clips created:     {activity.clips_created}")
    click.echo(f"  Uploads:           {activity.total_uploads}")
    click.echo(f"  Success rate:      {'-' if rate is None else f'{rate:.2f}%'}")
    click.echo(f"  Avg processing:    {'-' if average is None else f'{average:.2f}s'}")

    if activity.recent:
        click.echo("")
        click.echo("Recent")
        for entry in activity.recent:
            color = get_status_color(JobState(entry["state"]))
            state = styled_cell(entry["state"], 9, color)
            finished = format_timestamp(entry["finished_at"])
            title = entry["title"] or "-"
            click.echo(f"  {finished}  {state}  {entry['type']:<13} {title}")
