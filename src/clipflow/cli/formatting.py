"""Display helpers shared by the CLI commands."""

import click

from clipflow.db.types import JobState, ScheduleStatus

JOB_STATE_COLORS: dict[JobState, str] = {
    JobState.WAITING: "yellow",
    JobState.DELAYED: "cyan",
    JobState.ACTIVE: "blue",
    JobState.COMPLETED: "green",
    JobState.FAILED: "red",
}

SCHEDULE_STATUS_COLORS: dict[ScheduleStatus, str] = {
    ScheduleStatus.SCHEDULED: "yellow",
    ScheduleStatus.EXECUTING: "blue",
    ScheduleStatus.COMPLETED: "green",
    ScheduleStatus.FAILED: "red",
    ScheduleStatus.CANCELLED: "bright_black",
}

DEFAULT_STATUS_COLOR = "white"


def get_status_color(status: JobState | ScheduleStatus) -> str:
    """Terminal color for a job state or schedule status."""
    if isinstance(status, JobState):
        return JOB_STATE_COLORS.get(status, DEFAULT_STATUS_COLOR)
    return SCHEDULE_STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def format_timestamp(value: str | None) -> str:
    """Shorten an ISO timestamp to ``YYYY-MM-DD HH:MM:SS`` for tables."""
    if not value:
        return "-"
    return value[:19].replace("T", " ")


def styled_cell(text: str, width: int, color: str) -> str:
    """Pad first, then color, so ANSI codes do not break alignment."""
    return click.style(f"{text:<{width}}", fg=color)
