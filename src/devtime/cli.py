"""CLI entry point for devtime."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from devtime.config import ConfigError, Settings, load_settings
from devtime.formatting import (
    format_duration,
    format_duration_long,
    format_timestamp,
    make_progress_bar,
)
from devtime.models import Pulse, PulseBatch, StatsResponse
from devtime.stats import RANGES, get_sessions, get_stats, time_range
from devtime.store import create_store

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp_ms(value: str) -> int:
    """Parse an ISO 8601 date or timestamp to epoch milliseconds.

    Naive values are taken as UTC.

    Raises:
        ValueError: If the value is not ISO 8601.
    """
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def _settings() -> Settings:
    try:
        return load_settings()
    except ConfigError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)


def _parse_pulses(data: Any) -> list[Pulse]:
    """Validate one decoded JSONL line: a single pulse or a {"heartbeats": [...]} batch."""
    if isinstance(data, dict) and "heartbeats" in data:
        return PulseBatch.model_validate(data).heartbeats
    return [Pulse.model_validate(data)]


def _resolve_window(
    range_name: str, start: str | None, end: str | None
) -> tuple[int, int]:
    if start is None and end is None:
        return time_range(range_name)
    if start is None or end is None:
        click.echo("--start and --end must be given together", err=True)
        sys.exit(1)
    try:
        return parse_timestamp_ms(start), parse_timestamp_ms(end)
    except ValueError:
        click.echo(f"Invalid timestamp: use ISO 8601 (got {start!r}, {end!r})", err=True)
        sys.exit(1)


def query_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by the commands that read pulses back."""
    decorators = [
        click.option("--db", type=click.Path(path_type=Path), default=None, help="Path to SQLite database"),
        click.option("--user", "user_id", default=None, help="User whose pulses to read"),
        click.option(
            "--range",
            "range_name",
            type=click.Choice(RANGES),
            default="week",
            show_default=True,
            help="Named window ending now",
        ),
        click.option("--start", default=None, help="Window start, ISO 8601 (overrides --range)"),
        click.option("--end", default=None, help="Window end, ISO 8601 (overrides --range)"),
        click.option("--project", default=None, help="Only pulses for this project"),
        click.option("--tool", default=None, help="Only pulses from this tool"),
        click.option("--gap-minutes", type=click.IntRange(min=1), default=None, help="Idle gap threshold"),
        click.option("--json", "output_json", is_flag=True, help="Output as JSON"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """devtime: coding time from activity pulses."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


@main.command("ingest")
@click.option("--db", type=click.Path(path_type=Path), default=None, help="Path to SQLite database")
@click.option("--user", "user_id", default=None, help="User the pulses belong to")
def ingest_command(db: Path | None, user_id: str | None) -> None:
    """Store pulses read from stdin (JSONL format).

    Each line is either a single pulse or a batch object with a
    "heartbeats" list. Invalid lines are reported and skipped.

    Example usage:
        cat pulses.jsonl | devtime ingest
        devtime ingest --user alice < batch.jsonl
    """
    settings = _settings()
    db = db or settings.db_path
    user_id = user_id or settings.user_id

    pulses: list[Pulse] = []
    has_input = False

    for line_number, line in enumerate(sys.stdin, 1):
        stripped = line.strip()
        if not stripped:
            continue

        has_input = True

        try:
            pulses.extend(_parse_pulses(json.loads(stripped)))
        except json.JSONDecodeError as e:
            click.echo(f"Warning: line {line_number}: invalid JSON: {e}", err=True)
        except ValidationError as e:
            click.echo(f"Warning: line {line_number}: validation error: {e}", err=True)

    with closing(create_store(db)) as store:
        stored = store.store_pulses(pulses, user_id)

    click.echo(f"Stored {stored} pulses")

    # Exit code 1 if we had input but no valid pulses (all lines were errors)
    if has_input and not pulses:
        sys.exit(1)


def _print_breakdown(title: str, totals: dict[str, int]) -> None:
    if not totals:
        return
    click.echo(f"By {title}:")
    max_seconds = max(totals.values())
    for name, seconds in sorted(totals.items(), key=lambda item: (-item[1], item[0])):
        display = name if len(name) <= 20 else name[:17] + "..."
        bar = make_progress_bar(seconds, max_seconds)
        click.echo(f"  {display:<20} {format_duration(seconds):>8}   {bar}")
    click.echo()


def _output_human_stats(stats: StatsResponse, start: int, end: int) -> None:
    click.echo(f"Stats: {format_timestamp(start)} - {format_timestamp(end)} UTC")
    click.echo()

    if stats.total_seconds == 0:
        click.echo("No time tracked for this period.")
        return

    click.echo(f"Total: {format_duration_long(stats.total_seconds)}")
    click.echo()

    _print_breakdown("Tool", stats.by_tool)
    _print_breakdown("Project", stats.by_project)
    _print_breakdown("Language", stats.by_language)

    click.echo("By Day:")
    max_day = max(day.seconds for day in stats.by_day)
    for day in stats.by_day:
        bar = make_progress_bar(day.seconds, max_day)
        click.echo(f"  {day.date}  {format_duration(day.seconds):>8}   {bar}")


@main.command("stats")
@query_options
def stats_command(
    db: Path | None,
    user_id: str | None,
    range_name: str,
    start: str | None,
    end: str | None,
    project: str | None,
    tool: str | None,
    gap_minutes: int | None,
    output_json: bool,
) -> None:
    """Show coding time by tool, project, language and day.

    Example:
        devtime stats --range today
        devtime stats --start 2025-01-13 --end 2025-01-19T23:59:59Z --json
    """
    settings = _settings()
    db = db or settings.db_path
    if not db.exists():
        click.echo("No database found", err=True)
        sys.exit(1)

    window_start, window_end = _resolve_window(range_name, start, end)
    gap_ms = gap_minutes * 60_000 if gap_minutes else settings.gap_threshold_ms

    with closing(create_store(db)) as store:
        stats = get_stats(
            store,
            user_id or settings.user_id,
            window_start,
            window_end,
            project=project,
            tool=tool,
            gap_threshold_ms=gap_ms,
        )

    if output_json:
        click.echo(json.dumps(stats.model_dump(mode="json"), indent=2))
    else:
        _output_human_stats(stats, window_start, window_end)


@main.command("sessions")
@query_options
def sessions_command(
    db: Path | None,
    user_id: str | None,
    range_name: str,
    start: str | None,
    end: str | None,
    project: str | None,
    tool: str | None,
    gap_minutes: int | None,
    output_json: bool,
) -> None:
    """List work sessions, oldest first.

    With --json, prints one session per line (JSONL).
    """
    settings = _settings()
    db = db or settings.db_path
    if not db.exists():
        click.echo("No database found", err=True)
        sys.exit(1)

    window_start, window_end = _resolve_window(range_name, start, end)
    gap_ms = gap_minutes * 60_000 if gap_minutes else settings.gap_threshold_ms

    with closing(create_store(db)) as store:
        sessions = get_sessions(
            store,
            user_id or settings.user_id,
            window_start,
            window_end,
            project=project,
            tool=tool,
            gap_threshold_ms=gap_ms,
        )

    if output_json:
        for session in sessions:
            click.echo(session.model_dump_json())
        return

    if not sessions:
        click.echo("No sessions for this period.")
        return

    for session in sessions:
        project_name = session.project or "(no project)"
        click.echo(
            f"{format_timestamp(session.start_time)}  {session.tool:<12} {project_name:<20} "
            f"{format_duration(session.duration_seconds):>8}  ({session.pulse_count} pulses)"
        )


if __name__ == "__main__":
    main()
