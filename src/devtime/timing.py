"""Time inference over activity pulses.

Pulses are sparse samples, not a continuous signal. The time between two
consecutive pulses counts as work only when the gap is shorter than a
threshold (15 minutes by default). Everything here is a pure function of
(pulses, window, threshold): inputs are sorted on a private copy and never
mutated, and outputs are built in sorted key order.

Sessions and interval totals intentionally use different comparisons at the
threshold: a gap exactly equal to it does not split a session (``>``) but is
not counted as work either (``<``).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Protocol, TypeVar

from devtime.models import AggregateResult, DayStats, Pulse, Session

DEFAULT_GAP_THRESHOLD_MS = 900_000
DAY_MS = 86_400_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Timestamped(Protocol):
    @property
    def timestamp(self) -> int: ...


T = TypeVar("T", bound=Timestamped)


def ms_to_seconds(ms: int) -> int:
    """Round non-negative milliseconds to whole seconds, halves rounding up."""
    return (ms + 500) // 1000


def utc_date(timestamp_ms: int) -> str:
    """Return the UTC calendar day (YYYY-MM-DD) containing timestamp_ms.

    Raises OverflowError past year 9999; Pulse validation rejects such timestamps.
    """
    return (_EPOCH + timedelta(milliseconds=timestamp_ms)).strftime("%Y-%m-%d")


def _sorted_by_time(pulses: Sequence[T]) -> list[T]:
    # sorted() is stable, so pulses sharing a timestamp keep their input order
    return sorted(pulses, key=lambda p: p.timestamp)


def _counted_intervals(
    pulses: Sequence[T], gap_threshold_ms: int
) -> Iterator[tuple[T, int]]:
    """Yield (earlier pulse, seconds) for every consecutive pair counted as work.

    Sub-second pairs are yielded with 0 seconds.
    """
    ordered = _sorted_by_time(pulses)
    for prev, curr in zip(ordered, ordered[1:]):
        gap = curr.timestamp - prev.timestamp
        if gap < gap_threshold_ms:
            yield prev, ms_to_seconds(gap)


def group_into_sessions(
    pulses: Sequence[Pulse],
    user_id: str,
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> list[Session]:
    """Partition pulses into contiguous sessions.

    A session is a maximal run of time-ordered pulses that share tool and
    project, where no consecutive gap exceeds gap_threshold_ms.

    Args:
        pulses: Pulses in any order.
        user_id: Owner, used for the session id.
        gap_threshold_ms: Largest gap that keeps a session open.

    Returns:
        Sessions ordered by start_time. Empty if pulses is empty.
    """
    ordered = _sorted_by_time(pulses)
    if not ordered:
        return []

    sessions: list[Session] = []

    first = ordered[0]
    start = end = first.timestamp
    tool = first.tool
    project = first.project
    count = 1

    def close() -> Session:
        return Session(
            id=f"{user_id}-{start}",
            user_id=user_id,
            tool=tool,
            project=project,
            start_time=start,
            end_time=end,
            duration_seconds=ms_to_seconds(end - start),
            pulse_count=count,
        )

    for pulse in ordered[1:]:
        gap = pulse.timestamp - end
        if gap > gap_threshold_ms or pulse.tool != tool or pulse.project != project:
            sessions.append(close())
            start = end = pulse.timestamp
            tool = pulse.tool
            project = pulse.project
            count = 1
        else:
            end = pulse.timestamp
            count += 1

    sessions.append(close())
    return sessions


def aggregate_stats(
    pulses: Sequence[Pulse],
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> AggregateResult:
    """Sum counted intervals into overall, per-tool, per-project and per-language seconds.

    Each interval is attributed to the context of its earlier pulse. Pulses
    without a project or language contribute to the total and per-tool
    figures only.
    """
    total = 0
    by_tool: defaultdict[str, int] = defaultdict(int)
    by_project: defaultdict[str, int] = defaultdict(int)
    by_language: defaultdict[str, int] = defaultdict(int)

    for prev, seconds in _counted_intervals(pulses, gap_threshold_ms):
        if not seconds:
            # Keeps zero-valued keys out of the breakdowns
            continue
        total += seconds
        by_tool[prev.tool] += seconds
        if prev.project:
            by_project[prev.project] += seconds
        if prev.language:
            by_language[prev.language] += seconds

    return AggregateResult(
        total_seconds=total,
        by_tool=dict(sorted(by_tool.items())),
        by_project=dict(sorted(by_project.items())),
        by_language=dict(sorted(by_language.items())),
    )


def _seed_day_buckets(window_start: int, window_end: int) -> dict[str, int]:
    """Zero-filled bucket per UTC day from window_start's midnight through window_end."""
    buckets: dict[str, int] = {}
    if window_start > window_end:
        return buckets

    day_start = window_start - window_start % DAY_MS
    while day_start <= window_end:
        buckets[utc_date(day_start)] = 0
        day_start += DAY_MS
    return buckets


def aggregate_by_day(
    pulses: Sequence[Timestamped],
    window_start: int,
    window_end: int,
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> list[DayStats]:
    """Per-UTC-day seconds over a window, zero-filled.

    Interval time goes to the day of the earlier pulse, so work spanning
    midnight is credited entirely to the day it started on. Days touched by
    pulses outside the window are added rather than dropped.

    Args:
        pulses: Anything with an integer millisecond ``timestamp``.
        window_start: Window start, epoch milliseconds.
        window_end: Window end, epoch milliseconds (inclusive).
        gap_threshold_ms: Gaps at or above this are not counted.

    Returns:
        DayStats sorted ascending by date.
    """
    buckets = _seed_day_buckets(window_start, window_end)

    for prev, seconds in _counted_intervals(pulses, gap_threshold_ms):
        date = utc_date(prev.timestamp)
        buckets[date] = buckets.get(date, 0) + seconds

    return [DayStats(date=date, seconds=seconds) for date, seconds in sorted(buckets.items())]
