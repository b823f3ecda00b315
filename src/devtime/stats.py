"""Stats queries: fetch a user's pulses from a store and run the timing engine."""

from __future__ import annotations

import logging
import time

from devtime.models import PulseFilters, Session, StatsResponse
from devtime.store import PulseStore
from devtime.timing import (
    DAY_MS,
    DEFAULT_GAP_THRESHOLD_MS,
    aggregate_by_day,
    aggregate_stats,
    group_into_sessions,
)

logger = logging.getLogger(__name__)

WEEK_MS = 7 * DAY_MS

RANGES = ("today", "week")


def time_range(range_name: str, now_ms: int | None = None) -> tuple[int, int]:
    """Resolve a named range to (start, end) epoch milliseconds ending now.

    "today" starts at UTC midnight. "week" and any unrecognised name cover
    the trailing seven days.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    if range_name == "today":
        return now_ms - now_ms % DAY_MS, now_ms
    return now_ms - WEEK_MS, now_ms


def _filters(project: str | None, tool: str | None) -> PulseFilters | None:
    if not project and not tool:
        return None
    return PulseFilters(project=project, tool=tool)


def get_stats(
    store: PulseStore,
    user_id: str,
    start: int,
    end: int,
    *,
    project: str | None = None,
    tool: str | None = None,
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> StatsResponse:
    """Totals and per-day series for a user's pulses in [start, end].

    Both views are computed from the same pulses with the same threshold,
    so the by_day seconds always add up to total_seconds.
    """
    pulses = store.get_pulses(user_id, start, end, _filters(project, tool))
    logger.debug(
        "Aggregating %d pulses for user %s (%s backend)", len(pulses), user_id, store.dialect
    )

    totals = aggregate_stats(pulses, gap_threshold_ms)
    by_day = aggregate_by_day(pulses, start, end, gap_threshold_ms)
    return StatsResponse(**totals.model_dump(), by_day=by_day)


def get_sessions(
    store: PulseStore,
    user_id: str,
    start: int,
    end: int,
    *,
    project: str | None = None,
    tool: str | None = None,
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> list[Session]:
    pulses = store.get_pulses(user_id, start, end, _filters(project, tool))
    return group_into_sessions(pulses, user_id, gap_threshold_ms)
