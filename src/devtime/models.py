"""Pulse and derived time records for devtime."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ActivityType = Literal["coding", "debugging", "prompting", "browsing", "idle"]

# 10000-01-01T00:00:00Z, the first instant datetime cannot represent
MAX_TIMESTAMP_MS = 253_402_300_800_000


class Pulse(BaseModel):
    """A single activity heartbeat sent by an editor or agent integration.

    Only tool, timestamp and activity_type are required. Everything else is
    optional context used for breakdowns.
    """

    model_config = ConfigDict(frozen=True)

    tool: str
    timestamp: int = Field(gt=0, lt=MAX_TIMESTAMP_MS)
    activity_type: ActivityType

    project: str | None = None
    file: str | None = None
    language: str | None = None
    branch: str | None = None
    machine_id: str | None = None

    is_write: bool | None = None
    lines: int | None = None
    cursor_line: int | None = None

    tokens_in: int | None = None
    tokens_out: int | None = None
    session_id: str | None = None


class PulseBatch(BaseModel):
    """Batch of pulses submitted together."""

    heartbeats: list[Pulse] = Field(min_length=1)


class Session(BaseModel):
    id: str
    user_id: str
    tool: str
    project: str | None
    start_time: int
    end_time: int
    duration_seconds: int
    pulse_count: int


class AggregateResult(BaseModel):
    total_seconds: int = 0
    by_tool: dict[str, int] = Field(default_factory=dict)
    by_project: dict[str, int] = Field(default_factory=dict)
    by_language: dict[str, int] = Field(default_factory=dict)


class DayStats(BaseModel):
    date: str
    seconds: int


class StatsResponse(AggregateResult):
    """Aggregate totals plus the per-day series for the same window."""

    by_day: list[DayStats] = Field(default_factory=list)


class PulseFilters(BaseModel):
    """Exact-match filters applied by pulse stores."""

    project: str | None = None
    tool: str | None = None

    def matches(self, pulse: Pulse) -> bool:
        if self.project and pulse.project != self.project:
            return False
        if self.tool and pulse.tool != self.tool:
            return False
        return True
