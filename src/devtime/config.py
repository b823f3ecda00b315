"""Runtime settings for devtime, read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from devtime.timing import DEFAULT_GAP_THRESHOLD_MS

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "devtime" / "pulses.db"

DEFAULT_USER_ID = "local"


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""

    def __init__(self, name: str, value: str, reason: str) -> None:
        super().__init__(f"{name}={value!r}: {reason}")
        self.name = name
        self.value = value


class Settings(BaseModel):
    db_path: Path = DEFAULT_DB_PATH
    gap_threshold_ms: int = Field(default=DEFAULT_GAP_THRESHOLD_MS, gt=0)
    user_id: str = DEFAULT_USER_ID


def _positive_int(environ: Mapping[str, str], name: str) -> int | None:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(name, raw, "expected an integer") from None
    if value <= 0:
        raise ConfigError(name, raw, "must be positive")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from DEVTIME_* variables, falling back to defaults.

    Args:
        environ: Variables to read (default: os.environ).

    Raises:
        ConfigError: If a numeric variable is not a positive integer.
    """
    if environ is None:
        environ = os.environ

    values: dict[str, object] = {}
    if environ.get("DEVTIME_DB"):
        values["db_path"] = Path(environ["DEVTIME_DB"]).expanduser()
    if environ.get("DEVTIME_USER"):
        values["user_id"] = environ["DEVTIME_USER"]

    gap = _positive_int(environ, "DEVTIME_GAP_THRESHOLD_MS")
    if gap is not None:
        values["gap_threshold_ms"] = gap

    return Settings.model_validate(values)
