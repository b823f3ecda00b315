"""Tests for pulse validation at the ingestion boundary."""

import pytest
from pydantic import ValidationError

from devtime.models import MAX_TIMESTAMP_MS, Pulse, PulseBatch, PulseFilters
from devtime.timing import utc_date


class TestPulse:
    """Tests for Pulse validation."""

    def test_minimal_pulse(self):
        pulse = Pulse.model_validate(
            {"tool": "vscode", "timestamp": 1705600000000, "activity_type": "coding"}
        )
        assert pulse.project is None
        assert pulse.language is None

    def test_complete_pulse(self):
        pulse = Pulse.model_validate(
            {
                "tool": "claude-code",
                "timestamp": 1705600000000,
                "activity_type": "prompting",
                "project": "my-project",
                "file": "index.ts",
                "language": "typescript",
                "branch": "main",
                "machine_id": "abc123",
                "is_write": True,
                "lines": 100,
                "cursor_line": 50,
                "tokens_in": 1000,
                "tokens_out": 500,
                "session_id": "session-123",
            }
        )
        assert pulse.tokens_out == 500

    def test_rejects_invalid_activity_type(self):
        with pytest.raises(ValidationError):
            Pulse.model_validate(
                {"tool": "vscode", "timestamp": 1705600000000, "activity_type": "invalid"}
            )

    def test_rejects_missing_required_fields(self):
        with pytest.raises(ValidationError):
            Pulse.model_validate({"tool": "vscode"})

    @pytest.mark.parametrize("timestamp", [-1, 0])
    def test_rejects_non_positive_timestamp(self, timestamp):
        with pytest.raises(ValidationError):
            Pulse.model_validate(
                {"tool": "vscode", "timestamp": timestamp, "activity_type": "coding"}
            )

    def test_rejects_timestamp_past_year_9999(self):
        with pytest.raises(ValidationError):
            Pulse.model_validate(
                {"tool": "vscode", "timestamp": MAX_TIMESTAMP_MS, "activity_type": "coding"}
            )

    def test_accepts_last_representable_timestamp(self):
        pulse = Pulse(tool="vscode", timestamp=MAX_TIMESTAMP_MS - 1, activity_type="coding")
        assert utc_date(pulse.timestamp) == "9999-12-31"

    def test_pulse_is_immutable(self):
        pulse = Pulse(tool="vscode", timestamp=1, activity_type="coding")
        with pytest.raises(ValidationError):
            pulse.tool = "zed"


class TestPulseBatch:
    """Tests for PulseBatch validation."""

    def test_valid_batch(self):
        batch = PulseBatch.model_validate(
            {
                "heartbeats": [
                    {"tool": "vscode", "timestamp": 1705600000000, "activity_type": "coding"},
                    {"tool": "vscode", "timestamp": 1705600060000, "activity_type": "coding"},
                ]
            }
        )
        assert len(batch.heartbeats) == 2

    def test_rejects_empty_batch(self):
        with pytest.raises(ValidationError):
            PulseBatch.model_validate({"heartbeats": []})


class TestPulseFilters:
    """Tests for PulseFilters.matches."""

    def test_matches(self):
        pulse = Pulse(tool="zed", timestamp=1, activity_type="coding", project="a")

        assert PulseFilters().matches(pulse)
        assert PulseFilters(project="a").matches(pulse)
        assert PulseFilters(project="a", tool="zed").matches(pulse)
        assert not PulseFilters(project="b").matches(pulse)
        assert not PulseFilters(tool="vscode").matches(pulse)
