"""
Tests for the shared request/response schemas.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from percival_shared.schemas.activity import ActivityCursor
from percival_shared.schemas.projects import ProjectUpdate
from percival_shared.schemas.tasks import TagCreate, TaskUpdate
from percival_shared.schemas.time_entries import TimeEntryCreate, validate_hours


class TestHours:
    @pytest.mark.parametrize(
        "value, expected",
        [(0.25, "0.25"), (2.5, "2.50"), ("1.75", "1.75"), (24, "24.00"), (Decimal("3"), "3.00")],
    )
    def test_valid(self, value, expected):
        assert validate_hours(value) == Decimal(expected)

    @pytest.mark.parametrize("value", [0, 0.1, 0.3, 24.25, -0.25, "x", True, float("inf")])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            validate_hours(value)

    def test_date_alias(self):
        entry = TimeEntryCreate.model_validate(
            {"task_id": "5f0c7d2e-3b1a-4c8e-9d6f-2a4b6c8e0f12", "hours": 1, "date": "2024-03-01"}
        )
        assert entry.work_date.isoformat() == "2024-03-01"


class TestPatchModels:
    def test_unset_fields_are_not_dumped(self):
        patch = ProjectUpdate.model_validate({"description": None})
        assert patch.model_dump(exclude_unset=True) == {"description": None}

    def test_required_field_cannot_be_null(self):
        with pytest.raises(ValidationError):
            TaskUpdate.model_validate({"title": None})

    def test_unknown_fields_are_forbidden(self):
        with pytest.raises(ValidationError):
            TaskUpdate.model_validate({"owner": "me"})


class TestTags:
    def test_default_color(self):
        assert TagCreate(name="infra").color == "#6B7280"

    def test_color_must_be_hex(self):
        with pytest.raises(ValidationError):
            TagCreate(name="infra", color="red")


class TestCursor:
    def test_round_trip_keeps_position(self):
        stamp = datetime(2024, 3, 1, 9, 30, 15, 123456, tzinfo=timezone.utc)
        token = ActivityCursor(created_at=stamp, sequence=7).encode()
        assert "=" not in token
        decoded = ActivityCursor.decode(token)
        assert (decoded.created_at, decoded.sequence) == (stamp, 7)

    @pytest.mark.parametrize("token", ["", "garbage", "e30"])
    def test_malformed(self, token):
        with pytest.raises(ValueError):
            ActivityCursor.decode(token)
