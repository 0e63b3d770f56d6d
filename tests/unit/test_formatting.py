"""Tests for display formatting helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from fleet_queue.formatting import (
    format_age,
    format_priority,
    format_robot,
    format_status,
    format_success_rate,
    format_wait_time,
)
from fleet_queue.models import QueueStatus


class TestFormatWaitTime:
    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (45, "45s"),
            (125, "2m 5s"),
            (3780, "1h 3m"),
            (0, "0s"),
            (None, "N/A"),
            (-1, "N/A"),
        ],
    )
    def test_format(self, seconds, expected):
        assert format_wait_time(seconds) == expected


class TestFormatAge:
    NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(seconds=10), "just now"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(hours=3), "3h ago"),
            (timedelta(days=2), "2d ago"),
        ],
    )
    def test_format(self, delta, expected):
        assert format_age(self.NOW - delta, now=self.NOW) == expected

    def test_missing(self):
        assert format_age(None) == "-"


class TestLabels:
    def test_priority(self):
        assert format_priority(1) == "Critical"
        assert format_priority(3) == "Normal"
        assert format_priority(9) == "Priority 9"

    def test_status(self):
        assert format_status(QueueStatus.PROCESSING) == "Processing"

    def test_robot(self):
        assert format_robot("R7") == "Robot R7"
        assert format_robot(None) == "Unassigned"

    def test_success_rate(self):
        assert format_success_rate(97.5) == "97.5%"
        assert format_success_rate(100) == "100.0%"
