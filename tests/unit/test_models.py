"""Tests for queue data models, capability gates and partitioning."""

from datetime import timezone

import pytest

from fleet_queue.models import (
    ACTIVE_STATUSES,
    VALID_TRANSITIONS,
    EnqueueRequest,
    MissionStatusChange,
    QueueItem,
    QueueSnapshot,
    QueueStatistics,
    QueueStatus,
    can_cancel,
    can_change_priority,
    can_move_down,
    can_move_up,
    can_retry,
    parse_timestamp,
    partition_items,
)
from tests.mocks import make_item


class TestQueueStatus:
    """Tests for QueueStatus parsing."""

    def test_codes_match_server(self):
        assert [s.value for s in QueueStatus] == [0, 1, 2, 3, 4, 5]

    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, QueueStatus.QUEUED),
            ("4", QueueStatus.FAILED),
            ("Processing", QueueStatus.PROCESSING),
            ("cancelled", QueueStatus.CANCELLED),
        ],
    )
    def test_parse(self, value, expected):
        assert QueueStatus.parse(value) == expected

    def test_parse_unknown(self):
        with pytest.raises((KeyError, ValueError)):
            QueueStatus.parse(9)

    def test_label(self):
        assert QueueStatus.ASSIGNED.label == "Assigned"

    def test_terminal_statuses_have_no_transitions(self):
        assert VALID_TRANSITIONS[QueueStatus.COMPLETED] == set()
        assert VALID_TRANSITIONS[QueueStatus.CANCELLED] == set()

    def test_failed_only_goes_back_to_queued(self):
        assert VALID_TRANSITIONS[QueueStatus.FAILED] == {QueueStatus.QUEUED}

    def test_every_active_status_can_be_cancelled(self):
        for status in ACTIVE_STATUSES:
            assert QueueStatus.CANCELLED in VALID_TRANSITIONS[status]


class TestQueueItemFromDto:
    """Tests for building items from server DTOs."""

    def test_from_dto(self, item_dto: dict):
        item = QueueItem.from_dto(item_dto)

        assert item.id == 42
        assert item.mission_name == "Deliver pallet"
        assert item.status == QueueStatus.QUEUED
        assert item.priority == 2
        assert item.queue_position == 1
        assert item.saved_mission_id == 7
        assert item.wait_time_seconds == 125.0
        assert item.max_retries == 3
        assert item.robot_type_filter == "AMR"
        assert item.preferred_robot_ids == "R1,R2"
        assert item.created_by == "operator"

    def test_status_code_wins_over_name(self, item_dto: dict):
        item_dto["status"] = "Queued"
        item_dto["statusCode"] = 4
        assert QueueItem.from_dto(item_dto).status == QueueStatus.FAILED

    def test_status_name_without_code(self, item_dto: dict):
        del item_dto["statusCode"]
        item_dto["status"] = "Assigned"
        assert QueueItem.from_dto(item_dto).status == QueueStatus.ASSIGNED

    def test_timestamps_without_zone_are_utc(self, item_dto: dict):
        item = QueueItem.from_dto(item_dto)

        assert item.created_at is not None
        assert item.created_at.tzinfo == timezone.utc
        assert item.created_at.hour == 10
        assert item.completed_at is None

    def test_missing_optional_fields(self):
        item = QueueItem.from_dto({"id": 1, "statusCode": 0})

        assert item.mission_name == ""
        assert item.priority == 3
        assert item.queue_position == 0
        assert item.retry_count == 0


class TestParseTimestamp:
    def test_zulu_suffix(self):
        parsed = parse_timestamp("2024-05-01T10:00:00Z")
        assert parsed is not None
        assert parsed.tzinfo is not None

    def test_garbage_returns_none(self):
        assert parse_timestamp("not a date") is None

    def test_empty_returns_none(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None


class TestCapabilityGates:
    """Tests for the per-item action checks."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            (QueueStatus.QUEUED, True),
            (QueueStatus.PROCESSING, True),
            (QueueStatus.ASSIGNED, True),
            (QueueStatus.COMPLETED, False),
            (QueueStatus.FAILED, False),
            (QueueStatus.CANCELLED, False),
        ],
    )
    def test_can_cancel(self, status, expected):
        item = make_item(1, status)
        assert can_cancel(item) is expected
        assert item.can_cancel is expected

    @pytest.mark.parametrize(
        "status,retry_count,max_retries,expected",
        [
            (QueueStatus.FAILED, 2, 3, True),
            (QueueStatus.FAILED, 3, 3, False),
            (QueueStatus.QUEUED, 0, 3, False),
            (QueueStatus.FAILED, 0, 0, False),
            (QueueStatus.CANCELLED, 0, 3, False),
        ],
    )
    def test_can_retry(self, status, retry_count, max_retries, expected):
        item = make_item(1, status, retry_count=retry_count, max_retries=max_retries)
        assert can_retry(item) is expected

    def test_can_move_up_needs_position_above_one(self):
        assert can_move_up(make_item(1, QueueStatus.QUEUED, queue_position=2))
        assert not can_move_up(make_item(1, QueueStatus.QUEUED, queue_position=1))
        assert not can_move_up(make_item(1, QueueStatus.PROCESSING, queue_position=3))

    def test_can_move_down_only_when_queued(self):
        assert can_move_down(make_item(1, QueueStatus.QUEUED, queue_position=1))
        assert not can_move_down(make_item(1, QueueStatus.ASSIGNED))

    def test_can_change_priority_only_when_queued(self):
        assert can_change_priority(make_item(1, QueueStatus.QUEUED))
        assert not can_change_priority(make_item(1, QueueStatus.PROCESSING))

    def test_terminal_items(self):
        assert make_item(1, QueueStatus.COMPLETED).is_terminal
        assert make_item(1, QueueStatus.CANCELLED).is_terminal
        assert not make_item(1, QueueStatus.FAILED).is_terminal


class TestPartitionItems:
    """Tests for active/queued/history partitions."""

    def test_partitions(self, sample_items: list):
        parts = partition_items(sample_items)

        assert [i.id for i in parts.active] == [1, 2, 3, 4]
        assert [i.id for i in parts.queued] == [1, 2, 3]
        assert [i.id for i in parts.history] == [5, 6, 7]

    def test_partitions_are_disjoint_and_queued_is_subset(self, sample_items: list):
        parts = partition_items(sample_items)
        active_ids = {i.id for i in parts.active}
        history_ids = {i.id for i in parts.history}

        assert active_ids.isdisjoint(history_ids)
        assert {i.id for i in parts.queued} <= active_ids
        assert active_ids | history_ids == {i.id for i in sample_items}

    def test_empty(self):
        parts = partition_items([])
        assert parts.active == () and parts.queued == () and parts.history == ()


class TestQueueSnapshot:
    def test_get(self, sample_items: list):
        snapshot = QueueSnapshot(items=tuple(sample_items))

        assert snapshot.get(4).status == QueueStatus.ASSIGNED
        assert snapshot.get(99) is None
        assert len(snapshot) == 7


class TestQueueStatistics:
    def test_from_dto(self, statistics_dto: dict):
        stats = QueueStatistics.from_dto(statistics_dto)

        assert stats.total_queued == 2
        assert stats.total_completed == 39
        assert stats.average_wait_time_seconds == 42.5
        assert stats.success_rate == 97.5


class TestEnqueueRequest:
    def test_to_dto_minimal(self):
        body = EnqueueRequest(mission_code="M-1", request_id="r-1", mission_name="Pick").to_dto()

        assert body == {
            "missionCode": "M-1",
            "requestId": "r-1",
            "missionName": "Pick",
            "missionRequestJson": "{}",
        }

    def test_to_dto_full(self):
        body = EnqueueRequest(
            mission_code="M-1",
            request_id="r-1",
            mission_name="Pick",
            mission_payload='{"a": 1}',
            saved_mission_id=5,
            priority=1,
            robot_type_filter="AMR",
            preferred_robot_ids=["R1", "R2"],
        ).to_dto()

        assert body["savedMissionId"] == 5
        assert body["priority"] == 1
        assert body["robotTypeFilter"] == "AMR"
        assert body["preferredRobotIds"] == "R1,R2"
        assert body["missionRequestJson"] == '{"a": 1}'


class TestMissionStatusChange:
    def test_from_dto(self):
        change = MissionStatusChange.from_dto({"missionId": 42, "status": 3, "statusName": "Completed"})

        assert change.mission_id == 42
        assert change.status == 3
        assert change.status_name == "Completed"
