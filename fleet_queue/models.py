"""Data models for the mission queue."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any


class QueueStatus(IntEnum):
    """Status of a queue item, matching the server's statusCode."""

    QUEUED = 0
    PROCESSING = 1
    ASSIGNED = 2
    COMPLETED = 3
    FAILED = 4
    CANCELLED = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: int | str) -> "QueueStatus":
        """Accept either the numeric code or the status name."""
        if isinstance(value, str) and not value.isdigit():
            return cls[value.strip().upper()]
        return cls(int(value))


# Valid state transitions: current_status -> set of allowed next statuses
VALID_TRANSITIONS: dict[QueueStatus, set[QueueStatus]] = {
    QueueStatus.QUEUED: {QueueStatus.PROCESSING, QueueStatus.CANCELLED},
    QueueStatus.PROCESSING: {QueueStatus.ASSIGNED, QueueStatus.CANCELLED},
    QueueStatus.ASSIGNED: {QueueStatus.COMPLETED, QueueStatus.FAILED, QueueStatus.CANCELLED},
    QueueStatus.FAILED: {QueueStatus.QUEUED},
    QueueStatus.COMPLETED: set(),
    QueueStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {QueueStatus.COMPLETED, QueueStatus.CANCELLED}
ACTIVE_STATUSES = {QueueStatus.QUEUED, QueueStatus.PROCESSING, QueueStatus.ASSIGNED}
WAITING_STATUSES = {QueueStatus.QUEUED, QueueStatus.PROCESSING}
HISTORY_STATUSES = {QueueStatus.COMPLETED, QueueStatus.FAILED, QueueStatus.CANCELLED}


class CancelMode(str, Enum):
    """How the server should cancel a mission."""

    FORCE = "FORCE"
    NORMAL = "NORMAL"
    REDIRECT_START = "REDIRECT_START"


class ConnectionState(str, Enum):
    """State of the push channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class PushEventKind(str, Enum):
    """Kinds of change notification sent over the push channel."""

    QUEUE_CHANGED = "queue_changed"
    STATISTICS_CHANGED = "statistics_changed"
    MISSION_STATUS_CHANGED = "mission_status_changed"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a server timestamp. Values without a zone are UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class QueueItem:
    """One mission tracked through its lifecycle in the queue."""

    id: int
    mission_name: str
    status: QueueStatus
    priority: int
    queue_position: int
    mission_code: str = ""
    request_id: str = ""
    saved_mission_id: int | None = None
    assigned_robot_id: str | None = None
    created_at: datetime | None = None
    processing_started_at: datetime | None = None
    assigned_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    wait_time_seconds: float = 0.0
    retry_count: int = 0
    max_retries: int = 0
    error_message: str | None = None
    robot_type_filter: str | None = None
    preferred_robot_ids: str | None = None

    @classmethod
    def from_dto(cls, data: dict[str, Any]) -> "QueueItem":
        """Build an item from the server's camelCase DTO."""
        if "statusCode" in data:
            status = QueueStatus.parse(data["statusCode"])
        else:
            status = QueueStatus.parse(data["status"])

        return cls(
            id=int(data["id"]),
            mission_name=data.get("missionName") or "",
            status=status,
            priority=int(data.get("priority", 3)),
            queue_position=int(data.get("queuePosition") or 0),
            mission_code=data.get("missionCode") or "",
            request_id=data.get("requestId") or "",
            saved_mission_id=data.get("savedMissionId"),
            assigned_robot_id=data.get("assignedRobotId"),
            created_at=parse_timestamp(data.get("createdUtc")),
            processing_started_at=parse_timestamp(data.get("processingStartedUtc")),
            assigned_at=parse_timestamp(data.get("assignedUtc")),
            completed_at=parse_timestamp(data.get("completedUtc")),
            created_by=data.get("createdBy"),
            wait_time_seconds=float(data.get("waitTimeSeconds") or 0.0),
            retry_count=int(data.get("retryCount") or 0),
            max_retries=int(data.get("maxRetries") or 0),
            error_message=data.get("errorMessage"),
            robot_type_filter=data.get("robotTypeFilter"),
            preferred_robot_ids=data.get("preferredRobotIds"),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_cancel(self) -> bool:
        return can_cancel(self)

    @property
    def can_retry(self) -> bool:
        return can_retry(self)

    @property
    def can_move_up(self) -> bool:
        return can_move_up(self)

    @property
    def can_move_down(self) -> bool:
        return can_move_down(self)


@dataclass(frozen=True)
class QueueStatistics:
    """Aggregate counts computed by the server."""

    total_queued: int = 0
    total_processing: int = 0
    total_assigned: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_cancelled: int = 0
    average_wait_time_seconds: float = 0.0
    success_rate: float = 0.0

    @classmethod
    def from_dto(cls, data: dict[str, Any]) -> "QueueStatistics":
        return cls(
            total_queued=int(data.get("totalQueued") or 0),
            total_processing=int(data.get("totalProcessing") or 0),
            total_assigned=int(data.get("totalAssigned") or 0),
            total_completed=int(data.get("totalCompleted") or 0),
            total_failed=int(data.get("totalFailed") or 0),
            total_cancelled=int(data.get("totalCancelled") or 0),
            average_wait_time_seconds=float(data.get("averageWaitTimeSeconds") or 0.0),
            success_rate=float(data.get("successRate") or 0.0),
        )


@dataclass
class EnqueueRequest:
    """Request to add a mission to the queue.

    Priority is optional; the server assigns its default when omitted.
    """

    mission_code: str
    request_id: str
    mission_name: str
    mission_payload: str = "{}"
    saved_mission_id: int | None = None
    priority: int | None = None
    robot_type_filter: str | None = None
    preferred_robot_ids: list[str] = field(default_factory=list)

    def to_dto(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "missionCode": self.mission_code,
            "requestId": self.request_id,
            "missionName": self.mission_name,
            "missionRequestJson": self.mission_payload,
        }
        if self.saved_mission_id is not None:
            body["savedMissionId"] = self.saved_mission_id
        if self.priority is not None:
            body["priority"] = self.priority
        if self.robot_type_filter:
            body["robotTypeFilter"] = self.robot_type_filter
        if self.preferred_robot_ids:
            body["preferredRobotIds"] = ",".join(self.preferred_robot_ids)
        return body


@dataclass(frozen=True)
class MissionStatusChange:
    """Payload of a MissionStatusChanged notification."""

    mission_id: int
    status: int
    status_name: str = ""

    @classmethod
    def from_dto(cls, data: dict[str, Any]) -> "MissionStatusChange":
        return cls(
            mission_id=int(data.get("missionId", 0)),
            status=int(data.get("status", -1)),
            status_name=data.get("statusName") or "",
        )


@dataclass(frozen=True)
class PushEvent:
    """A single change notification received from the push channel."""

    kind: PushEventKind
    status_change: MissionStatusChange | None = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class QueueSnapshot:
    """Cached copy of the server queue at a point in time."""

    items: tuple[QueueItem, ...] = ()
    refreshed_at: datetime | None = None

    def get(self, item_id: int) -> QueueItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class QueuePartitions:
    """Derived views over a snapshot."""

    active: tuple[QueueItem, ...] = ()
    queued: tuple[QueueItem, ...] = ()
    history: tuple[QueueItem, ...] = ()


def can_cancel(item: QueueItem) -> bool:
    return item.status in ACTIVE_STATUSES


def can_retry(item: QueueItem) -> bool:
    return item.status == QueueStatus.FAILED and item.retry_count < item.max_retries


def can_move_up(item: QueueItem) -> bool:
    return item.status == QueueStatus.QUEUED and item.queue_position > 1


def can_move_down(item: QueueItem) -> bool:
    # Upper boundary is checked by the server
    return item.status == QueueStatus.QUEUED


def can_change_priority(item: QueueItem) -> bool:
    return item.status == QueueStatus.QUEUED


def partition_items(items: tuple[QueueItem, ...] | list[QueueItem]) -> QueuePartitions:
    """Split items into active, queued and history subsets."""
    return QueuePartitions(
        active=tuple(i for i in items if i.status in ACTIVE_STATUSES),
        queued=tuple(i for i in items if i.status in WAITING_STATUSES),
        history=tuple(i for i in items if i.status in HISTORY_STATUSES),
    )
