"""Display helpers shared by the CLI and the TUI."""

from datetime import datetime, timezone

from .models import QueueStatus


PRIORITY_LABELS = {
    1: "Critical",
    2: "High",
    3: "Normal",
    4: "Low",
    5: "Lowest",
}

STATUS_STYLES = {
    QueueStatus.QUEUED: "yellow",
    QueueStatus.PROCESSING: "cyan",
    QueueStatus.ASSIGNED: "blue",
    QueueStatus.COMPLETED: "green",
    QueueStatus.FAILED: "red",
    QueueStatus.CANCELLED: "dim",
}


def format_status(status: QueueStatus) -> str:
    return status.label


def format_priority(priority: int) -> str:
    return PRIORITY_LABELS.get(priority, f"Priority {priority}")


def format_wait_time(seconds: float | None) -> str:
    """Format a duration as "45s", "2m 5s" or "1h 3m"."""
    if seconds is None or seconds < 0:
        return "N/A"
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def format_robot(robot_id: str | None) -> str:
    return f"Robot {robot_id}" if robot_id else "Unassigned"


def format_age(moment: datetime | None, now: datetime | None = None) -> str:
    """Human-friendly time since moment ("just now", "5m ago", "3d ago")."""
    if moment is None:
        return "-"
    now = now or datetime.now(timezone.utc)
    delta = int((now - moment).total_seconds())
    if delta < 60:
        return "just now"
    if delta < 3600:
        return f"{delta // 60}m ago"
    if delta < 86400:
        return f"{delta // 3600}h ago"
    return f"{delta // 86400}d ago"


def format_success_rate(rate: float) -> str:
    return f"{rate:.1f}%"
