"""Screen components for the queue monitor TUI."""

from .admin_authorization import AdminAuthorizationScreen
from .queue_action_picker import PickerScreen, PriorityPickerScreen, QueueActionPickerScreen


__all__ = [
    "AdminAuthorizationScreen",
    "PickerScreen",
    "PriorityPickerScreen",
    "QueueActionPickerScreen",
]
