"""Fleet Queue - live monitor and client for a robot fleet's mission queue."""

__version__ = "0.1.0"

from .auth import AdminCredentialGate, AllowAllGate, AuthorizationGate, DenyAllGate
from .controller import ActionOutcome, ActionStatus, QueueView, QueueViewController
from .errors import QueueClientError
from .models import CancelMode, ConnectionState, QueueItem, QueueStatistics, QueueStatus
from .push_channel import PushChannelManager
from .queue_client import QueueClient


__all__ = [
    "__version__",
    # Client
    "QueueClient",
    "QueueClientError",
    # Push channel
    "PushChannelManager",
    "ConnectionState",
    # Controller
    "QueueViewController",
    "QueueView",
    "ActionOutcome",
    "ActionStatus",
    # Authorization
    "AuthorizationGate",
    "AdminCredentialGate",
    "AllowAllGate",
    "DenyAllGate",
    # Models
    "QueueItem",
    "QueueStatistics",
    "QueueStatus",
    "CancelMode",
]
