"""Mock implementations for testing."""

from .hub import FakeConnector, FakeHubConnection, FakeHubFactory, FakeWebSocket, wait_until
from .queue_client import FakeQueueClient, make_item


__all__ = [
    "FakeConnector",
    "FakeHubConnection",
    "FakeHubFactory",
    "FakeQueueClient",
    "FakeWebSocket",
    "make_item",
    "wait_until",
]
