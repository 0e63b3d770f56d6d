"""Shared test fixtures for Fleet Queue."""

from pathlib import Path

from click.testing import CliRunner
import pytest

from fleet_queue.auth import StaticTokenProvider
from fleet_queue.models import QueueStatus

from tests.mocks import FakeQueueClient, make_item


# Path to test data directory
TEST_DATA_DIR = Path(__file__).parent / "data"

SERVER_URL = "https://fleet.example.com"
QUEUE_URL = f"{SERVER_URL}/api/MissionQueue"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def token_provider() -> StaticTokenProvider:
    return StaticTokenProvider("test-token")


@pytest.fixture
def item_dto() -> dict:
    """A queue item as the server sends it."""
    return {
        "id": 42,
        "missionCode": "M-42",
        "requestId": "req-42",
        "savedMissionId": 7,
        "missionName": "Deliver pallet",
        "status": "Queued",
        "statusCode": 0,
        "priority": 2,
        "queuePosition": 1,
        "assignedRobotId": None,
        "createdUtc": "2024-05-01T10:00:00",
        "processingStartedUtc": None,
        "assignedUtc": None,
        "completedUtc": None,
        "createdBy": "operator",
        "waitTimeSeconds": 125.0,
        "retryCount": 0,
        "maxRetries": 3,
        "errorMessage": None,
        "robotTypeFilter": "AMR",
        "preferredRobotIds": "R1,R2",
    }


@pytest.fixture
def statistics_dto() -> dict:
    return {
        "totalQueued": 2,
        "totalProcessing": 1,
        "totalAssigned": 1,
        "totalCompleted": 39,
        "totalFailed": 1,
        "totalCancelled": 0,
        "averageWaitTimeSeconds": 42.5,
        "successRate": 97.5,
    }


@pytest.fixture
def sample_items() -> list:
    """One item in every status."""
    return [
        make_item(1, QueueStatus.QUEUED, queue_position=1),
        make_item(2, QueueStatus.QUEUED, queue_position=2),
        make_item(3, QueueStatus.PROCESSING),
        make_item(4, QueueStatus.ASSIGNED, assigned_robot_id="R1"),
        make_item(5, QueueStatus.COMPLETED),
        make_item(6, QueueStatus.FAILED, retry_count=1),
        make_item(7, QueueStatus.CANCELLED),
    ]


@pytest.fixture
def fake_client(sample_items: list) -> FakeQueueClient:
    return FakeQueueClient(sample_items)


@pytest.fixture
def valid_config_path() -> Path:
    """Path to valid test config."""
    return TEST_DATA_DIR / "config_valid.yaml"


@pytest.fixture
def invalid_config_path() -> Path:
    """Path to invalid test config."""
    return TEST_DATA_DIR / "config_invalid.yaml"


@pytest.fixture
def env_config_path() -> Path:
    """Path to config with environment variable references."""
    return TEST_DATA_DIR / "config_with_env.yaml"


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config pointing at the test server.

    Returns:
        Path to the config file.
    """
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"""\
server:
  url: "{SERVER_URL}"
  token: "test-token"
push:
  enabled: false
monitor:
  poll_interval_seconds: 0.05
logging:
  level: "WARNING"
  file: "{tmp_path / 'fleet_queue.log'}"
""")
    return config_path


@pytest.fixture
def privileged_config_file(temp_config_file: Path) -> Path:
    """Same as temp_config_file, but the session skips admin authorization."""
    content = temp_config_file.read_text().replace(
        "monitor:\n", "monitor:\n  privileged: true\n"
    )
    temp_config_file.write_text(content)
    return temp_config_file


@pytest.fixture
def isolated_filesystem(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Change to an isolated temporary directory.

    Returns:
        Path to the temporary directory.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path
