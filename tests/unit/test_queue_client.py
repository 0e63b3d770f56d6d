"""Tests for the queue REST client."""

from collections.abc import AsyncIterator
import json

import httpx
import pytest
from respx import MockRouter

from fleet_queue.auth import StaticTokenProvider
from fleet_queue.errors import (
    AuthenticationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    TransientError,
    ValidationError,
)
from fleet_queue.models import CancelMode, EnqueueRequest, QueueStatus
from fleet_queue.queue_client import QueueClient


QUEUE_URL = "https://fleet.example.com/api/MissionQueue"


def envelope(data=None, success: bool = True, msg: str | None = None) -> dict:
    body: dict = {"success": success, "data": data}
    if msg:
        body["msg"] = msg
    return body


@pytest.fixture
async def client() -> AsyncIterator[QueueClient]:
    """Queue client with a real httpx client for respx mocking."""
    async with httpx.AsyncClient() as http_client:
        yield QueueClient("https://fleet.example.com/", StaticTokenProvider("test-token"), http_client=http_client)


class TestReads:
    async def test_list_all(self, client: QueueClient, respx_mock: MockRouter, item_dto: dict):
        route = respx_mock.get(QUEUE_URL).mock(return_value=httpx.Response(200, json=envelope([item_dto])))

        items = await client.list_all()

        assert [i.id for i in items] == [42]
        assert route.calls.last.request.headers["Authorization"] == "Bearer test-token"

    async def test_list_all_null_data(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(QUEUE_URL).mock(return_value=httpx.Response(200, json=envelope(None)))
        assert await client.list_all() == []

    async def test_list_queued(self, client: QueueClient, respx_mock: MockRouter, item_dto: dict):
        respx_mock.get(f"{QUEUE_URL}/queued").mock(return_value=httpx.Response(200, json=envelope([item_dto])))

        items = await client.list_queued()

        assert items[0].status == QueueStatus.QUEUED

    async def test_get_by_id(self, client: QueueClient, respx_mock: MockRouter, item_dto: dict):
        respx_mock.get(f"{QUEUE_URL}/42").mock(return_value=httpx.Response(200, json=envelope(item_dto)))

        item = await client.get_by_id(42)

        assert item.mission_name == "Deliver pallet"

    @pytest.mark.parametrize(
        "dto",
        [
            {"id": 1, "status": "Paused"},
            {"id": 1, "statusCode": 99},
            {"status": "Queued"},
            "not an item",
        ],
    )
    async def test_list_all_malformed_item(self, client: QueueClient, respx_mock: MockRouter, dto):
        respx_mock.get(QUEUE_URL).mock(return_value=httpx.Response(200, json=envelope([dto])))

        with pytest.raises(ValidationError, match="Malformed"):
            await client.list_all()

    async def test_list_all_data_not_a_list(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(QUEUE_URL).mock(return_value=httpx.Response(200, json=envelope({"id": 1})))

        with pytest.raises(ValidationError):
            await client.list_all()

    async def test_get_by_id_malformed(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(f"{QUEUE_URL}/42").mock(
            return_value=httpx.Response(200, json=envelope({"id": "forty-two", "status": "Queued"}))
        )

        with pytest.raises(ValidationError):
            await client.get_by_id(42)

    async def test_get_by_id_404(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(f"{QUEUE_URL}/99").mock(
            return_value=httpx.Response(404, json=envelope(success=False, msg="Queue item not found"))
        )

        with pytest.raises(NotFoundError) as exc_info:
            await client.get_by_id(99)
        assert exc_info.value.status_code == 404

    async def test_get_by_id_success_without_data(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(f"{QUEUE_URL}/99").mock(return_value=httpx.Response(200, json=envelope(None)))

        with pytest.raises(NotFoundError):
            await client.get_by_id(99)

    async def test_get_statistics(self, client: QueueClient, respx_mock: MockRouter, statistics_dto: dict):
        respx_mock.get(f"{QUEUE_URL}/statistics").mock(return_value=httpx.Response(200, json=envelope(statistics_dto)))

        stats = await client.get_statistics()

        assert stats.total_processing == 1
        assert stats.success_rate == 97.5

    async def test_get_active_count(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(f"{QUEUE_URL}/active-count/7").mock(return_value=httpx.Response(200, json=envelope(3)))

        assert await client.get_active_count(7) == 3


class TestMutations:
    async def test_enqueue_uses_server_position(self, client: QueueClient, respx_mock: MockRouter, item_dto: dict):
        item_dto["queuePosition"] = 5
        route = respx_mock.post(QUEUE_URL).mock(return_value=httpx.Response(200, json=envelope(item_dto)))

        item = await client.enqueue(
            EnqueueRequest(mission_code="M-42", request_id="req-42", mission_name="Deliver pallet", priority=2)
        )

        assert item.queue_position == 5
        sent = json.loads(route.calls.last.request.content)
        assert sent["missionCode"] == "M-42"
        assert sent["priority"] == 2

    async def test_cancel_sends_mode_and_reason(self, client: QueueClient, respx_mock: MockRouter):
        route = respx_mock.post(f"{QUEUE_URL}/42/cancel").mock(return_value=httpx.Response(200, json=envelope()))

        await client.cancel(42, CancelMode.REDIRECT_START, reason="blocked aisle")

        assert json.loads(route.calls.last.request.content) == {
            "cancelMode": "REDIRECT_START",
            "reason": "blocked aisle",
        }

    async def test_cancel_defaults_to_force(self, client: QueueClient, respx_mock: MockRouter):
        route = respx_mock.post(f"{QUEUE_URL}/42/cancel").mock(return_value=httpx.Response(200, json=envelope()))

        await client.cancel(42)

        assert json.loads(route.calls.last.request.content) == {"cancelMode": "FORCE"}

    async def test_cancel_terminal_conflict(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.post(f"{QUEUE_URL}/42/cancel").mock(
            return_value=httpx.Response(409, json=envelope(success=False, msg="Item already completed"))
        )

        with pytest.raises(ConflictError) as exc_info:
            await client.cancel(42)
        assert not isinstance(exc_info.value, InvalidStateError)
        assert exc_info.value.user_message() == "Item already completed"

    async def test_retry(self, client: QueueClient, respx_mock: MockRouter, item_dto: dict):
        item_dto["retryCount"] = 2
        respx_mock.post(f"{QUEUE_URL}/42/retry").mock(return_value=httpx.Response(200, json=envelope(item_dto)))

        item = await client.retry(42)

        assert item.retry_count == 2

    async def test_retry_invalid_state(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.post(f"{QUEUE_URL}/42/retry").mock(
            return_value=httpx.Response(409, json=envelope(success=False, msg="Only failed items can be retried"))
        )

        with pytest.raises(InvalidStateError):
            await client.retry(42)

    async def test_change_priority(self, client: QueueClient, respx_mock: MockRouter, item_dto: dict):
        item_dto["priority"] = 1
        route = respx_mock.put(f"{QUEUE_URL}/42/priority").mock(
            return_value=httpx.Response(200, json=envelope(item_dto))
        )

        item = await client.change_priority(42, 1)

        assert item.priority == 1
        assert json.loads(route.calls.last.request.content) == {"priority": 1}

    async def test_move_up_and_down(self, client: QueueClient, respx_mock: MockRouter):
        up = respx_mock.post(f"{QUEUE_URL}/42/move-up").mock(return_value=httpx.Response(200, json=envelope()))
        down = respx_mock.post(f"{QUEUE_URL}/42/move-down").mock(return_value=httpx.Response(200, json=envelope()))

        await client.move_up(42)
        await client.move_down(42)

        assert up.called and down.called

    async def test_move_at_boundary(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.post(f"{QUEUE_URL}/42/move-up").mock(
            return_value=httpx.Response(409, json=envelope(success=False, msg="Already at the top"))
        )

        with pytest.raises(InvalidStateError):
            await client.move_up(42)


class TestFailures:
    async def test_success_false_on_200(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(QUEUE_URL).mock(
            return_value=httpx.Response(200, json=envelope(success=False, msg="Queue is locked"))
        )

        with pytest.raises(ValidationError) as exc_info:
            await client.list_all()
        assert exc_info.value.user_message() == "Queue is locked"

    async def test_401(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(QUEUE_URL).mock(return_value=httpx.Response(401))

        with pytest.raises(AuthenticationError):
            await client.list_all()

    async def test_500_is_transient(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(QUEUE_URL).mock(return_value=httpx.Response(500, text="boom"))

        with pytest.raises(TransientError) as exc_info:
            await client.list_all()
        assert exc_info.value.retryable

    async def test_network_error_is_transient(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(QUEUE_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(TransientError):
            await client.list_all()

    async def test_timeout_is_transient(self, client: QueueClient, respx_mock: MockRouter):
        respx_mock.get(QUEUE_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(TransientError, match="timed out"):
            await client.list_all()

    async def test_missing_token_makes_no_request(self, respx_mock: MockRouter):
        async with httpx.AsyncClient() as http_client:
            client = QueueClient("https://fleet.example.com", StaticTokenProvider(None), http_client=http_client)

            with pytest.raises(PreconditionFailedError):
                await client.list_all()

        assert len(respx_mock.calls) == 0


class TestClientLifecycle:
    async def test_owns_and_closes_client(self):
        client = QueueClient("https://fleet.example.com", StaticTokenProvider("t"))
        http = client.http

        async with client:
            pass

        assert http.is_closed

    async def test_shared_client_left_open(self):
        async with httpx.AsyncClient() as http_client:
            async with QueueClient("https://fleet.example.com", StaticTokenProvider("t"), http_client=http_client):
                pass
            assert not http_client.is_closed

    def test_custom_queue_path(self):
        client = QueueClient("https://fleet.example.com/", StaticTokenProvider("t"), queue_path="/v2/queue")
        assert client.queue_url == "https://fleet.example.com/v2/queue"
