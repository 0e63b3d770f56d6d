"""Async client for the mission queue REST API."""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Any, TypeVar

import httpx

from .auth import TokenProvider
from .errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    QueueClientError,
    TransientError,
    ValidationError,
    error_for_status,
)
from .models import CancelMode, EnqueueRequest, QueueItem, QueueStatistics


logger = logging.getLogger(__name__)


class QueueClient:
    """Typed wrapper around the queue endpoints.

    Every response is an envelope ``{success, msg?, data?}``. A ``success`` of
    false is treated as a failure even when the HTTP status is 200. The client
    never retries; retry policy belongs to the caller.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        *,
        queue_path: str = "/api/MissionQueue",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the queue client.

        Args:
            base_url: Fleet server URL.
            token_provider: Source of the bearer token.
            queue_path: Path of the queue resource on the server.
            timeout: Request timeout in seconds (ignored for a shared client).
            http_client: Shared httpx client. Created on demand when omitted.
        """
        self.base_url = base_url.rstrip("/")
        self.queue_url = f"{self.base_url}{queue_path}"
        self.token_provider = token_provider
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "QueueClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    # -- Reads --

    async def list_all(self) -> list[QueueItem]:
        """Fetch every queue item regardless of status."""
        data = await self._request("GET", "")
        return _parse_items(data, "GET queue")

    async def list_queued(self) -> list[QueueItem]:
        """Fetch only Queued and Processing items."""
        data = await self._request("GET", "/queued")
        return _parse_items(data, "GET queued items")

    async def get_by_id(self, item_id: int) -> QueueItem:
        data = await self._request("GET", f"/{item_id}")
        if not data:
            raise NotFoundError(f"Queue item {item_id} not found", status_code=404)
        return _parse(QueueItem.from_dto, data, f"queue item {item_id}")

    async def get_statistics(self) -> QueueStatistics:
        data = await self._request("GET", "/statistics")
        if data is None:
            raise TransientError("Failed to get statistics")
        return _parse(QueueStatistics.from_dto, data, "queue statistics")

    async def get_active_count(self, saved_mission_id: int) -> int:
        """Number of Queued/Processing/Assigned instances of a saved mission."""
        data = await self._request("GET", f"/active-count/{saved_mission_id}")
        try:
            return int(data or 0)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Malformed active count for mission {saved_mission_id}: {data!r}") from e

    # -- Mutations --

    async def enqueue(self, request: EnqueueRequest) -> QueueItem:
        """Add a mission to the queue.

        The returned item's queue_position is assigned by the server.
        """
        data = await self._request("POST", "", json=request.to_dto())
        if not data:
            raise ValidationError("Failed to add to queue")
        item = _parse(QueueItem.from_dto, data, "enqueued item")
        logger.info(f"Mission {item.mission_name} added to queue at position {item.queue_position}")
        return item

    async def cancel(
        self,
        item_id: int,
        mode: CancelMode = CancelMode.FORCE,
        reason: str | None = None,
    ) -> None:
        """Cancel a queue item. Raises ConflictError when it is already terminal."""
        body: dict[str, Any] = {"cancelMode": CancelMode(mode).value}
        if reason:
            body["reason"] = reason
        await self._request("POST", f"/{item_id}/cancel", json=body, conflict_cls=ConflictError)
        logger.info(f"Queue item {item_id} cancelled ({CancelMode(mode).value})")

    async def retry(self, item_id: int) -> QueueItem:
        data = await self._request("POST", f"/{item_id}/retry", json={}, conflict_cls=InvalidStateError)
        if not data:
            raise ValidationError("Failed to retry mission")
        item = _parse(QueueItem.from_dto, data, f"retried item {item_id}")
        logger.info(f"Queue item {item_id} queued for retry (attempt {item.retry_count})")
        return item

    async def change_priority(self, item_id: int, priority: int) -> QueueItem:
        data = await self._request(
            "PUT",
            f"/{item_id}/priority",
            json={"priority": priority},
            conflict_cls=InvalidStateError,
        )
        if not data:
            raise ValidationError("Failed to change priority")
        logger.info(f"Queue item {item_id} priority changed to {priority}")
        return _parse(QueueItem.from_dto, data, f"queue item {item_id}")

    async def move_up(self, item_id: int) -> None:
        await self._request("POST", f"/{item_id}/move-up", json={}, conflict_cls=InvalidStateError)
        logger.info(f"Queue item {item_id} moved up")

    async def move_down(self, item_id: int) -> None:
        await self._request("POST", f"/{item_id}/move-down", json={}, conflict_cls=InvalidStateError)
        logger.info(f"Queue item {item_id} moved down")

    # -- Transport --

    def _headers(self) -> dict[str, str]:
        token = self.token_provider.get_token()
        if not token:
            raise PreconditionFailedError("No authentication token available")
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        conflict_cls: type[ConflictError] = ConflictError,
    ) -> Any:
        """Send a request and unwrap the response envelope.

        Returns:
            The envelope's ``data`` member (may be None).
        """
        headers = self._headers()
        url = f"{self.queue_url}{path}"

        logger.debug(f"{method} {url}")
        try:
            response = await self.http.request(method, url, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransientError(f"{method} {url} failed: {e}") from e

        body = _parse_body(response)
        server_message = body.get("msg") or body.get("message")

        if not response.is_success:
            error_cls = error_for_status(response.status_code)
            if error_cls is ConflictError:
                error_cls = conflict_cls
            raise error_cls(
                f"{method} {url} failed: HTTP {response.status_code}"
                + (f" - {server_message}" if server_message else ""),
                status_code=response.status_code,
                server_message=server_message,
            )

        if not body.get("success", False):
            raise ValidationError(
                f"{method} {url} rejected: {server_message or 'unknown error'}",
                status_code=response.status_code,
                server_message=server_message,
            )

        return body.get("data")


T = TypeVar("T")


def _parse(parser: Callable[[dict[str, Any]], T], data: Any, what: str) -> T:
    """Build a model from a DTO, turning malformed data into a ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError(f"Malformed {what}: expected an object, got {type(data).__name__}")
    try:
        return parser(data)
    except (KeyError, ValueError, TypeError) as e:
        raise ValidationError(f"Malformed {what}: {e!r}") from e


def _parse_items(data: Any, what: str) -> list[QueueItem]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValidationError(f"Malformed response to {what}: expected a list, got {type(data).__name__}")
    return [_parse(QueueItem.from_dto, d, f"item in response to {what}") for d in data]


def _parse_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON envelope, tolerating empty or non-JSON bodies."""
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {}
    if not isinstance(body, dict):
        return {}
    return body


__all__ = ["QueueClient", "QueueClientError"]
