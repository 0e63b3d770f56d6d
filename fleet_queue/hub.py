"""Minimal SignalR JSON hub protocol client over WebSockets.

Only what the queue hub needs is implemented: the handshake, server
invocations, pings and close messages. Negotiation is skipped and the token
travels in the ``access_token`` query parameter, as browser clients do for
WebSocket transports.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, IntEnum
import json
import logging
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .auth import TokenProvider


logger = logging.getLogger(__name__)

RECORD_SEPARATOR = "\x1e"
HANDSHAKE = {"protocol": "json", "version": 1}


class HubMessageType(IntEnum):
    INVOCATION = 1
    STREAM_ITEM = 2
    COMPLETION = 3
    STREAM_INVOCATION = 4
    CANCEL_INVOCATION = 5
    PING = 6
    CLOSE = 7


class HubConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class HubConnectionError(RuntimeError):
    """Raised when the hub cannot be reached or rejects the handshake."""


def encode_message(message: dict[str, Any]) -> str:
    """Serialize one protocol record."""
    return json.dumps(message, separators=(",", ":")) + RECORD_SEPARATOR


def parse_messages(payload: str | bytes) -> list[dict[str, Any]]:
    """Split a frame into its JSON records.

    Raises:
        ValueError: The frame is not UTF-8, a record is not JSON or is not an object.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    messages = []
    for record in payload.split(RECORD_SEPARATOR):
        if not record.strip():
            continue
        message = json.loads(record)
        if not isinstance(message, dict):
            raise ValueError(f"Hub record is not an object: {record[:80]!r}")
        messages.append(message)
    return messages


def build_hub_url(url: str, token: str | None) -> str:
    """Turn an http(s) hub URL into a ws(s) URL carrying the access token."""
    parts = urlsplit(url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    query = parts.query
    if token:
        token_query = urlencode({"access_token": token})
        query = f"{query}&{token_query}" if query else token_query
    return urlunsplit((scheme, parts.netloc, parts.path, query, parts.fragment))


@dataclass
class BackoffPolicy:
    """Exponential reconnect delays: base * 2**n, capped at max_seconds.

    With the defaults this yields 1, 2, 4, 8, 10, 10, ... seconds and never
    gives up. Set max_retries to bound it.
    """

    base_seconds: float = 1.0
    max_seconds: float = 10.0
    max_retries: int | None = None

    def next_delay(self, previous_retry_count: int) -> float | None:
        """Delay before the next attempt, or None to stop retrying."""
        if self.max_retries is not None and previous_retry_count >= self.max_retries:
            return None
        return min(self.max_seconds, self.base_seconds * (2**previous_retry_count))


Connector = Callable[..., Awaitable[Any]]
LifecycleCallback = Callable[[BaseException | None], None]


class HubConnection:
    """A hub connection that reconnects on its own after transient drops.

    Lifecycle callbacks mirror the usual hub client hooks: ``reconnecting`` when
    a live connection drops, ``reconnected`` when it comes back and ``close``
    when reconnection is abandoned or the server closes for good. An explicit
    ``stop()`` does not fire ``close``.
    """

    def __init__(
        self,
        url: str,
        token_provider: TokenProvider,
        *,
        backoff: BackoffPolicy | None = None,
        ping_interval: float = 15.0,
        open_timeout: float = 10.0,
        connector: Connector | None = None,
    ):
        self.url = url
        self.token_provider = token_provider
        self.backoff = backoff or BackoffPolicy()
        self.ping_interval = ping_interval
        self.open_timeout = open_timeout
        self._connector = connector or websockets.connect
        self.state = HubConnectionState.DISCONNECTED

        self._handlers: dict[str, list[Callable[..., None]]] = {}
        self._on_reconnecting: list[LifecycleCallback] = []
        self._on_reconnected: list[Callable[[], None]] = []
        self._on_close: list[LifecycleCallback] = []

        self._ws: Any = None
        self._run_task: asyncio.Task | None = None
        self._ping_task: asyncio.Task | None = None
        self._stopping = False
        self._backlog: list[dict[str, Any]] = []

    # -- Registration --

    def on(self, target: str, handler: Callable[..., None]) -> None:
        """Call handler(*arguments) for every invocation of target."""
        self._handlers.setdefault(target.lower(), []).append(handler)

    def on_reconnecting(self, callback: LifecycleCallback) -> None:
        self._on_reconnecting.append(callback)

    def on_reconnected(self, callback: Callable[[], None]) -> None:
        self._on_reconnected.append(callback)

    def on_close(self, callback: LifecycleCallback) -> None:
        self._on_close.append(callback)

    # -- Lifecycle --

    async def start(self) -> None:
        """Open the socket and complete the handshake.

        Raises:
            HubConnectionError: The hub is unreachable or refused the handshake.
        """
        if self.state != HubConnectionState.DISCONNECTED:
            raise HubConnectionError(f"Cannot start a connection in state {self.state.value}")

        self._stopping = False
        self.state = HubConnectionState.CONNECTING
        try:
            await self._open()
        except HubConnectionError:
            self.state = HubConnectionState.DISCONNECTED
            raise

        self.state = HubConnectionState.CONNECTED
        self._run_task = asyncio.create_task(self._run())
        logger.info(f"Hub connected: {self.url}")

    async def stop(self) -> None:
        """Close the connection without triggering reconnection."""
        self._stopping = True
        await self._close_socket()

        task = self._run_task
        self._run_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.state = HubConnectionState.DISCONNECTED
        logger.debug(f"Hub stopped: {self.url}")

    async def _open(self) -> None:
        url = build_hub_url(self.url, self.token_provider.get_token())
        try:
            ws = await asyncio.wait_for(self._connector(url), timeout=self.open_timeout)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise HubConnectionError(f"Failed to connect to {self.url}: {e}") from e

        try:
            await ws.send(encode_message(HANDSHAKE))
            reply = await asyncio.wait_for(ws.recv(), timeout=self.open_timeout)
            messages = parse_messages(reply)
        except (OSError, WebSocketException, asyncio.TimeoutError, ValueError) as e:
            await _quiet_close(ws)
            raise HubConnectionError(f"Handshake with {self.url} failed: {e}") from e

        if not messages or messages[0].get("error"):
            await _quiet_close(ws)
            error = messages[0].get("error") if messages else "empty handshake response"
            raise HubConnectionError(f"Hub rejected handshake: {error}")

        self._ws = ws
        self._backlog = messages[1:]
        self._ping_task = asyncio.create_task(self._ping_loop(ws))

    async def _close_socket(self) -> None:
        if self._ping_task is not None:
            self._ping_task.cancel()
            self._ping_task = None
        ws, self._ws = self._ws, None
        if ws is not None:
            await _quiet_close(ws)

    async def _run(self) -> None:
        while not self._stopping:
            error: BaseException | None = None
            allow_reconnect = True
            try:
                allow_reconnect = await self._receive_loop()
            except (ConnectionClosed, OSError) as e:
                error = e
            except ValueError as e:
                # Unreadable frame: drop this socket and reconnect
                logger.warning(f"Malformed hub frame from {self.url}: {e}")
                error = e

            if self._stopping:
                return

            await self._close_socket()
            if allow_reconnect and await self._reconnect(error):
                continue

            self.state = HubConnectionState.DISCONNECTED
            logger.warning(f"Hub connection closed: {error or 'server closed the connection'}")
            self._fire(self._on_close, error)
            return

    async def _receive_loop(self) -> bool:
        """Read frames until the server closes.

        Returns:
            Whether the server allows a reconnect after its close message.
        """
        for message in self._backlog:
            self._dispatch(message)
        self._backlog = []

        while True:
            raw = await self._ws.recv()
            for message in parse_messages(raw):
                if message.get("type") == HubMessageType.CLOSE:
                    if message.get("error"):
                        logger.warning(f"Hub closed by server: {message['error']}")
                    return bool(message.get("allowReconnect", False))
                self._dispatch(message)

    async def _reconnect(self, error: BaseException | None) -> bool:
        self.state = HubConnectionState.RECONNECTING
        logger.warning(f"Hub connection lost, reconnecting: {error}")
        self._fire(self._on_reconnecting, error)

        retries = 0
        while True:
            delay = self.backoff.next_delay(retries)
            if delay is None:
                return False
            await asyncio.sleep(delay)
            if self._stopping:
                return False
            try:
                await self._open()
            except HubConnectionError as e:
                retries += 1
                logger.warning(f"Reconnect attempt {retries} failed: {e}")
                continue

            self.state = HubConnectionState.CONNECTED
            logger.info(f"Hub reconnected after {retries + 1} attempt(s)")
            for callback in list(self._on_reconnected):
                _safe_call(callback)
            return True

    async def _ping_loop(self, ws: Any) -> None:
        ping = encode_message({"type": int(HubMessageType.PING)})
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await ws.send(ping)
            except (ConnectionClosed, OSError):
                return

    def _dispatch(self, message: dict[str, Any]) -> None:
        if message.get("type") != HubMessageType.INVOCATION:
            return
        target = str(message.get("target", ""))
        handlers = self._handlers.get(target.lower())
        if not handlers:
            logger.debug(f"No handler for hub method {target}")
            return
        arguments = message.get("arguments") or []
        for handler in list(handlers):
            _safe_call(handler, *arguments)

    @staticmethod
    def _fire(callbacks: list[LifecycleCallback], error: BaseException | None) -> None:
        for callback in list(callbacks):
            _safe_call(callback, error)


def _safe_call(callback: Callable[..., None], *args: Any) -> None:
    # Subscriber failures must not break the receive loop
    try:
        callback(*args)
    except Exception:
        logger.exception(f"Hub callback {callback!r} failed")


async def _quiet_close(ws: Any) -> None:
    try:
        await ws.close()
    except (OSError, WebSocketException):
        pass
