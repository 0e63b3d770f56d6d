"""Push channel manager: keeps the queue hub connected and fans out events."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import Any, Protocol

from .auth import TokenProvider
from .hub import BackoffPolicy, HubConnection, HubConnectionError, HubConnectionState
from .models import ConnectionState, MissionStatusChange, PushEvent, PushEventKind


logger = logging.getLogger(__name__)

EventListener = Callable[[PushEvent], None]
StateListener = Callable[[ConnectionState], None]


class HubConnectionLike(Protocol):
    """What the manager needs from a hub connection."""

    state: HubConnectionState

    def on(self, target: str, handler: Callable[..., None]) -> None: ...
    def on_reconnecting(self, callback: Callable[[BaseException | None], None]) -> None: ...
    def on_reconnected(self, callback: Callable[[], None]) -> None: ...
    def on_close(self, callback: Callable[[BaseException | None], None]) -> None: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...


class EventSubscription:
    """Bounded queue of push events for a single consumer.

    When the consumer falls behind, the oldest events are dropped; every
    delivered event is still a distinct message.
    """

    def __init__(self, manager: "PushChannelManager", maxsize: int = 100):
        self._manager = manager
        self._queue: asyncio.Queue[PushEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def put(self, event: PushEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    async def get(self) -> PushEvent:
        return await self._queue.get()

    def get_nowait(self) -> PushEvent:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._manager._subscriptions.discard(self)

    def __aiter__(self) -> "EventSubscription":
        return self

    async def __anext__(self) -> PushEvent:
        return await self.get()


class PushChannelManager:
    """Owns the hub connection for the queue.

    Two layers of retry apply. The hub connection reconnects on its own after a
    transient drop (state ``connecting``). If a start fails or the connection
    closes for good, the manager schedules a fresh start every
    ``reconnect_interval`` seconds, up to ``max_reconnect_attempts`` times, then
    settles in ``error`` until ``start_connection()`` is called again.

    Connection problems never raise into consumers; they are only visible
    through state listeners.
    """

    def __init__(
        self,
        hub_url: str,
        token_provider: TokenProvider,
        *,
        max_reconnect_attempts: int = 5,
        reconnect_interval: float = 5.0,
        backoff: BackoffPolicy | None = None,
        ping_interval: float = 15.0,
        connection_factory: Callable[[], HubConnectionLike] | None = None,
    ):
        self.hub_url = hub_url
        self.token_provider = token_provider
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_interval = reconnect_interval
        self.backoff = backoff or BackoffPolicy()
        self.ping_interval = ping_interval
        self._factory = connection_factory or self._default_factory

        self._state = ConnectionState.DISCONNECTED
        self._connection: HubConnectionLike | None = None
        self._connecting = False
        self._stopped = False
        self._retry_task: asyncio.Task | None = None
        self.reconnect_attempts = 0

        self._listeners: list[EventListener] = []
        self._state_listeners: list[StateListener] = []
        self._subscriptions: set[EventSubscription] = set()

    def _default_factory(self) -> HubConnection:
        return HubConnection(
            self.hub_url,
            self.token_provider,
            backoff=self.backoff,
            ping_interval=self.ping_interval,
        )

    # -- Observation --

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Register a callback for every push event. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback for connection state changes."""
        self._state_listeners.append(listener)
        return lambda: self._state_listeners.remove(listener) if listener in self._state_listeners else None

    def subscribe(self, maxsize: int = 100) -> EventSubscription:
        """Open a bounded async stream of push events."""
        subscription = EventSubscription(self, maxsize=maxsize)
        self._subscriptions.add(subscription)
        return subscription

    # -- Control --

    async def start_connection(self) -> None:
        """Connect now, resetting the retry budget."""
        self._stopped = False
        self.reconnect_attempts = 0
        self._cancel_retry()
        await self._connect()

    async def stop_connection(self) -> None:
        """Disconnect and cancel any scheduled retry. Safe to call repeatedly."""
        self._stopped = True
        self._cancel_retry()
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.stop()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _connect(self) -> None:
        if self._connecting:
            logger.debug("Connection attempt already in progress")
            return
        if self._connection is not None and self._connection.state == HubConnectionState.CONNECTED:
            return

        self._connecting = True
        try:
            self._set_state(ConnectionState.CONNECTING)

            # Never leave a half-open connection behind a fresh attempt
            previous, self._connection = self._connection, None
            if previous is not None:
                await previous.stop()

            connection = self._factory()
            self._register_handlers(connection)
            self._connection = connection

            try:
                await connection.start()
            except HubConnectionError as e:
                logger.warning(f"Push channel connection failed: {e}")
                if self._connection is connection:
                    self._connection = None
                if not self._stopped:
                    self._set_state(ConnectionState.ERROR)
                    self._schedule_reconnect()
                return

            if self._stopped:
                await connection.stop()
                return

            self.reconnect_attempts = 0
            self._set_state(ConnectionState.CONNECTED)
        finally:
            self._connecting = False

    def _schedule_reconnect(self) -> None:
        if self._stopped:
            return
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            logger.error(
                f"Push channel gave up after {self.reconnect_attempts} reconnect attempt(s); "
                "falling back to polling"
            )
            self._set_state(ConnectionState.ERROR)
            return

        self.reconnect_attempts += 1
        logger.info(
            f"Reconnecting push channel in {self.reconnect_interval}s "
            f"(attempt {self.reconnect_attempts}/{self.max_reconnect_attempts})"
        )
        self._retry_task = asyncio.create_task(self._retry_later())

    async def _retry_later(self) -> None:
        await asyncio.sleep(self.reconnect_interval)
        self._retry_task = None
        if not self._stopped:
            await self._connect()

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # -- Connection callbacks --

    def _register_handlers(self, connection: HubConnectionLike) -> None:
        connection.on("QueueUpdated", lambda *args: self._emit(PushEvent(PushEventKind.QUEUE_CHANGED)))
        connection.on("StatisticsUpdated", lambda *args: self._emit(PushEvent(PushEventKind.STATISTICS_CHANGED)))
        connection.on("MissionStatusChanged", self._on_mission_status_changed)

        def on_reconnecting(error: BaseException | None) -> None:
            if connection is self._connection:
                self._set_state(ConnectionState.CONNECTING)

        def on_reconnected() -> None:
            if connection is self._connection:
                self.reconnect_attempts = 0
                self._set_state(ConnectionState.CONNECTED)

        def on_close(error: BaseException | None) -> None:
            if connection is not self._connection or self._stopped:
                return
            self._connection = None
            self._set_state(ConnectionState.DISCONNECTED)
            self._schedule_reconnect()

        connection.on_reconnecting(on_reconnecting)
        connection.on_reconnected(on_reconnected)
        connection.on_close(on_close)

    def _on_mission_status_changed(self, data: Any = None, *args: Any) -> None:
        change = MissionStatusChange.from_dto(data) if isinstance(data, dict) else None
        self._emit(PushEvent(PushEventKind.MISSION_STATUS_CHANGED, status_change=change))

    def _emit(self, event: PushEvent) -> None:
        logger.debug(f"Push event: {event.kind.value}")
        for listener in list(self._listeners):
            listener(event)
        for subscription in list(self._subscriptions):
            subscription.put(event)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info(f"Push channel {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            listener(state)
