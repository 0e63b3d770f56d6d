"""Queue view controller: snapshot owner, refetch scheduler and action runner."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Any

from .auth import AuthorizationContext, AuthorizationGate, DenyAllGate
from .errors import NotFoundError, QueueClientError
from .models import (
    CancelMode,
    ConnectionState,
    PushEvent,
    PushEventKind,
    QueueItem,
    QueuePartitions,
    QueueSnapshot,
    QueueStatistics,
    can_cancel,
    can_change_priority,
    can_move_down,
    can_move_up,
    can_retry,
    partition_items,
)
from .push_channel import PushChannelManager
from .queue_client import QueueClient


logger = logging.getLogger(__name__)

# (message, severity) where severity is "information", "warning" or "error"
Notifier = Callable[[str, str], None]
ViewListener = Callable[["QueueView"], None]

MIN_PRIORITY = 1
MAX_PRIORITY = 5


class ActionStatus(str, Enum):
    """How a controller action ended."""

    COMPLETED = "completed"
    REJECTED_IN_PROGRESS = "rejected_in_progress"
    REJECTED_NOT_ALLOWED = "rejected_not_allowed"
    REJECTED_UNKNOWN_ITEM = "rejected_unknown_item"
    DECLINED = "declined"
    FAILED = "failed"


@dataclass(frozen=True)
class ActionOutcome:
    action: str
    item_id: int
    status: ActionStatus
    message: str | None = None
    error: QueueClientError | None = None

    @property
    def ok(self) -> bool:
        return self.status == ActionStatus.COMPLETED


@dataclass(frozen=True)
class QueueView:
    """Everything a consumer needs to render the queue at one moment."""

    snapshot: QueueSnapshot
    partitions: QueuePartitions
    statistics: QueueStatistics | None
    connection_state: ConnectionState
    auto_refresh: bool
    pending_ids: frozenset[int] = field(default_factory=frozenset)
    loading: bool = False
    error: str | None = None

    @property
    def active(self) -> tuple[QueueItem, ...]:
        return self.partitions.active

    @property
    def queued(self) -> tuple[QueueItem, ...]:
        return self.partitions.queued

    @property
    def history(self) -> tuple[QueueItem, ...]:
        return self.partitions.history


class QueueViewController:
    """Keeps a local copy of the queue in step with the server.

    The snapshot changes only when a fetch resolves, and whichever fetch
    resolves last wins. Push events trigger silent refetches; while the push
    channel is down a poll task takes over. Mutations never edit the snapshot
    directly: they call the server and then refetch.
    """

    def __init__(
        self,
        client: QueueClient,
        channel: PushChannelManager | None = None,
        gate: AuthorizationGate | None = None,
        *,
        privileged: bool = False,
        poll_interval: float = 5.0,
        notifier: Notifier | None = None,
    ):
        """Initialize the controller.

        Args:
            client: Queue API client.
            channel: Push channel. Without one the controller always polls.
            gate: Authorization check run before cancel for unprivileged users.
            privileged: Skip the gate (admin session).
            poll_interval: Seconds between fallback polls.
            notifier: Receives transient user messages.
        """
        self.client = client
        self.channel = channel
        self.gate: AuthorizationGate = gate or DenyAllGate()
        self.privileged = privileged
        self.poll_interval = poll_interval
        self.notifier = notifier

        self._snapshot = QueueSnapshot()
        self._partitions = QueuePartitions()
        self._statistics: QueueStatistics | None = None
        self._connection_state = channel.state if channel else ConnectionState.DISCONNECTED
        self._pending: set[int] = set()
        self._loading = False
        self._error: str | None = None

        self._listeners: list[ViewListener] = []
        self._unsubscribe: list[Callable[[], None]] = []
        self._poll_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._closed = False

    # -- State --

    @property
    def snapshot(self) -> QueueSnapshot:
        return self._snapshot

    @property
    def statistics(self) -> QueueStatistics | None:
        return self._statistics

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def auto_refresh(self) -> bool:
        """True while fallback polling is active."""
        return self._poll_task is not None

    @property
    def pending_ids(self) -> frozenset[int]:
        return frozenset(self._pending)

    def is_pending(self, item_id: int) -> bool:
        return item_id in self._pending

    @property
    def view(self) -> QueueView:
        return QueueView(
            snapshot=self._snapshot,
            partitions=self._partitions,
            statistics=self._statistics,
            connection_state=self._connection_state,
            auto_refresh=self.auto_refresh,
            pending_ids=frozenset(self._pending),
            loading=self._loading,
            error=self._error,
        )

    def add_listener(self, listener: ViewListener) -> Callable[[], None]:
        """Call listener with the new view after every change."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    # -- Lifecycle --

    async def start(self) -> None:
        """Load the queue, then connect the push channel (or start polling)."""
        self._closed = False
        await self.refresh()

        if self.channel is None:
            self._enable_auto_refresh()
            return

        self._unsubscribe.append(self.channel.add_listener(self._on_push_event))
        self._unsubscribe.append(self.channel.add_state_listener(self._on_connection_state))
        await self.channel.start_connection()
        self._on_connection_state(self.channel.state)

    async def close(self) -> None:
        """Stop polling, the push channel and any background refetches."""
        self._closed = True
        poll_task = self._poll_task
        self._disable_auto_refresh()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        if self.channel is not None:
            await self.channel.stop_connection()

        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if poll_task is not None:
            tasks.append(poll_task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    # -- Fetching --

    async def refresh(self, silent: bool = False) -> None:
        """Refetch items and statistics.

        Args:
            silent: Don't toggle the loading indicator or notify on failure.
        """
        if not silent:
            self._loading = True
            self._publish()
        try:
            await asyncio.gather(self._fetch_items(silent), self._fetch_statistics(silent))
        finally:
            if not silent:
                self._loading = False
                self._publish()

    async def refresh_statistics(self) -> None:
        await self._fetch_statistics(silent=True)

    async def _fetch_items(self, silent: bool) -> None:
        try:
            items = await self.client.list_all()
        except QueueClientError as e:
            self._report_fetch_error("Failed to load queue", e, silent)
            return

        self._snapshot = QueueSnapshot(items=tuple(items), refreshed_at=datetime.now(timezone.utc))
        self._partitions = partition_items(self._snapshot.items)
        self._error = None
        logger.debug(
            f"Snapshot refreshed: {len(self._snapshot)} items "
            f"({len(self._partitions.active)} active, {len(self._partitions.history)} history)"
        )
        self._publish()

    async def _fetch_statistics(self, silent: bool) -> None:
        try:
            self._statistics = await self.client.get_statistics()
        except QueueClientError as e:
            # Statistics are secondary; don't pop a second message
            logger.warning(f"Failed to load queue statistics: {e}")
            return
        self._publish()

    def _report_fetch_error(self, prefix: str, error: QueueClientError, silent: bool) -> None:
        self._error = error.user_message()
        if silent:
            logger.warning(f"{prefix}: {error}")
        else:
            logger.error(f"{prefix}: {error}")
            self._notify(self._error, "error")
        self._publish()

    # -- Push channel and polling --

    def _on_push_event(self, event: PushEvent) -> None:
        if self._closed:
            return
        if event.kind == PushEventKind.STATISTICS_CHANGED:
            self._spawn(self.refresh_statistics())
        else:
            if event.status_change is not None:
                logger.info(
                    f"Mission {event.status_change.mission_id} is now "
                    f"{event.status_change.status_name or event.status_change.status}"
                )
            self._spawn(self.refresh(silent=True))

    def _on_connection_state(self, state: ConnectionState) -> None:
        self._connection_state = state
        if state == ConnectionState.CONNECTED:
            self._disable_auto_refresh()
        elif state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR) and not self._closed:
            self._enable_auto_refresh()
        self._publish()

    def _enable_auto_refresh(self) -> None:
        if self._poll_task is not None:
            return
        logger.info(f"Push channel unavailable, polling every {self.poll_interval}s")
        self._poll_task = asyncio.create_task(self._poll_loop())
        self._publish()

    def _disable_auto_refresh(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        logger.info("Push channel connected, polling stopped")
        self._publish()

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh(silent=True)
            except Exception:
                # One bad poll must not end fallback polling
                logger.exception("Queue poll failed")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background refetch failed", exc_info=task.exception())

    # -- Actions --

    async def cancel(
        self,
        item_id: int,
        mode: CancelMode = CancelMode.FORCE,
        reason: str | None = None,
    ) -> ActionOutcome:
        """Cancel an active item. Unprivileged users must pass the gate first."""
        return await self._run_action(
            "cancel",
            item_id,
            can_cancel,
            lambda: self.client.cancel(item_id, mode, reason),
            success_message="Mission cancelled",
            needs_authorization=not self.privileged,
        )

    async def retry(self, item_id: int) -> ActionOutcome:
        """Requeue a failed item that still has retries left."""
        return await self._run_action(
            "retry",
            item_id,
            can_retry,
            lambda: self.client.retry(item_id),
            success_message="Mission queued for retry",
        )

    async def change_priority(self, item_id: int, priority: int) -> ActionOutcome:
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            message = f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
            self._notify(message, "warning")
            return ActionOutcome("priority", item_id, ActionStatus.REJECTED_NOT_ALLOWED, message)
        return await self._run_action(
            "priority",
            item_id,
            can_change_priority,
            lambda: self.client.change_priority(item_id, priority),
            success_message=f"Priority changed to {priority}",
        )

    async def move_up(self, item_id: int) -> ActionOutcome:
        # Position check uses the cached snapshot; the server has the final say
        return await self._run_action(
            "move up",
            item_id,
            can_move_up,
            lambda: self.client.move_up(item_id),
            success_message="Mission moved up",
        )

    async def move_down(self, item_id: int) -> ActionOutcome:
        return await self._run_action(
            "move down",
            item_id,
            can_move_down,
            lambda: self.client.move_down(item_id),
            success_message="Mission moved down",
        )

    async def _run_action(
        self,
        action: str,
        item_id: int,
        allowed: Callable[[QueueItem], bool],
        call: Callable[[], Awaitable[Any]],
        *,
        success_message: str,
        needs_authorization: bool = False,
    ) -> ActionOutcome:
        item = self._snapshot.get(item_id)
        if item is None:
            message = f"Queue item {item_id} not found"
            self._notify(message, "warning")
            await self.refresh(silent=True)
            return ActionOutcome(action, item_id, ActionStatus.REJECTED_UNKNOWN_ITEM, message)

        if item_id in self._pending:
            logger.debug(f"Ignoring {action} of {item_id}: action already in progress")
            return ActionOutcome(action, item_id, ActionStatus.REJECTED_IN_PROGRESS, "Action already in progress")

        if not allowed(item):
            message = f"This item cannot be {_past_tense(action)}"
            self._notify(message, "warning")
            return ActionOutcome(action, item_id, ActionStatus.REJECTED_NOT_ALLOWED, message)

        self._pending.add(item_id)
        self._publish()
        try:
            if needs_authorization:
                authorized = await self.gate.authorize(AuthorizationContext(action, item))
                if not authorized:
                    logger.info(f"{action.capitalize()} of {item_id} not authorized")
                    return ActionOutcome(action, item_id, ActionStatus.DECLINED, "Authorization declined")

            try:
                await call()
            except NotFoundError as e:
                logger.warning(f"{action.capitalize()} of {item_id}: item no longer exists")
                outcome = ActionOutcome(action, item_id, ActionStatus.FAILED, e.user_message(), e)
            except QueueClientError as e:
                logger.error(f"{action.capitalize()} of {item_id} failed: {e}")
                outcome = ActionOutcome(action, item_id, ActionStatus.FAILED, e.user_message(), e)
            else:
                outcome = ActionOutcome(action, item_id, ActionStatus.COMPLETED, success_message)
        finally:
            self._pending.discard(item_id)
            self._publish()

        self._notify(outcome.message or "", "information" if outcome.ok else "error")
        await self.refresh(silent=True)
        return outcome

    # -- Output --

    def _notify(self, message: str, severity: str) -> None:
        if self.notifier is not None and message:
            self.notifier(message, severity)

    def _publish(self) -> None:
        view = self.view
        for listener in list(self._listeners):
            listener(view)


def _past_tense(action: str) -> str:
    return {
        "cancel": "cancelled",
        "retry": "retried",
        "priority": "reprioritized",
        "move up": "moved up",
        "move down": "moved down",
    }.get(action, action)
