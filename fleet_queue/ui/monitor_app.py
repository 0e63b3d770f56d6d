"""Textual application for live queue monitoring."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header

from fleet_queue.auth import AdminCredentialGate, AllowAllGate, AuthorizationContext
from fleet_queue.controller import ActionOutcome, ActionStatus, QueueView, QueueViewController
from fleet_queue.models import CancelMode, QueueItem
from fleet_queue.queue_client import QueueClient

from .screens.admin_authorization import AdminAuthorizationScreen
from .screens.queue_action_picker import PriorityPickerScreen, QueueActionPickerScreen
from .widgets.log_panel import LogPanel, LogPanelHandler
from .widgets.queue_pane import QueuePane
from .widgets.stats_bar import StatsBar


if TYPE_CHECKING:
    from fleet_queue.config import Config

logger = logging.getLogger(__name__)


class MonitorApp(App):
    """Live view of the mission queue with queue actions."""

    TITLE = "Fleet Queue Monitor"

    BINDINGS = [
        Binding("r", "refresh", "Refresh"),
        Binding("h", "toggle_history", "History"),
        Binding("l", "toggle_log", "Log", priority=True),
        Binding("q", "quit_app", "Quit"),
    ]

    CSS = """
    Screen {
        background: $surface;
    }

    #main-content {
        height: 1fr;
    }
    """

    def __init__(self, config: Config | None = None, controller: QueueViewController | None = None):
        super().__init__()
        if controller is None and config is None:
            raise ValueError("MonitorApp needs a config or a controller")
        self._config = config
        self._controller = controller
        self._client: QueueClient | None = None
        self._log_handler: LogPanelHandler | None = None

    @property
    def controller(self) -> QueueViewController:
        assert self._controller is not None
        return self._controller

    def compose(self) -> ComposeResult:
        yield Header()
        yield StatsBar(id="stats-bar")
        with Vertical(id="main-content"):
            yield QueuePane("Active Queue", id="active-pane")
            yield QueuePane("History", id="history-pane", classes="hidden")
            yield LogPanel()
        yield Footer()

    def on_mount(self) -> None:
        self._log_handler = LogPanelHandler(self.query_one(LogPanel))
        logging.getLogger("fleet_queue").addHandler(self._log_handler)

        if self._controller is None:
            self._controller = self._build_controller()
        self.controller.notifier = self._notify_user
        self.controller.add_listener(self._on_view)

        self.query_one("#active-pane", QueuePane).focus_table()
        self.start_controller()

    async def on_unmount(self) -> None:
        if self._controller is not None:
            await self._controller.close()
        if self._client is not None:
            await self._client.aclose()
        if self._log_handler is not None:
            logging.getLogger("fleet_queue").removeHandler(self._log_handler)

    def _build_controller(self) -> QueueViewController:
        from fleet_queue.cli.monitor import build_push_channel

        config = self._config
        assert config is not None
        token_provider = config.token_provider()
        self._client = QueueClient(
            config.server.url,
            token_provider,
            queue_path=config.server.queue_path,
            timeout=config.server.timeout_seconds,
        )
        if config.monitor.privileged:
            gate = AllowAllGate()
        else:
            gate = AdminCredentialGate(
                config.server.url,
                token_provider,
                self.prompt_admin_credentials,
                http_client=self._client.http,
            )
        return QueueViewController(
            self._client,
            build_push_channel(config),
            gate,
            privileged=config.monitor.privileged,
            poll_interval=config.monitor.poll_interval_seconds,
        )

    @work(exclusive=True, group="controller")
    async def start_controller(self) -> None:
        await self.controller.start()

    # -- Controller output --

    def _on_view(self, view: QueueView) -> None:
        self.query_one(StatsBar).update_view(view)
        self.query_one("#active-pane", QueuePane).update_items(view.active, view.pending_ids)
        self.query_one("#history-pane", QueuePane).update_items(view.history, view.pending_ids)

    def _notify_user(self, message: str, severity: str) -> None:
        self.notify(message, severity=severity)  # type: ignore[arg-type]
        self.query_one(LogPanel).write(message)

    async def prompt_admin_credentials(self, context: AuthorizationContext) -> tuple[str, str] | None:
        """Show the admin modal and wait for its result."""
        result: asyncio.Future[tuple[str, str] | None] = asyncio.get_running_loop().create_future()

        def on_dismiss(credentials: tuple[str, str] | None) -> None:
            if not result.done():
                result.set_result(credentials)

        self.push_screen(
            AdminAuthorizationScreen(
                title=context.title,
                message=context.message,
                action_label=f"Authorize & {context.action.capitalize()}",
            ),
            callback=on_dismiss,
        )
        return await result

    # -- Pane messages --

    def on_queue_pane_action_requested(self, message: QueuePane.ActionRequested) -> None:
        item = message.item
        if message.action == "actions":
            self.push_screen(QueueActionPickerScreen(item), callback=lambda key: self._on_action_picked(item, key))
        elif message.action == "priority":
            self.push_screen(PriorityPickerScreen(item), callback=lambda key: self._on_action_picked(item, key))
        elif message.action == "cancel":
            self.run_action(item, "cancel:" + CancelMode.FORCE.value)
        else:
            self.run_action(item, message.action)

    def _on_action_picked(self, item: QueueItem, key: str | None) -> None:
        if key is not None:
            self.run_action(item, key)

    @work(group="actions")
    async def run_action(self, item: QueueItem, key: str) -> ActionOutcome | None:
        """Run an action key from a binding or picker against the controller."""
        action, _, argument = key.partition(":")
        controller = self.controller

        if action == "cancel":
            outcome = await controller.cancel(item.id, CancelMode(argument or CancelMode.FORCE.value))
            gate = controller.gate
            if outcome.status == ActionStatus.DECLINED and isinstance(gate, AdminCredentialGate) and gate.last_result:
                self.notify(gate.last_result.message or "Authorization failed", severity="error")
        elif action == "retry":
            outcome = await controller.retry(item.id)
        elif action == "move_up":
            outcome = await controller.move_up(item.id)
        elif action == "move_down":
            outcome = await controller.move_down(item.id)
        elif action == "priority":
            outcome = await controller.change_priority(item.id, int(argument))
        else:
            logger.warning(f"Unknown action {key}")
            return None

        logger.info(f"{action} #{item.id}: {outcome.status.value}")
        return outcome

    # -- App actions --

    def action_refresh(self) -> None:
        self._run_refresh()

    @work(exclusive=True, group="refresh")
    async def _run_refresh(self) -> None:
        """Background worker: manual refetch with the loading indicator."""
        await self.controller.refresh()
        self.notify("Queue refreshed", timeout=1.5)

    def action_toggle_history(self) -> None:
        self.query_one("#history-pane", QueuePane).toggle_class("hidden")

    def action_toggle_log(self) -> None:
        self.query_one(LogPanel).toggle()

    def action_quit_app(self) -> None:
        self.exit()
