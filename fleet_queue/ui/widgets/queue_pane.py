"""Queue pane widget listing queue items in a table."""

from __future__ import annotations

from rich.markup import escape
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.message import Message
from textual.widgets import DataTable, Label

from fleet_queue.formatting import (
    STATUS_STYLES,
    format_age,
    format_priority,
    format_robot,
    format_wait_time,
)
from fleet_queue.models import QueueItem, QueueStatus


class QueuePane(Container):
    """Table of queue items; key presses become ActionRequested messages."""

    # -- Messages posted to the parent app --

    class ActionRequested(Message):
        """User asked for an action on the item under the cursor."""

        def __init__(self, action: str, item: QueueItem) -> None:
            super().__init__()
            self.action = action
            self.item = item

    # -- Bindings (resolved when this pane is focused) --

    BINDINGS = [
        Binding("c", "request('cancel')", "Cancel"),
        Binding("t", "request('retry')", "Retry"),
        Binding("u", "request('move_up')", "Up"),
        Binding("d", "request('move_down')", "Down"),
        Binding("p", "request('priority')", "Priority"),
        Binding("x", "request('actions')", "Actions"),
    ]

    DEFAULT_CSS = """
    QueuePane {
        height: 1fr;
    }

    QueuePane.hidden {
        display: none;
    }

    QueuePane #pane-header {
        height: auto;
        padding: 0 1;
        background: $surface;
    }

    QueuePane .pane-title {
        text-style: bold;
        color: $text;
    }

    QueuePane .pane-table-container {
        height: 1fr;
        border: solid $primary;
        margin: 0 1;
    }

    QueuePane DataTable {
        height: 100%;
    }

    QueuePane DataTable > .datatable--cursor {
        background: $primary 30%;
    }

    QueuePane DataTable > .datatable--header {
        background: $primary;
        text-style: bold;
    }
    """

    def __init__(self, title: str, *, id: str | None = None, classes: str | None = None) -> None:
        super().__init__(id=id, classes=classes)
        self.pane_title = title
        self.items: list[QueueItem] = []
        self.pending_ids: frozenset[int] = frozenset()

    def compose(self) -> ComposeResult:
        with Horizontal(id="pane-header"):
            yield Label(self.pane_title, classes="pane-title")
        with Container(classes="pane-table-container"):
            yield DataTable(cursor_type="row")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.add_column("ID", key="id", width=7)
        table.add_column("Pos", key="pos", width=4)
        table.add_column("Status", key="status", width=11)
        table.add_column("Priority", key="priority", width=9)
        table.add_column("Robot", key="robot", width=14)
        table.add_column("Wait", key="wait", width=8)
        table.add_column("Retries", key="retries", width=7)
        table.add_column("Created", key="created", width=9)
        table.add_column("Mission", key="mission")
        self._populate_table()

    def update_items(self, items: tuple[QueueItem, ...] | list[QueueItem], pending_ids: frozenset[int]) -> None:
        """Replace the table contents, keeping the cursor on the same item if possible."""
        current = self.cursor_item()
        self.items = list(items)
        self.pending_ids = pending_ids
        self._populate_table()

        if current is not None:
            for index, item in enumerate(self.items):
                if item.id == current.id:
                    self.query_one(DataTable).move_cursor(row=index)
                    break

    def _populate_table(self) -> None:
        table = self.query_one(DataTable)
        table.clear()

        for item in self.items:
            style = STATUS_STYLES.get(item.status, "")
            status = f"[{style}]{item.status.label}[/{style}]"
            mission = escape(item.mission_name)
            if item.id in self.pending_ids:
                mission = f"{mission} [yellow](working...)[/yellow]"
            elif item.status == QueueStatus.FAILED and item.error_message:
                mission = f"{mission} [red]- {escape(item.error_message)}[/red]"

            table.add_row(
                str(item.id),
                str(item.queue_position) if item.status == QueueStatus.QUEUED else "",
                status,
                format_priority(item.priority),
                format_robot(item.assigned_robot_id),
                format_wait_time(item.wait_time_seconds),
                f"{item.retry_count}/{item.max_retries}",
                format_age(item.created_at),
                mission,
                key=str(item.id),
            )

    def cursor_item(self) -> QueueItem | None:
        table = self.query_one(DataTable)
        if table.row_count > 0 and 0 <= table.cursor_row < len(self.items):
            return self.items[table.cursor_row]
        return None

    def focus_table(self) -> None:
        self.query_one(DataTable).focus()

    # -- Actions --

    def action_request(self, action: str) -> None:
        item = self.cursor_item()
        if item is None:
            self.app.notify("No item selected", severity="warning")
            return
        self.post_message(self.ActionRequested(action, item))
