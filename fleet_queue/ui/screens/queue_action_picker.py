"""Action picker modals for queue items."""

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Footer, Label, OptionList, Static
from textual.widgets.option_list import Option

from fleet_queue.formatting import PRIORITY_LABELS
from fleet_queue.models import CancelMode, QueueItem


PICKER_CSS = """
PickerScreen {
    align: center middle;
}

#dialog {
    width: 50;
    height: auto;
    max-height: 80%;
    border: thick $primary;
    background: $surface;
    padding: 1 2;
}

#title {
    text-style: bold;
    text-align: center;
    width: 100%;
    padding-bottom: 1;
}

#info {
    color: $text-muted;
    text-align: center;
    padding-bottom: 1;
}

OptionList {
    height: auto;
    max-height: 20;
    background: $surface;
}

OptionList:focus {
    border: tall $primary;
}
"""


class PickerScreen(ModalScreen[str | None]):
    """Shared behaviour: Enter selects, Escape/Q dismisses with None."""

    CSS = PICKER_CSS

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("q", "cancel", "Cancel"),
        Binding("enter", "select", "Select", priority=True),
    ]

    def on_mount(self) -> None:
        self.query_one("#action-list", OptionList).focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        if event.option_id:
            self.dismiss(str(event.option_id))

    def action_select(self) -> None:
        option_list = self.query_one("#action-list", OptionList)
        if option_list.highlighted is not None:
            option = option_list.get_option_at_index(option_list.highlighted)
            if option.id and not option.disabled:
                self.dismiss(str(option.id))

    def action_cancel(self) -> None:
        self.dismiss(None)


class QueueActionPickerScreen(PickerScreen):
    """Modal screen for picking an action on one queue item.

    Dismisses with an action key or None if cancelled. Keys are
    ``cancel:<MODE>``, ``retry``, ``move_up``, ``move_down`` and
    ``priority:<N>``. Actions the item's status does not allow are shown
    disabled.
    """

    def __init__(self, item: QueueItem, name: str | None = None):
        super().__init__(name=name)
        self.item = item

    def compose(self) -> ComposeResult:
        item = self.item
        with Container(id="dialog"):
            yield Label("Queue Action", id="title")
            yield Static(f"#{item.id} {item.mission_name} ({item.status.label})", id="info", markup=False)
            yield OptionList(
                Option("Cancel (force)", id=f"cancel:{CancelMode.FORCE.value}", disabled=not item.can_cancel),
                Option("Cancel (normal)", id=f"cancel:{CancelMode.NORMAL.value}", disabled=not item.can_cancel),
                Option(
                    "Cancel and return to start",
                    id=f"cancel:{CancelMode.REDIRECT_START.value}",
                    disabled=not item.can_cancel,
                ),
                None,  # Separator
                Option("Retry", id="retry", disabled=not item.can_retry),
                Option("Move up", id="move_up", disabled=not item.can_move_up),
                Option("Move down", id="move_down", disabled=not item.can_move_down),
                None,
                *[
                    Option(f"Priority: {label} ({value})", id=f"priority:{value}", disabled=value == item.priority)
                    for value, label in PRIORITY_LABELS.items()
                ],
                id="action-list",
            )
        yield Footer()


class PriorityPickerScreen(PickerScreen):
    """Modal screen for choosing a new priority. Dismisses with ``priority:<N>``."""

    def __init__(self, item: QueueItem, name: str | None = None):
        super().__init__(name=name)
        self.item = item

    def compose(self) -> ComposeResult:
        with Container(id="dialog"):
            yield Label("Change Priority", id="title")
            yield Static(f"#{self.item.id} {self.item.mission_name}", id="info", markup=False)
            yield OptionList(
                *[
                    Option(f"{value} - {label}", id=f"priority:{value}", disabled=value == self.item.priority)
                    for value, label in PRIORITY_LABELS.items()
                ],
                id="action-list",
            )
        yield Footer()
