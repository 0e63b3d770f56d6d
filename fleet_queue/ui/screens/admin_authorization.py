"""Admin credentials modal shown before protected actions."""

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static


class AdminAuthorizationScreen(ModalScreen[tuple[str, str] | None]):
    """Collects admin username and password.

    Dismisses with (username, password), or None if the user backs out.
    Verification happens afterwards in the authorization gate.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    CSS = """
    AdminAuthorizationScreen {
        align: center middle;
    }

    #auth-dialog {
        width: 60;
        height: auto;
        border: thick $warning;
        background: $surface;
        padding: 1 2;
    }

    #auth-title {
        text-style: bold;
        text-align: center;
        width: 100%;
        padding-bottom: 1;
    }

    #auth-message {
        color: $text-muted;
        padding-bottom: 1;
    }

    #auth-error {
        color: $error;
        height: auto;
    }

    #auth-buttons {
        height: auto;
        align: right middle;
        padding-top: 1;
    }

    #auth-buttons Button {
        margin-left: 1;
    }
    """

    def __init__(
        self,
        title: str = "Admin Authorization Required",
        message: str = "",
        action_label: str = "Authorize",
        name: str | None = None,
    ):
        super().__init__(name=name)
        self.auth_title = title
        self.auth_message = message
        self.action_label = action_label

    def compose(self) -> ComposeResult:
        with Container(id="auth-dialog"):
            yield Label(self.auth_title, id="auth-title")
            yield Static(self.auth_message, id="auth-message", markup=False)
            yield Input(placeholder="Admin username", id="auth-username")
            yield Input(placeholder="Admin password", password=True, id="auth-password")
            yield Static("", id="auth-error")
            with Horizontal(id="auth-buttons"):
                yield Button("Cancel", id="auth-cancel")
                yield Button(self.action_label, variant="warning", id="auth-submit")

    def on_mount(self) -> None:
        self.query_one("#auth-username", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "auth-username":
            self.query_one("#auth-password", Input).focus()
        else:
            self._submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "auth-submit":
            self._submit()
        else:
            self.dismiss(None)

    def _submit(self) -> None:
        username = self.query_one("#auth-username", Input).value.strip()
        password = self.query_one("#auth-password", Input).value
        if not username or not password.strip():
            self.query_one("#auth-error", Static).update("Please enter both username and password")
            return
        self.dismiss((username, password))

    def action_cancel(self) -> None:
        self.dismiss(None)
