"""Collapsible log panel with RichLog for connection and action output."""

import logging

from rich.markup import escape
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import RichLog, Static


LEVEL_STYLES = {
    logging.DEBUG: "dim",
    logging.INFO: "",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}


class LogPanel(Container):
    """Log panel that streams log records and notifications."""

    DEFAULT_CSS = """
    LogPanel {
        height: auto;
        max-height: 40%;
        display: none;
        border-top: solid $primary;
    }

    LogPanel.visible {
        display: block;
    }

    LogPanel #log-title {
        height: 1;
        background: $primary;
        color: $text;
        text-style: bold;
        padding: 0 1;
    }

    LogPanel RichLog {
        height: 1fr;
        min-height: 5;
        max-height: 20;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("Log (L: toggle)", id="log-title")
        yield RichLog(id="log-output", wrap=True, markup=True)

    def write(self, text: str) -> None:
        """Append a line to the log."""
        self.query_one("#log-output", RichLog).write(text)

    def clear(self) -> None:
        self.query_one("#log-output", RichLog).clear()

    def toggle(self) -> None:
        """Show or hide the log panel."""
        self.toggle_class("visible")


class LogPanelHandler(logging.Handler):
    """Forwards fleet_queue log records into a LogPanel."""

    def __init__(self, panel: LogPanel, level: int = logging.INFO):
        super().__init__(level=level)
        self.panel = panel
        self.setFormatter(logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            text = escape(self.format(record))
            style = LEVEL_STYLES.get(record.levelno, "")
            self.panel.write(f"[{style}]{text}[/{style}]" if style else text)
        except Exception:
            self.handleError(record)
