"""Statistics and connection status bar."""

from textual.widgets import Static

from fleet_queue.controller import QueueView
from fleet_queue.formatting import format_success_rate, format_wait_time
from fleet_queue.models import ConnectionState


CONNECTION_STYLES = {
    ConnectionState.CONNECTED: ("green", "Live"),
    ConnectionState.CONNECTING: ("yellow", "Connecting"),
    ConnectionState.DISCONNECTED: ("dim", "Disconnected"),
    ConnectionState.ERROR: ("red", "Connection error"),
}


def connection_text(view: QueueView) -> str:
    style, label = CONNECTION_STYLES[view.connection_state]
    text = f"[{style}]● {label}[/{style}]"
    if view.auto_refresh:
        text += " [yellow](using fallback polling)[/yellow]"
    return text


def statistics_text(view: QueueView) -> str:
    stats = view.statistics
    if stats is None:
        return "[dim]Statistics unavailable[/dim]"
    return (
        f"Queued [bold]{stats.total_queued}[/bold]  "
        f"Processing [bold]{stats.total_processing}[/bold]  "
        f"Assigned [bold]{stats.total_assigned}[/bold]  "
        f"Completed [green]{stats.total_completed}[/green]  "
        f"Failed [red]{stats.total_failed}[/red]  "
        f"Cancelled [dim]{stats.total_cancelled}[/dim]  "
        f"Avg wait {format_wait_time(stats.average_wait_time_seconds)}  "
        f"Success {format_success_rate(stats.success_rate)}"
    )


class StatsBar(Static):
    """One-line summary of queue statistics and push channel state."""

    DEFAULT_CSS = """
    StatsBar {
        height: auto;
        padding: 0 1;
        background: $surface;
        border-bottom: solid $primary;
    }
    """

    def update_view(self, view: QueueView) -> None:
        loading = " [dim]loading...[/dim]" if view.loading else ""
        self.update(f"{connection_text(view)}{loading}\n{statistics_text(view)}")
