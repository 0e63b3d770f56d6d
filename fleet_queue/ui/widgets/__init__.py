"""Widget components for the queue monitor TUI."""

from .log_panel import LogPanel, LogPanelHandler
from .queue_pane import QueuePane
from .stats_bar import StatsBar


__all__ = ["LogPanel", "LogPanelHandler", "QueuePane", "StatsBar"]
