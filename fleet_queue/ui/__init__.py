"""Interactive TUI components for fleet_queue."""

from .monitor_app import MonitorApp


__all__ = ["MonitorApp"]
