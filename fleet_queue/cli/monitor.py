"""Live monitor commands."""

import asyncio
import logging

import click

from ..auth import DenyAllGate
from ..config import Config
from ..controller import QueueView, QueueViewController
from ..hub import BackoffPolicy
from ..push_channel import PushChannelManager
from ..queue_client import QueueClient
from . import get_config, main


logger = logging.getLogger(__name__)


def build_push_channel(config: Config) -> PushChannelManager | None:
    """Create the push channel described by the config, or None when disabled."""
    if not config.push.enabled:
        return None
    return PushChannelManager(
        config.hub_url,
        config.token_provider(),
        max_reconnect_attempts=config.push.max_reconnect_attempts,
        reconnect_interval=config.push.reconnect_interval_seconds,
        backoff=BackoffPolicy(
            base_seconds=config.push.backoff_base_seconds,
            max_seconds=config.push.backoff_max_seconds,
        ),
        ping_interval=config.push.ping_interval_seconds,
    )


def describe_view(view: QueueView) -> str:
    """One-line summary of a queue view."""
    connection = view.connection_state.value
    if view.auto_refresh:
        connection += ", using fallback polling"
    line = (
        f"[{connection}] {len(view.active)} active, {len(view.queued)} waiting, "
        f"{len(view.history)} in history"
    )
    if view.pending_ids:
        line += f", {len(view.pending_ids)} action(s) pending"
    if view.error:
        line += f" - {view.error}"
    return line


async def watch_queue(config: Config, duration: float | None) -> None:
    """Run the controller headless and echo every change until duration elapses."""
    client = QueueClient(
        config.server.url,
        config.token_provider(),
        queue_path=config.server.queue_path,
        timeout=config.server.timeout_seconds,
    )
    controller = QueueViewController(
        client,
        build_push_channel(config),
        DenyAllGate(),
        privileged=config.monitor.privileged,
        poll_interval=config.monitor.poll_interval_seconds,
        notifier=lambda message, severity: click.echo(f"{severity.upper()}: {message}"),
    )

    last_line: str | None = None

    def on_view(view: QueueView) -> None:
        nonlocal last_line
        if view.loading:
            return
        line = describe_view(view)
        if line != last_line:
            click.echo(line)
            last_line = line

    controller.add_listener(on_view)
    try:
        await controller.start()
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await controller.close()
        await client.aclose()


@main.group()
def monitor() -> None:
    """Live queue monitoring."""
    pass


@monitor.command()
@click.pass_context
def tui(ctx: click.Context) -> None:
    """Open the interactive queue monitor."""
    config = get_config(ctx)

    from ..ui.monitor_app import MonitorApp

    app = MonitorApp(config)
    app.run()


@monitor.command()
@click.option("--duration", type=float, help="Stop after this many seconds.")
@click.pass_context
def watch(ctx: click.Context, duration: float | None) -> None:
    """Print queue changes as they happen."""
    config = get_config(ctx)
    try:
        asyncio.run(watch_queue(config, duration))
    except KeyboardInterrupt:
        click.echo("Stopped.")
