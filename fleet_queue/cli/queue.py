"""Queue CLI commands: inspect and manage mission queue items."""

import asyncio
from collections.abc import Awaitable, Callable
import json
import logging
import sys
import uuid

import click

from ..auth import AdminCredentialGate, AllowAllGate, AuthorizationContext
from ..config import Config
from ..controller import ActionOutcome, ActionStatus, QueueViewController
from ..errors import QueueClientError
from ..formatting import (
    format_age,
    format_priority,
    format_robot,
    format_success_rate,
    format_wait_time,
)
from ..models import CancelMode, EnqueueRequest, QueueItem, QueueStatus
from ..queue_client import QueueClient
from . import get_config, main


logger = logging.getLogger(__name__)


def _build_client(config: Config) -> QueueClient:
    return QueueClient(
        config.server.url,
        config.token_provider(),
        queue_path=config.server.queue_path,
        timeout=config.server.timeout_seconds,
    )


def _ask_admin_credentials(context: AuthorizationContext) -> tuple[str, str] | None:
    click.echo(context.message)
    username = click.prompt("Admin username", default="", show_default=False)
    if not username:
        return None
    password = click.prompt("Admin password", hide_input=True)
    return username, password


async def _prompt_admin_credentials(context: AuthorizationContext) -> tuple[str, str] | None:
    # click.prompt blocks on stdin; keep it off the event loop
    return await asyncio.to_thread(_ask_admin_credentials, context)


def _fail(error: QueueClientError) -> None:
    logger.debug(f"Request failed: {error}")
    click.echo(f"Error: {error.user_message()}", err=True)
    sys.exit(1)


def _run_query(config: Config, query: Callable[[QueueClient], Awaitable]):
    async def run():
        async with _build_client(config) as client:
            return await query(client)

    try:
        return asyncio.run(run())
    except QueueClientError as e:
        _fail(e)


def _run_action(config: Config, action: Callable[[QueueViewController], Awaitable[ActionOutcome]]) -> None:
    """Load the queue into a controller, run one action and report the outcome."""

    async def run() -> ActionOutcome | None:
        async with _build_client(config) as client:
            if config.monitor.privileged:
                gate = AllowAllGate()
            else:
                gate = AdminCredentialGate(
                    config.server.url,
                    client.token_provider,
                    _prompt_admin_credentials,
                    http_client=client.http,
                )
            controller = QueueViewController(client, gate=gate, privileged=config.monitor.privileged)
            await controller.refresh()
            if controller.view.error:
                click.echo(f"Error: {controller.view.error}", err=True)
                return None
            outcome = await action(controller)
            if outcome.status == ActionStatus.DECLINED and isinstance(gate, AdminCredentialGate) and gate.last_result:
                click.echo(gate.last_result.message or "Authorization failed", err=True)
            return outcome

    outcome = asyncio.run(run())
    if outcome is None:
        sys.exit(1)
    if not outcome.ok:
        click.echo(f"Error: {outcome.message}", err=True)
        sys.exit(1)
    click.echo(outcome.message)


def _print_items(items: list[QueueItem]) -> None:
    click.echo(f"{'ID':>6}  {'Pos':>3}  {'Status':<10}  {'Priority':<10}  {'Robot':<14}  {'Wait':<8}  Mission")
    click.echo("-" * 90)
    for item in items:
        position = str(item.queue_position) if item.status == QueueStatus.QUEUED else "-"
        click.echo(
            f"{item.id:>6}  "
            f"{position:>3}  "
            f"{item.status.label:<10}  "
            f"{format_priority(item.priority):<10}  "
            f"{format_robot(item.assigned_robot_id)[:14]:<14}  "
            f"{format_wait_time(item.wait_time_seconds):<8}  "
            f"{item.mission_name[:40]}"
        )


@main.group()
def queue() -> None:
    """Mission queue commands."""
    pass


@queue.command("list")
@click.option("--queued", "queued_only", is_flag=True, help="Only Queued and Processing items.")
@click.option(
    "--status",
    type=click.Choice([s.label for s in QueueStatus], case_sensitive=False),
    help="Filter by status.",
)
@click.option("--limit", default=50, help="Max items to show.")
@click.pass_context
def list_items(ctx: click.Context, queued_only: bool, status: str | None, limit: int) -> None:
    """List queue items."""
    config = get_config(ctx)

    if queued_only:
        items = _run_query(config, lambda client: client.list_queued())
    else:
        items = _run_query(config, lambda client: client.list_all())

    if status:
        wanted = QueueStatus.parse(status)
        items = [i for i in items if i.status == wanted]

    if not items:
        click.echo("No queue items found.")
        return

    click.echo(f"Found {len(items)} item(s):\n")
    _print_items(items[:limit])


@queue.command()
@click.argument("item_id", type=int)
@click.pass_context
def show(ctx: click.Context, item_id: int) -> None:
    """Show one queue item."""
    config = get_config(ctx)
    item = _run_query(config, lambda client: client.get_by_id(item_id))

    click.echo(f"Queue item {item.id}: {item.mission_name}")
    click.echo(f"  Status:     {item.status.label}")
    click.echo(f"  Priority:   {format_priority(item.priority)}")
    if item.status == QueueStatus.QUEUED:
        click.echo(f"  Position:   {item.queue_position}")
    click.echo(f"  Mission:    {item.mission_code}")
    click.echo(f"  Request ID: {item.request_id}")
    click.echo(f"  Robot:      {format_robot(item.assigned_robot_id)}")
    click.echo(f"  Created:    {format_age(item.created_at)}" + (f" by {item.created_by}" if item.created_by else ""))
    click.echo(f"  Waiting:    {format_wait_time(item.wait_time_seconds)}")
    click.echo(f"  Retries:    {item.retry_count}/{item.max_retries}")
    if item.robot_type_filter:
        click.echo(f"  Robot type: {item.robot_type_filter}")
    if item.preferred_robot_ids:
        click.echo(f"  Preferred:  {item.preferred_robot_ids}")
    if item.error_message:
        click.echo(f"  Error:      {item.error_message}")


@queue.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show queue statistics."""
    config = get_config(ctx)
    statistics = _run_query(config, lambda client: client.get_statistics())

    click.echo("Queue Statistics:")
    click.echo(f"  Queued:        {statistics.total_queued}")
    click.echo(f"  Processing:    {statistics.total_processing}")
    click.echo(f"  Assigned:      {statistics.total_assigned}")
    click.echo(f"  Completed:     {statistics.total_completed}")
    click.echo(f"  Failed:        {statistics.total_failed}")
    click.echo(f"  Cancelled:     {statistics.total_cancelled}")
    click.echo(f"  Avg wait:      {format_wait_time(statistics.average_wait_time_seconds)}")
    click.echo(f"  Success rate:  {format_success_rate(statistics.success_rate)}")


@queue.command("active-count")
@click.argument("saved_mission_id", type=int)
@click.pass_context
def active_count(ctx: click.Context, saved_mission_id: int) -> None:
    """Count active queue items created from a saved mission."""
    config = get_config(ctx)
    count = _run_query(config, lambda client: client.get_active_count(saved_mission_id))
    click.echo(f"{count} active item(s) for saved mission {saved_mission_id}")


@queue.command()
@click.option("--code", "mission_code", required=True, help="Mission code.")
@click.option("--name", "mission_name", required=True, help="Mission name.")
@click.option("--request-id", help="Request ID (generated when omitted).")
@click.option("--payload", default="{}", help="Mission request JSON.")
@click.option("--priority", type=click.IntRange(1, 5), help="1 (Critical) to 5 (Lowest).")
@click.option("--robot-type", help="Only robots of this type.")
@click.option("--robot", "robots", multiple=True, help="Preferred robot ID (repeatable).")
@click.option("--saved-mission-id", type=int, help="Saved mission template ID.")
@click.pass_context
def enqueue(
    ctx: click.Context,
    mission_code: str,
    mission_name: str,
    request_id: str | None,
    payload: str,
    priority: int | None,
    robot_type: str | None,
    robots: tuple[str, ...],
    saved_mission_id: int | None,
) -> None:
    """Add a mission to the queue."""
    config = get_config(ctx)

    try:
        json.loads(payload)
    except ValueError as e:
        click.echo(f"Error: --payload is not valid JSON: {e}", err=True)
        sys.exit(1)

    request = EnqueueRequest(
        mission_code=mission_code,
        request_id=request_id or str(uuid.uuid4()),
        mission_name=mission_name,
        mission_payload=payload,
        saved_mission_id=saved_mission_id,
        priority=priority,
        robot_type_filter=robot_type,
        preferred_robot_ids=list(robots),
    )
    item = _run_query(config, lambda client: client.enqueue(request))
    click.echo(f"Queued {item.mission_name} as item {item.id} at position {item.queue_position}")


@queue.command()
@click.argument("item_id", type=int)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in CancelMode], case_sensitive=False),
    default=CancelMode.FORCE.value,
    show_default=True,
    help="How the server should stop the mission.",
)
@click.option("--reason", help="Reason recorded with the cancellation.")
@click.pass_context
def cancel(ctx: click.Context, item_id: int, mode: str, reason: str | None) -> None:
    """Cancel a queue item (asks for admin credentials unless privileged)."""
    config = get_config(ctx)
    cancel_mode = CancelMode(mode.upper())
    _run_action(config, lambda controller: controller.cancel(item_id, cancel_mode, reason))


@queue.command()
@click.argument("item_id", type=int)
@click.pass_context
def retry(ctx: click.Context, item_id: int) -> None:
    """Retry a failed queue item."""
    config = get_config(ctx)
    _run_action(config, lambda controller: controller.retry(item_id))


@queue.command()
@click.argument("item_id", type=int)
@click.argument("priority", type=click.IntRange(1, 5))
@click.pass_context
def priority(ctx: click.Context, item_id: int, priority: int) -> None:
    """Change the priority of a queued item."""
    config = get_config(ctx)
    _run_action(config, lambda controller: controller.change_priority(item_id, priority))


@queue.command("move-up")
@click.argument("item_id", type=int)
@click.pass_context
def move_up(ctx: click.Context, item_id: int) -> None:
    """Move a queued item one position up."""
    config = get_config(ctx)
    _run_action(config, lambda controller: controller.move_up(item_id))


@queue.command("move-down")
@click.argument("item_id", type=int)
@click.pass_context
def move_down(ctx: click.Context, item_id: int) -> None:
    """Move a queued item one position down."""
    config = get_config(ctx)
    _run_action(config, lambda controller: controller.move_down(item_id))
