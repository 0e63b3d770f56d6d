"""Utility commands for Fleet Queue CLI."""

from pathlib import Path
import sys
from typing import Optional

import click

from . import get_config, main


STARTER_CONFIG = """\
# Fleet Queue Configuration
server:
  url: "https://your-fleet-server.example.com"
  token: "${FLEET_API_TOKEN}"
  # Or keep the token encrypted on disk (see `fleet-queue encrypt-token`):
  # token_file: "~/.fleet_queue/token.enc"
  # encryption_key: "${FLEET_TOKEN_KEY}"
  # Or leave both unset and the token is read from this variable on every call:
  # token_env: "FLEET_API_TOKEN"
  queue_path: "/api/MissionQueue"
  hub_path: "/hubs/queue"
  timeout_seconds: 30

push:
  enabled: true
  max_reconnect_attempts: 5
  reconnect_interval_seconds: 5
  backoff_base_seconds: 1
  backoff_max_seconds: 10
  ping_interval_seconds: 15

monitor:
  poll_interval_seconds: 5
  privileged: false

logging:
  level: "INFO"
  file: "~/.fleet_queue/fleet_queue.log"
"""


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize Fleet Queue configuration."""
    config_path = Path.cwd() / "config.yaml"

    if config_path.exists():
        click.echo(f"Config file already exists: {config_path}")
        if not click.confirm("Overwrite?"):
            return

    config_path.write_text(STARTER_CONFIG)

    click.echo(f"Created config file: {config_path}")
    click.echo("\nNext steps:")
    click.echo("1. Edit config.yaml with your fleet server URL")
    click.echo("2. Set FLEET_API_TOKEN or run 'fleet-queue encrypt-token'")
    click.echo("3. Run 'fleet-queue monitor tui'")


@main.command("encrypt-token")
@click.option("--key", "-k", help="Passphrase for the token file (defaults to encryption_key from config)")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output file path (defaults to token_file from config or ~/.fleet_queue/token.enc)",
)
@click.pass_context
def encrypt_token_cmd(ctx: click.Context, key: Optional[str], output: Optional[Path]) -> None:
    """Encrypt your API token for storage on disk.

    Point server.token_file at the output and set server.encryption_key to the
    same passphrase.

    Example:

        fleet-queue encrypt-token --key "$FLEET_TOKEN_KEY" --output ~/.fleet_queue/token.enc
    """
    from ..crypto import write_token_file

    if not key or not output:
        try:
            config = get_config(ctx)
        except (FileNotFoundError, ValueError) as e:
            config = None
            if not key:
                click.echo(f"Error: No --key provided and couldn't load config: {e}", err=True)
                sys.exit(1)

        if not key and config is not None:
            key = config.server.encryption_key
            if not key:
                click.echo("Error: No --key provided and no encryption_key in config", err=True)
                sys.exit(1)
        if not output:
            if config is not None and config.server.resolved_token_file:
                output = config.server.resolved_token_file
                click.echo(f"Using token_file from config: {output}")
            else:
                output = Path("~/.fleet_queue/token.enc")

    token = click.prompt("Enter your API token", hide_input=True)
    confirm = click.prompt("Confirm token", hide_input=True)

    if token != confirm:
        click.echo("Tokens don't match!", err=True)
        sys.exit(1)

    output_path = output.expanduser()
    try:
        write_token_file(token, key, output_path)
    except OSError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"\nToken encrypted and saved to: {output_path}")
