"""fleet-queue command group and shared CLI plumbing."""

import logging
from pathlib import Path

import click

from .. import __version__
from ..config import Config, ensure_directories, load_config


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Libraries that log every request or frame at INFO/DEBUG
CHATTY_LOGGERS = ("httpx", "httpcore", "websockets")


def setup_logging(level: str, log_file: Path | None = None) -> None:
    """Send log records to stderr and, when configured, to a file.

    HTTP and websocket library loggers stay at WARNING unless the
    requested level is DEBUG.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers, force=True)

    library_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Config file (default: ./config.yaml, ~/.fleet_queue/config.yaml or /etc/fleet_queue/config.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG, including HTTP and hub traffic")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """Fleet Queue - monitor and manage a robot fleet's mission queue."""
    ctx.ensure_object(dict)
    ctx.obj.update(config_path=config, verbose=verbose, config=None)

    # init and encrypt-token run before any config exists
    setup_logging("DEBUG" if verbose else "WARNING")


def get_config(ctx: click.Context) -> Config:
    """Config for this invocation, loaded on first use.

    Loading also applies the configured log level and log file; --verbose
    still wins.
    """
    cfg = ctx.obj.get("config")
    if cfg is not None:
        return cfg

    cfg = load_config(ctx.obj.get("config_path"))
    ensure_directories(cfg)
    setup_logging("DEBUG" if ctx.obj.get("verbose") else cfg.logging.level, cfg.logging.resolved_file)
    logger.debug(f"Loaded config for {cfg.server.url}")

    ctx.obj["config"] = cfg
    return cfg


# Subcommands register themselves on main
from . import (  # noqa: E402
    monitor,  # noqa: F401
    queue,  # noqa: F401
    utils,  # noqa: F401
)
