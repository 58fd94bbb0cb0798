"""Helpers shared by the device commands: config loading, controller setup, error output."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click

from vibecanvas.core import VibeController
from vibecanvas.devices import SimulatedTransport
from vibecanvas.exceptions import format_error_for_display
from vibecanvas.models import AppConfig

logger = logging.getLogger(__name__)

address_option = click.option(
    '--address',
    '-a',
    type=str,
    default=None,
    help='Device server websocket address (default: from config)'
)
simulate_option = click.option(
    '--simulate',
    type=click.IntRange(min=1),
    default=None,
    metavar='N',
    help='Use N simulated devices instead of a device server'
)


def load_config(ctx: click.Context) -> AppConfig:
    """Load the config selected with --config (or the default file)."""
    config_path: Optional[Path] = ctx.obj.get("config_path") if ctx.obj else None
    return AppConfig.load_or_default(config_path)


def report_error(ctx: click.Context, error: Exception) -> None:
    """Print an error the way every command does and exit with code 1."""
    logger.exception("Command failed")

    user_message, recovery_hint = format_error_for_display(error)

    click.echo("\n" + "=" * 70, err=True)
    click.echo(f"ERROR: {user_message}", err=True)
    click.echo("=" * 70, err=True)

    if recovery_hint:
        click.echo(f"\n{recovery_hint}", err=True)

    log_path = ctx.obj.get("log_path") if ctx.obj else None
    if log_path:
        click.echo(f"\nFor details, check the log file: {log_path}", err=True)
    sys.exit(1)


@contextmanager
def connected_controller(
    config: AppConfig,
    address: Optional[str],
    simulate: Optional[int],
    scan: bool = True,
) -> Iterator[VibeController]:
    """
    Yield a connected controller and always disconnect afterwards.

    With `simulate`, devices come from a SimulatedTransport and appear as soon
    as scanning starts, so the scan window is not waited out.
    """
    if simulate:
        controller = VibeController(
            config,
            transport_factory=lambda: SimulatedTransport.with_devices(simulate),
            sleep=lambda seconds: None,
        )
    else:
        controller = VibeController(config)

    with controller:
        target = address or config.server_address
        click.echo(f"Connecting to {'simulator' if simulate else target}...")
        controller.connect(target)
        if scan:
            if not simulate:
                click.echo(f"Scanning for devices ({config.scan_window_s:.0f}s)...")
            controller.scan()
        yield controller
