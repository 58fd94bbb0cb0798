"""Play command - run a pattern document on the connected devices."""

import logging
from pathlib import Path
from typing import Optional

import click

from vibecanvas.cli.session import (
    address_option,
    connected_controller,
    load_config,
    report_error,
    simulate_option,
)
from vibecanvas.models import VibePattern
from vibecanvas.utils import PydanticPersistence

logger = logging.getLogger(__name__)


@click.command()
@click.argument('pattern_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@address_option
@simulate_option
@click.option(
    '--loop/--no-loop',
    default=None,
    help='Override the loop flag stored in the pattern'
)
@click.option(
    '--no-scan',
    is_flag=True,
    help='Skip the discovery scan and use devices the server already knows'
)
@click.pass_context
def play(ctx, pattern_file: Path, address: Optional[str], simulate: Optional[int], loop: Optional[bool], no_scan: bool):
    """
    Play PATTERN_FILE until it ends.

    Looping patterns run until Ctrl+C. Track 1 goes to device slot 0,
    track 2 to slot 1, and so on; extra tracks are ignored.
    """
    try:
        config = load_config(ctx)
        pattern = PydanticPersistence.load_json(pattern_file, VibePattern)
        if loop is not None:
            pattern = pattern.model_copy(update={"loop": loop})

        with connected_controller(config, address, simulate, scan=not no_scan) as controller:
            session = controller.play(pattern)
            click.echo(
                f"Playing '{pattern.name}' ({pattern.duration_ms / 1000:.1f}s, "
                f"{len(pattern.tracks)} track(s) on {len(controller.devices)} device(s))"
                + (" - Ctrl+C to stop" if pattern.loop else "")
            )
            try:
                # Short waits keep Ctrl+C responsive
                while not session.wait(0.25):
                    pass
            except KeyboardInterrupt:
                logger.info("Playback interrupted by user")
                click.echo("\nStopping...")
                controller.stop()

            if session.failure_count:
                click.echo(
                    f"{session.failure_count} command(s) failed; last: {session.last_error.user_message}",
                    err=True,
                )
            click.echo("Done.")
    except click.Abort:
        raise
    except Exception as e:
        report_error(ctx, e)
