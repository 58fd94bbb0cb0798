"""Vibrate command - send one intensity to one device for manual testing."""

import time

import click

from vibecanvas.cli.session import (
    address_option,
    connected_controller,
    load_config,
    report_error,
    simulate_option,
)


@click.command()
@click.argument('intensity', type=click.FloatRange(0, 100))
@click.option(
    '--device',
    '-d',
    'device_index',
    type=click.IntRange(min=0),
    default=0,
    help='Device slot as shown by "vibecanvas devices" (default: 0)'
)
@click.option(
    '--seconds',
    '-s',
    type=click.FloatRange(min=0),
    default=1.0,
    help='How long to hold the intensity before stopping (default: 1)'
)
@address_option
@simulate_option
@click.pass_context
def vibrate(ctx, intensity: float, device_index: int, seconds: float, address, simulate):
    """Vibrate one device at INTENSITY (0-100), then stop."""
    try:
        config = load_config(ctx)
        with connected_controller(config, address, simulate) as controller:
            controller.set_vibration(intensity, device_index)
            name = controller.devices[device_index].name
            click.echo(f"{name}: {intensity:.0f}% for {seconds:g}s")
            try:
                time.sleep(seconds)
            finally:
                controller.stop()
    except click.Abort:
        raise
    except Exception as e:
        report_error(ctx, e)
