"""Devices command - scan and list what the server can drive."""

import click

from vibecanvas.cli.session import (
    address_option,
    connected_controller,
    load_config,
    report_error,
    simulate_option,
)


@click.command()
@address_option
@simulate_option
@click.pass_context
def devices(ctx, address, simulate):
    """Connect, scan for devices and list them by slot."""
    try:
        config = load_config(ctx)
        with connected_controller(config, address, simulate) as controller:
            found = controller.devices
            if not found:
                click.echo("No devices found.")
                click.echo("\nMake sure the device is on and paired, then scan again.")
                return

            click.echo(f"\n{len(found)} device(s):\n")
            for slot, device in enumerate(found):
                capability = "vibrate" if device.has_vibration else "no vibration"
                click.echo(f"  [{slot}] {device.name} ({capability})")
    except click.Abort:
        raise
    except Exception as e:
        report_error(ctx, e)
