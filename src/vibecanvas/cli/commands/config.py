"""Config command - show or create the configuration file."""

import click

from vibecanvas.cli.session import load_config, report_error
from vibecanvas.models import AppConfig
from vibecanvas.utils import default_config_path


@click.group()
def config():
    """Show or initialize VibeCanvas settings."""
    pass


@config.command(name="show")
@click.pass_context
def show(ctx):
    """Print the effective configuration."""
    try:
        settings = load_config(ctx)
    except Exception as e:
        report_error(ctx, e)
        return

    path = ctx.obj.get("config_path") or default_config_path()
    source = "file" if path.exists() else "defaults, file not found"
    click.echo(f"Config: {path} ({source})\n")
    for name, field in AppConfig.model_fields.items():
        click.echo(f"  {name}: {getattr(settings, name)}")
        if field.description:
            click.echo(f"      {field.description}")


@config.command(name="init")
@click.option('--force', is_flag=True, help='Overwrite an existing file (a .bak copy is kept)')
@click.pass_context
def init(ctx, force: bool):
    """Write a config file with default values."""
    path = ctx.obj.get("config_path") or default_config_path()
    if path.exists() and not force:
        click.echo(f"Config already exists: {path} (use --force to overwrite)")
        return

    try:
        AppConfig().save(path)
    except Exception as e:
        report_error(ctx, e)
        return
    click.echo(f"Wrote default config to {path}")
