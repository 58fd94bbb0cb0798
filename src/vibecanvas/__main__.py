"""Allow running as `python -m vibecanvas`."""

from vibecanvas.cli.main import cli

if __name__ == "__main__":
    cli()
