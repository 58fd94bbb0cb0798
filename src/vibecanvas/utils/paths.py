"""Application directory locations."""

from pathlib import Path


def app_dir() -> Path:
    """Root directory for VibeCanvas user files (~/.vibecanvas)."""
    return Path.home() / ".vibecanvas"


def default_config_path() -> Path:
    """Location of the JSON config file."""
    return app_dir() / "config.json"


def default_log_path() -> Path:
    """Location of the rotating log file."""
    return app_dir() / "logs" / "vibecanvas.log"
