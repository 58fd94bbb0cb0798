"""Command line interface for vibecanvas."""
