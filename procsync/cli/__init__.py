"""procsync command-line interface."""

from procsync.cli.app import app

__all__ = ["app"]
