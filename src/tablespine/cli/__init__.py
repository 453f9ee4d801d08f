"""Command-line interface (``tablespine``)."""

from tablespine.cli.app import app

__all__ = ["app"]
