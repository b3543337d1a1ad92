"""
CLI layer. Entry point::

    adops --help
"""

from adops.cli.app import app

__all__ = ["app"]
