"""
REST API layer.

Quick start::

    from adops.api import create_app

    app = create_app()  # ready for uvicorn
"""

from adops.api.app import create_app

__all__ = ["create_app"]
