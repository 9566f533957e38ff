"""Siteproof HTTP API layer.

This package provides the Falcon ASGI application for the report queue.

Usage
-----
Create and run the application::

    from siteproof.api import create_app

    app = create_app()              # health-only mode
    app = create_app(dependencies)  # full mode with report endpoints

"""

from siteproof.api.app import create_app

__all__ = ["create_app"]
