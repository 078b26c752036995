"""REST API consumed by the web dashboard."""

from .app import create_app

__all__ = ["create_app"]
