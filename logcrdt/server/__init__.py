"""HTTP endpoints through which peers exchange operations."""

from .app import create_app

__all__ = ["create_app"]
