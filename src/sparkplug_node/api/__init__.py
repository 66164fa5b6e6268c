"""FastAPI status and control surface for the edge node."""

from .app import create_app

__all__ = ["create_app"]
