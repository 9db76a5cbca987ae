"""
HTTP control API (FastAPI) over the session manager and dispatcher.
"""

from .app import build_app, create_app

__all__ = ["build_app", "create_app"]
