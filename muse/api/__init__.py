"""API package for the evidence service."""

from muse.api.main import app
from muse.api.routes import router

__all__ = ["app", "router"]
