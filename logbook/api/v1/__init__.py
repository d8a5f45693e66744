"""API v1."""

from logbook.api.v1.api import api_router

__all__ = ["api_router"]
