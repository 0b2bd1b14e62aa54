"""Status API layer for gardenwatch.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by gardenwatch.app bootstrap).
"""

from gardenwatch.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
