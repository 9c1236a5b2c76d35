"""
StoryWonder API package.

Provides the FastAPI application for the StoryWonder account service.
"""

from .app import app, create_app

__all__ = ["app", "create_app"]
