"""privpref API package.

This module provides an optional FastAPI service layer around the privacy
evaluation engine.
"""

from .server import create_app  # noqa: F401
