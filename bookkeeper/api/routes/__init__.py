"""API routes package."""

from . import ai, health

__all__ = ["ai", "health"]
