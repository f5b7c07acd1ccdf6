"""Version 1 API endpoints."""

from .pipeline import router as pipeline_router

__all__ = ["pipeline_router"]
