"""HTTP entry points for the stream relay."""

from .streaming import router as streaming_router

__all__ = ["streaming_router"]
