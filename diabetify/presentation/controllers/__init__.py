"""
Controllers Package - Presentation Layer

FastAPI routers mapping HTTP requests onto use cases and domain errors onto
status codes.
"""

from .prediction_controller import router as prediction_router
from .system_controller import router as system_router

__all__ = ["prediction_router", "system_router"]
