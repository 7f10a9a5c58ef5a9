"""HTTP route modules for the store platform API."""

from .health import create_health_router
from .stores import create_stores_router

__all__ = ["create_health_router", "create_stores_router"]
