"""Store platform FastAPI application."""

from .main import create_app
from .settings import StorePlatformSettings

__all__ = ["create_app", "StorePlatformSettings"]
