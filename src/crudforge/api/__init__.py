"""HTTP adapter: generated REST endpoints and the response envelope."""

from .app import create_app
from .responses import ApiResponse, ErrorInfo
from .routes import build_router

__all__ = ["ApiResponse", "ErrorInfo", "build_router", "create_app"]
