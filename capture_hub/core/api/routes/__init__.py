"""
Route registration for the dashboard server.
"""

from pathlib import Path

from aiohttp import web

from .system import setup_system_routes
from .static import setup_static_routes
from .ws import setup_ws_routes


def setup_all_routes(app: web.Application, public_dir: Path) -> None:
    """Register all routes. Static files are registered last so they never
    shadow the WebSocket or API endpoints."""
    setup_ws_routes(app)
    setup_system_routes(app)
    setup_static_routes(app, public_dir)


__all__ = ["setup_all_routes"]
