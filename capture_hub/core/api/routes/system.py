"""
System Routes - Health and status endpoints.
"""

from aiohttp import web

from capture_hub.core import __version__
from capture_hub.core.control_hub import ControlHub


def setup_system_routes(app: web.Application) -> None:
    """Register system routes."""
    app.router.add_get("/api/v1/health", health_handler)
    app.router.add_get("/api/v1/status", status_handler)


async def health_handler(request: web.Request) -> web.Response:
    """GET /api/v1/health - Health check."""
    return web.json_response({"status": "healthy", "version": __version__})


async def status_handler(request: web.Request) -> web.Response:
    """GET /api/v1/status - Supervisor state, config and observer count."""
    hub: ControlHub = request.app["hub"]
    supervisor = hub.supervisor
    return web.json_response({
        "isRunning": supervisor.is_running(),
        "state": supervisor.state.value,
        "config": hub.config_snapshot,
        "observers": len(hub.registry),
        "supervisor": supervisor.get_stats(),
    })
