"""
Dashboard Server - aiohttp server for the observer WebSocket and static UI.

Serves plain HTTP on the configured port and, when certificates are present,
the same application over HTTPS on a second port.
"""

import ssl
from typing import List, Optional

from aiohttp import WSCloseCode, web

from capture_hub.core.config_manager import ServerConfig
from capture_hub.core.control_hub import ControlHub
from capture_hub.core.logging_utils import get_module_logger

from .middleware import error_handling_middleware
from .routes import setup_all_routes
from .tls import load_ssl_context


logger = get_module_logger("DashboardServer")


class DashboardServer:
    """
    HTTP(S) front end of the Capture Hub.

    Owns the aiohttp application, tracks open WebSockets so they can be closed
    on shutdown, and exposes the bound URLs for the startup banner.
    """

    def __init__(self, hub: ControlHub, config: Optional[ServerConfig] = None):
        """
        Initialize the server.

        Args:
            hub: ControlHub that receives observer connections
            config: Host, ports, certificate and static asset locations
        """
        self.hub = hub
        self.config = config or ServerConfig()

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._sites: List[web.TCPSite] = []
        self._ssl_context: Optional[ssl.SSLContext] = None
        self._running = False

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application."""
        app = web.Application(middlewares=[error_handling_middleware])
        app["hub"] = self.hub
        app["websockets"] = set()
        app.on_shutdown.append(_close_websockets)
        setup_all_routes(app, self.config.public_dir)
        return app

    async def start(self) -> None:
        """Start serving (non-blocking)."""
        if self._running:
            logger.warning("Dashboard server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        http_site = web.TCPSite(self._runner, self.config.host, self.config.http_port)
        await http_site.start()
        self._sites.append(http_site)
        logger.info("HTTP server listening on %s:%d", self.config.host, self.config.http_port)

        self._ssl_context = load_ssl_context(self.config.cert_file, self.config.key_file)
        if self._ssl_context is not None:
            https_site = web.TCPSite(
                self._runner,
                self.config.host,
                self.config.https_port,
                ssl_context=self._ssl_context,
            )
            await https_site.start()
            self._sites.append(https_site)
            logger.info("HTTPS server listening on %s:%d", self.config.host, self.config.https_port)

        self._running = True

    async def stop(self) -> None:
        """Stop the server gracefully, closing every open WebSocket."""
        if not self._running:
            return

        logger.info("Stopping dashboard server...")
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self._sites = []
        self._app = None
        self._running = False
        logger.info("Dashboard server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def https_enabled(self) -> bool:
        return self._ssl_context is not None


async def _close_websockets(app: web.Application) -> None:
    for ws in set(app["websockets"]):
        await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")


__all__ = ["DashboardServer"]
