"""
HTTP/WebSocket front end of the Capture Hub.
"""

from .server import DashboardServer
from .tls import load_ssl_context

__all__ = ["DashboardServer", "load_ssl_context"]
