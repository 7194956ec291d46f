"""
WebSocket Route - observer connections to the Control Hub.
"""

from aiohttp import WSMsgType, web

from capture_hub.core.control_hub import ControlHub
from capture_hub.core.logging_utils import get_module_logger


logger = get_module_logger("WebSocket")

WS_HEARTBEAT = 30.0


def setup_ws_routes(app: web.Application) -> None:
    app.router.add_get("/ws", websocket_handler)


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    """GET /ws - Bidirectional JSON control channel."""
    hub: ControlHub = request.app["hub"]
    sockets = request.app["websockets"]

    ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT)
    await ws.prepare(request)
    sockets.add(ws)
    logger.info("WebSocket connection opened from %s", request.remote)

    try:
        if await hub.register_observer(ws):
            async for msg in ws:
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    await hub.handle_command(ws, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.error("WebSocket error: %s", ws.exception())
    finally:
        hub.unregister_observer(ws)
        sockets.discard(ws)
        logger.info("WebSocket connection closed")

    return ws
