"""
API Middleware - Error handling for the dashboard HTTP routes.

Every unexpected exception raised by a route is turned into a JSON body of
the form::

    {"error": {"code": "ERROR_CODE", "message": "..."}, "status": 500}
"""

from typing import Callable

from aiohttp import web

from capture_hub.core.logging_utils import get_module_logger


logger = get_module_logger("APIMiddleware")


def create_error_response(code: str, message: str, status: int = 400) -> web.Response:
    """Create standardized error response."""
    return web.json_response(
        {"error": {"code": code, "message": message}, "status": status},
        status=status,
    )


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        code = e.reason.upper().replace(" ", "_") if e.reason else "HTTP_ERROR"
        return create_error_response(code, e.text or str(e), status=e.status)
    except Exception as e:
        logger.exception("Unexpected error handling %s %s: %s", request.method, request.path, e)
        return create_error_response(
            "INTERNAL_ERROR", "An unexpected error occurred", status=500
        )
