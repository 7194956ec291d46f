"""
Static Routes - the browser dashboard.
"""

from pathlib import Path

from aiohttp import web


def setup_static_routes(app: web.Application, public_dir: Path) -> None:
    public_dir = Path(public_dir)
    index_file = public_dir / "index.html"

    async def index_handler(request: web.Request) -> web.StreamResponse:
        """GET / - Dashboard page."""
        if not index_file.is_file():
            raise web.HTTPNotFound(text="Dashboard assets are not installed")
        return web.FileResponse(index_file)

    app.router.add_get("/", index_handler)
    if public_dir.is_dir():
        app.router.add_static("/", public_dir, show_index=False)
