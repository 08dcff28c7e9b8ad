"""Viewer server using Starlette.

Serves the renderer page, streams view state over SSE, and accepts the
renderer's selection rectangles and render artifacts.
"""
from __future__ import annotations

import json
import socket
from pathlib import Path
from typing import Any

try:
    from starlette.applications import Starlette
    from starlette.requests import Request
    from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
    from starlette.routing import Route
except ImportError:
    raise ImportError(
        "The viewer server requires the 'web' extra. "
        "Install with: pip install diagram-sync-engine[web]"
    )

from diagram_sync_engine.checkpoints import FileCheckpointStore
from diagram_sync_engine.config import SyncConfig
from diagram_sync_engine.errors import ParseError
from diagram_sync_engine.hub import LiveViewHub
from diagram_sync_engine.logging import get_logger, server_log_level
from diagram_sync_engine.models import Bounds
from diagram_sync_engine.transports.sse import sse_stream
from diagram_sync_engine.web.storage import ViewSessionStorage

logger = get_logger("web")

STATIC_DIR = Path(__file__).parent / "static"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def viewer_csp() -> str:
    return "; ".join([
        "default-src 'none'",
        "base-uri 'none'",
        "form-action 'none'",
        "frame-ancestors 'none'",
        "img-src 'self' data: blob:",
        "style-src 'self' 'unsafe-inline'",
        "font-src 'self' https://esm.sh data:",
        "script-src 'self' https://esm.sh 'unsafe-inline'",
        "connect-src 'self' https://esm.sh",
    ])


def viewer_html(view_id: str, meta: dict[str, Any]) -> str:
    """Render the viewer page for one view."""
    template = (STATIC_DIR / "viewer.html").read_text(encoding="utf-8")
    config = {
        "viewId": view_id,
        "title": meta.get("title") or "",
        "description": meta.get("description") or "",
        "skin": meta.get("skin") or "slate",
    }
    # Escape "<" so metadata cannot close the script tag.
    return template.replace("__VIEW_CONFIG__", json.dumps(config).replace("<", "\\u003c"))


def create_app(hub: LiveViewHub, config: SyncConfig | None = None) -> Starlette:
    """Create the viewer Starlette application.

    Args:
        hub: LiveViewHub whose views are served
        config: Settings for push delivery (defaults to SyncConfig())
    """
    _config = config or SyncConfig()

    def _unknown(view_id: str) -> PlainTextResponse:
        return PlainTextResponse(f'Unknown view id: "{view_id}".', status_code=404)

    async def view_page(request: Request) -> Response:
        """Serve the renderer page."""
        view_id = request.path_params["view_id"]
        if not hub.has_view(view_id):
            return _unknown(view_id)
        view = hub.get_view(view_id)
        return HTMLResponse(
            viewer_html(view_id, view.meta()),
            headers={"Content-Security-Policy": viewer_csp(), "Cache-Control": "no-store"},
        )

    async def view_events(request: Request) -> Response:
        """SSE endpoint pushing update/meta/closed events."""
        from starlette.responses import StreamingResponse

        view_id = request.path_params["view_id"]
        if not hub.has_view(view_id):
            return _unknown(view_id)
        subscriber = await hub.subscribe(view_id)

        async def event_generator():
            try:
                async for frame in sse_stream(subscriber, _config.ping_interval_seconds):
                    yield frame
            finally:
                hub.unsubscribe(view_id, subscriber)

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async def view_cache(request: Request) -> Response:
        """Receive render artifacts (SVG text, base64 PNG) from the renderer."""
        view_id = request.path_params["view_id"]
        if not hub.has_view(view_id):
            return _unknown(view_id)
        body = await _json_body(request)
        svg = body.get("svg")
        png_base64 = body.get("pngBase64")
        try:
            hub.set_cache(
                view_id,
                svg=svg if isinstance(svg, str) else None,
                png_base64=png_base64 if isinstance(png_base64, str) else None,
            )
        except ParseError as e:
            return JSONResponse(e.to_dict(), status_code=400)
        return Response(status_code=204)

    async def view_selection(request: Request) -> Response:
        """Set (POST) or clear (DELETE) the renderer-drawn selection."""
        view_id = request.path_params["view_id"]
        if not hub.has_view(view_id):
            return _unknown(view_id)
        if request.method == "DELETE":
            hub.clear_selection(view_id)
            return Response(status_code=204)
        body = await _json_body(request)
        bounds = Bounds.from_dict(body.get("bounds"))
        if bounds is not None:
            png_base64 = body.get("pngBase64")
            updated_at = body.get("updatedAt")
            hub.set_selection(
                view_id,
                bounds,
                png_base64=png_base64 if isinstance(png_base64, str) else None,
                updated_at=updated_at if isinstance(updated_at, str) else None,
            )
        return Response(status_code=204)

    async def export_svg(request: Request) -> Response:
        view_id = request.path_params["view_id"]
        view = hub.get_view(view_id) if hub.has_view(view_id) else None
        if view is None or not view.last_svg:
            return PlainTextResponse(f'No SVG cached for view id: "{view_id}".', status_code=404)
        return Response(
            view.last_svg,
            media_type="image/svg+xml; charset=utf-8",
            headers={"Content-Disposition": f"attachment; filename=diagram-{view_id}.svg"},
        )

    async def export_png(request: Request) -> Response:
        view_id = request.path_params["view_id"]
        view = hub.get_view(view_id) if hub.has_view(view_id) else None
        if view is None or not view.last_png:
            return PlainTextResponse(f'No PNG cached for view id: "{view_id}".', status_code=404)
        return Response(
            view.last_png,
            media_type="image/png",
            headers={"Content-Disposition": f"attachment; filename=diagram-{view_id}.png"},
        )

    async def api_views(request: Request) -> JSONResponse:
        """List views (metadata only)."""
        return JSONResponse({"views": hub.list_views()})

    routes = [
        Route("/api/views", api_views, methods=["GET"]),
        Route("/view/{view_id}", view_page, methods=["GET"]),
        Route("/view/{view_id}/events", view_events, methods=["GET"]),
        Route("/view/{view_id}/cache", view_cache, methods=["POST"]),
        Route("/view/{view_id}/selection", view_selection, methods=["POST", "DELETE"]),
        Route("/view/{view_id}/export.svg", export_svg, methods=["GET"]),
        Route("/view/{view_id}/export.png", export_png, methods=["GET"]),
    ]

    return Starlette(routes=routes)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        # Undecodable text or invalid JSON
        return {}
    return body if isinstance(body, dict) else {}


def build_hub(config: SyncConfig) -> LiveViewHub:
    """Create a file-backed hub and restore persisted sessions."""
    store = FileCheckpointStore(config.checkpoint_dir)
    storage = ViewSessionStorage(config.session_db)
    hub = LiveViewHub.from_config(config, store, storage=storage)
    hub.restore_sessions()
    return hub


def run_server(config: SyncConfig | None = None, hub: LiveViewHub | None = None) -> None:
    """Run the viewer server."""
    try:
        import uvicorn
    except ImportError:
        raise ImportError(
            "Running the viewer server requires uvicorn. "
            "Install with: pip install diagram-sync-engine[web]"
        )

    _config = config or SyncConfig().apply_env()
    _hub = hub or build_hub(_config)

    # Bind first so port 0 resolves before view URLs are handed out.
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((_config.host, _config.port))
    port = sock.getsockname()[1]
    _hub.set_base_url(_config.resolved_base_url(port))
    logger.info("Viewer listening on %s", _hub.base_url)

    app = create_app(_hub, _config)
    server = uvicorn.Server(uvicorn.Config(app, log_level=server_log_level(_config.log_level)))
    try:
        server.run(sockets=[sock])
    finally:
        _hub.close()
