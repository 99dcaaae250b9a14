"""
Route registration for the telephony audio pipeline.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the media-stream gateway to the WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

from xml.sax.saxutils import quoteattr

from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import MediaStreamGateway, StreamBinding

MEDIA_STREAM_PATH = "/media-stream"


def build_twiml(stream_url: str) -> str:
    """TwiML that connects the call's audio to our media-stream socket."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<Response>"
        "<Connect>"
        f"<Stream url={quoteattr(stream_url)} />"
        "</Connect>"
        "</Response>"
    )


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, object]:  # pyright: ignore[reportUnusedFunction]
        return {
            "status": "ok",
            "active_sessions": app.state.sessions.active_count,
            "pending_segments": app.state.dispatcher.pending,
        }

    @app.post("/twiml")
    async def twiml(request: Request) -> Response:  # pyright: ignore[reportUnusedFunction]
        stream_url = app.state.config.media_stream_url
        if not stream_url:
            stream_url = f"wss://{request.url.netloc}{MEDIA_STREAM_PATH}"
        return Response(content=build_twiml(stream_url), media_type="text/xml")

    @app.websocket(MEDIA_STREAM_PATH)
    async def media_stream(ws: WebSocket) -> None:  # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway: MediaStreamGateway = app.state.gateway
        binding = StreamBinding()

        try:
            while True:
                text = await ws.receive_text()
                gateway.on_media_stream_message(binding, text)

        except WebSocketDisconnect as exc:
            gateway.on_media_stream_closed(binding, reason=f"client_disconnect:{exc.code}")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "MEDIA_STREAM_FATAL_ERROR",
                "session_id": binding.stream_sid,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            gateway.on_media_stream_closed(binding, reason="server_error")
