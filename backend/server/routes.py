"""
Route registration for the word study API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Run the per-connection outbound flush task
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json
import time

from fastapi import WebSocket, WebSocketDisconnect, FastAPI

from observability.logger import log_event
from session.gateway import SessionGateway, GatewayResult


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = SessionGateway(config=app.state.config)
        flush_task: asyncio.Task[None] | None = None

        try:
            result = await gateway.on_ws_connect()
            await _send_gateway_result(ws, result)
            flush_task = asyncio.create_task(_flush_loop(ws, gateway))

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    await gateway.on_json_message(msg["text"])

                elif msg.get("bytes") is not None:
                    await gateway.on_binary_message(msg["bytes"])

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": int(time.time() * 1000),
                "event_type": "WS_FATAL_ERROR",
                "level": "ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            if flush_task is not None:
                flush_task.cancel()
                await asyncio.gather(flush_task, return_exceptions=True)


async def _flush_loop(ws: WebSocket, gateway: SessionGateway) -> None:
    """
    Push outbound traffic as soon as it is produced.

    Timer-driven state changes and speech audio have no inbound message
    to ride on, so the connection drains the session on every wake-up.
    """
    session = gateway.session
    assert session is not None, "flush loop started before session"

    while True:
        await session.wait_outbound()
        await _send_gateway_result(ws, gateway.drain_outbound())


async def _send_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    """Send JSON messages first, then binary frames."""
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))

    for frame in result.outbound_binary:
        await ws.send_bytes(frame)
