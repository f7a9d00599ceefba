"""
FastAPI Router for the Restgate Event Endpoint

Serves an EventServer over a FastAPI WebSocket route. The application must
store the server in ``app.extra["restgate_server"]`` and call its
``setup()`` during startup so the plugins have registered their events.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from restgate.server import EventServer

LOG = logging.getLogger(__name__)

router = APIRouter(prefix="/restgate", tags=["restgate"])


@dataclass
class StarletteConnection:
    """Adapts a FastAPI WebSocket to the server's connection interface."""

    websocket: WebSocket

    async def send(self, message: str) -> None:
        await self.websocket.send_text(message)

    def __aiter__(self) -> AsyncIterator[str]:
        return self.websocket.iter_text()


@router.websocket("/events")
async def restgate_websocket(websocket: WebSocket) -> None:
    """WebSocket endpoint exchanging restgate event frames."""
    server = websocket.app.extra.get("restgate_server")
    if not isinstance(server, EventServer):
        LOG.error("No EventServer configured in app.extra['restgate_server']")
        await websocket.close(code=1011)
        return

    await websocket.accept()
    try:
        await server.handle_connection(StarletteConnection(websocket), websocket.headers)
    except* WebSocketDisconnect:
        LOG.info("Restgate connection disconnected")
    except* Exception:
        LOG.exception("Error in restgate connection")
