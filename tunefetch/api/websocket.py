import asyncio
import logging
from typing import List, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Dropping websocket client: {e}")
                self.disconnect(connection)

    async def broadcast_json(self, payload: dict):
        for connection in list(self.active_connections):
            try:
                await connection.send_json(payload)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Dropping websocket client: {e}")
                self.disconnect(connection)


manager = ConnectionManager()

_pending: Set[asyncio.Task] = set()


def notify(payload: dict):
    """Schedule a broadcast from synchronous callbacks running on the event loop."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running loop, websocket notice dropped")
        return
    task = loop.create_task(manager.broadcast_json(payload))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


@router.websocket("/ws/status")
async def status_websocket(websocket: WebSocket):
    """Progress events and batch notices are pushed here; incoming text is ignored."""
    await manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
