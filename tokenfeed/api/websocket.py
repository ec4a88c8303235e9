"""
Push channel: connected WebSocket clients receive every scheduled snapshot.
"""
import time
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tokenfeed.core.exceptions import CacheUnavailableError
from tokenfeed.core.logging_config import get_logger
from tokenfeed.schemas.data import SnapshotMessage
from tokenfeed.schemas.listing import AggregateSnapshot

logger = get_logger("websocket")

router = APIRouter()


def snapshot_message(kind: str, snapshot: AggregateSnapshot | None) -> dict:
    coins = snapshot.coins() if snapshot is not None else []
    return SnapshotMessage(type=kind, coins=coins, timestamp=int(time.time() * 1000)).model_dump()


class SubscriptionHub:
    def __init__(self):
        self.connections: Set[WebSocket] = set()

    @property
    def has_listeners(self) -> bool:
        return bool(self.connections)

    def add(self, ws: WebSocket):
        self.connections.add(ws)
        logger.info("client_connected", clients=len(self.connections))

    def discard(self, ws: WebSocket):
        self.connections.discard(ws)
        logger.info("client_disconnected", clients=len(self.connections))

    async def broadcast(self, snapshot: AggregateSnapshot):
        if not self.has_listeners:
            return
        message = snapshot_message("update", snapshot)
        for ws in list(self.connections):
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.warning("send_failed", error=str(e))
                self.discard(ws)


async def _current_snapshot(ws: WebSocket) -> AggregateSnapshot | None:
    try:
        return await ws.app.state.cache.get()
    except CacheUnavailableError:
        return None


@router.websocket("/ws")
async def subscribe(ws: WebSocket):
    hub: SubscriptionHub = ws.app.state.hub
    await ws.accept()
    hub.add(ws)
    try:
        await ws.send_json(snapshot_message("initial", await _current_snapshot(ws)))
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            # Binary frames carry no commands
            text = message.get("text")
            if isinstance(text, str) and text.strip().lower() == "snapshot":
                await ws.send_json(snapshot_message("initial", await _current_snapshot(ws)))
    except WebSocketDisconnect:
        pass
    finally:
        hub.discard(ws)
