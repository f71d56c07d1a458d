"""
WebSocket API for live stake pool updates.
"""
import asyncio
import json
from typing import Dict, Set
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from parimutuel.models.cache import CacheEntry

router = APIRouter()


def pool_message(entry: CacheEntry) -> dict:
    return {
        "type": "pool",
        "data": entry.to_dict(lambda pool: pool.to_dict()),
    }


class ConnectionManager:
    """Manage WebSocket connections per market."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, market_id: str):
        """Accept and register a new connection."""
        await websocket.accept()
        if market_id not in self.active_connections:
            self.active_connections[market_id] = set()
        self.active_connections[market_id].add(websocket)
        logger.info(f"Client connected for {market_id}. Total: {len(self.active_connections[market_id])}")

    def disconnect(self, websocket: WebSocket, market_id: str):
        """Remove a connection."""
        if market_id in self.active_connections:
            self.active_connections[market_id].discard(websocket)
            logger.info(f"Client disconnected from {market_id}. Remaining: {len(self.active_connections[market_id])}")
            if not self.active_connections[market_id]:
                del self.active_connections[market_id]

    async def broadcast(self, market_id: str, message: dict):
        """Broadcast message to all connections for a market."""
        if market_id not in self.active_connections:
            return

        dead_connections = set()
        for connection in self.active_connections[market_id]:
            try:
                await connection.send_json(message)
            except Exception:
                dead_connections.add(connection)

        # Clean up dead connections
        self.active_connections[market_id] -= dead_connections

    async def push_pool_update(self, market_id: str, entry: CacheEntry):
        """Pool sync listener: forward a resolved fetch to subscribers."""
        await self.broadcast(market_id, pool_message(entry))


manager = ConnectionManager()


@router.websocket("/pools/{market_id}")
async def pool_stream(websocket: WebSocket, market_id: str):
    """
    WebSocket endpoint for a market's live pool.

    The market is observed for as long as the connection is open; the last
    disconnect stops its polling. Sends the current entry on connect, then
    one message per resolved fetch.
    """
    pool_sync = websocket.app.state.pool_sync
    await manager.connect(websocket, market_id)
    entry = pool_sync.observe(market_id)

    try:
        await websocket.send_json(pool_message(entry))
        while True:
            # Wait for messages from client (ping, etc.)
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=30.0
                )

                message = json.loads(data)

                if message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

                elif message.get("type") == "refresh":
                    pool_sync.refresh(market_id)

            except asyncio.TimeoutError:
                # Send keepalive
                await websocket.send_json({"type": "heartbeat"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        manager.disconnect(websocket, market_id)
        pool_sync.release(market_id)
