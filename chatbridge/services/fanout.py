import asyncio
from typing import Optional, Set

from fastapi import WebSocket

from chatbridge.logging_config import get_logger

logger = get_logger("fanout")


class OperatorHub:
    """Registry of connected operator sockets with best-effort broadcast.

    `notify` may be called from request threads or timer threads; delivery is
    scheduled on the event loop that accepted the sockets. With nobody
    connected the event is dropped: the Store stays authoritative and an
    operator re-reads it on reconnect.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self._connections.add(websocket)
        logger.info(f"Operator connected, sessions={len(self._connections)}")

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)
        logger.info(f"Operator disconnected, sessions={len(self._connections)}")

    async def send(self, websocket: WebSocket, event: dict) -> bool:
        try:
            await websocket.send_json(event)
            return True
        except Exception as e:
            logger.warning(f"Dropping operator session after failed send: {e}")
            self._connections.discard(websocket)
            return False

    async def broadcast(self, event: dict) -> int:
        delivered = 0
        for websocket in list(self._connections):
            if await self.send(websocket, event):
                delivered += 1
        return delivered

    def notify(self, event: dict) -> bool:
        """Schedule a broadcast. Returns False when the event was dropped."""
        if not self._connections or self._loop is None or self._loop.is_closed():
            logger.debug(f"No operator connected, dropping {event.get('type')} event")
            return False

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            task = self._loop.create_task(self.broadcast(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            asyncio.run_coroutine_threadsafe(self.broadcast(event), self._loop)
        return True


operator_hub = OperatorHub()


def get_operator_hub() -> OperatorHub:
    return operator_hub


def status_event(message: str, error: bool = False) -> dict:
    return {"type": "status", "message": message, "error": error}


def log_event(success: bool, message: str) -> dict:
    return {"type": "log", "success": success, "message": message}
