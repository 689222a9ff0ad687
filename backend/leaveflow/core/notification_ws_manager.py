import asyncio
import logging
from threading import Lock
from typing import Dict, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class NotificationConnectionManager:
    """Pushes in-app notifications to every open socket of a user."""

    def __init__(self):
        self.active_connections: Dict[int, Set[WebSocket]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = Lock()

    async def connect(self, user_id: int, websocket: WebSocket):
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)

    def disconnect(self, user_id: int, websocket: Optional[WebSocket] = None):
        with self._lock:
            sockets = self.active_connections.get(user_id)
            if not sockets:
                return
            if websocket is None:
                sockets.clear()
            else:
                sockets.discard(websocket)
            if not sockets:
                self.active_connections.pop(user_id, None)

    async def notify(self, user_id: int, payload: dict):
        with self._lock:
            sockets = list(self.active_connections.get(user_id, ()))
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
            except Exception:
                logger.warning("Dropping notification socket for user %s", user_id)
                self.disconnect(user_id, websocket)

    def notify_threadsafe(self, user_id: int, payload: dict):
        loop = self._loop
        if not loop or loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self.notify(user_id, payload), loop)


notification_ws_manager = NotificationConnectionManager()
