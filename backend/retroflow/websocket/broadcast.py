import logging
from typing import Any, Dict, Optional

import socketio

from retroflow.config import get_settings

logger = logging.getLogger(__name__)

_origins = get_settings().cors_origins

sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*' if _origins == ['*'] else _origins,
    logger=False,
    engineio_logger=False
)


def room_for(session_id: str) -> str:
    return f"session:{session_id}"


class BroadcastRouter:
    """Room-scoped delivery: one room per session, holding all of its live connections."""

    def __init__(self, server: socketio.AsyncServer = sio):
        self.sio = server

    async def enter(self, sid: str, session_id: str):
        await self.sio.enter_room(sid, room_for(session_id))

    async def leave(self, sid: str, session_id: str):
        await self.sio.leave_room(sid, room_for(session_id))

    async def to_room(self, session_id: str, event: str, data: Optional[Dict[str, Any]] = None):
        await self.sio.emit(event, data, room=room_for(session_id))

    async def to_others(self, session_id: str, sid: str, event: str, data: Optional[Dict[str, Any]] = None):
        await self.sio.emit(event, data, room=room_for(session_id), skip_sid=sid)

    async def to_connection(self, sid: str, event: str, data: Optional[Dict[str, Any]] = None):
        await self.sio.emit(event, data, to=sid)

    async def error(self, sid: str, message: str):
        logger.debug(f"Sending error to {sid}: {message}")
        await self.to_connection(sid, 'error', {'message': message})


broadcaster = BroadcastRouter()
