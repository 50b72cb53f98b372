"""Presence registry: which participant owns which live connection.

The durable binding lives on ``Participant.socket_id``; every host-only or
owner-only check reads it. Short-lived online/typing markers live in a
transient key-value store and expire on their own, so a crashed connection
cannot leave a participant marked as typing forever.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import redis.asyncio as aioredis
from sqlalchemy.orm import Session

from retroflow.errors import AuthorizationError, NotFoundError
from retroflow.models import Participant, Response, RetroSession
from retroflow.models._defaults import utcnow

logger = logging.getLogger(__name__)


def online_key(participant_id: str) -> str:
    return f"participant:{participant_id}"


def typing_key(session_id: str, participant_id: str) -> str:
    return f"typing:{session_id}:{participant_id}"


class InMemoryPresenceStore:
    """Process-local TTL store, used when no Redis URL is configured."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._entries[key] = (value, self._clock() + ttl)

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    async def close(self) -> None:
        self._entries.clear()


class RedisPresenceStore:
    def __init__(self, redis_url: str):
        self._client = aioredis.from_url(redis_url, decode_responses=True)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        await self._client.setex(key, ttl, value)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self._client.delete(*keys)

    async def close(self) -> None:
        await self._client.aclose()


def create_presence_store(redis_url: str):
    if redis_url:
        logger.info("Using Redis presence store")
        return RedisPresenceStore(redis_url)
    logger.info("Using in-memory presence store")
    return InMemoryPresenceStore()


@dataclass
class JoinResult:
    session: RetroSession
    participant: Participant
    participants: List[Participant]


@dataclass
class Departure:
    session_id: str
    participant_id: str


class PresenceRegistry:
    def __init__(self, db: Session):
        self.db = db

    def join(self, session_id: str, participant_id: str, sid: str) -> JoinResult:
        participant = (
            self.db.query(Participant)
            .filter(Participant.id == participant_id, Participant.session_id == session_id)
            .first()
        )
        if not participant:
            raise NotFoundError("Participant not found")

        if participant.socket_id and participant.socket_id != sid:
            logger.info(f"Participant {participant_id} rebinding from {participant.socket_id} to {sid}")
        # One connection speaks for one participant
        self.db.query(Participant).filter(Participant.socket_id == sid, Participant.id != participant_id).update(
            {Participant.socket_id: None}, synchronize_session=False
        )
        participant.socket_id = sid
        participant.last_active = utcnow()
        self.db.flush()

        participants = (
            self.db.query(Participant)
            .filter(Participant.session_id == session_id)
            .order_by(Participant.joined_at)
            .all()
        )
        logger.info(f"Participant {participant.display_name} joined session {session_id}")
        return JoinResult(session=participant.session, participant=participant, participants=participants)

    def find_binding(self, sid: str) -> Optional[Departure]:
        participant = self.db.query(Participant).filter(Participant.socket_id == sid).first()
        if not participant:
            return None
        return Departure(session_id=participant.session_id, participant_id=participant.id)

    def disconnect(self, participant_id: str, sid: str) -> bool:
        """Unbind ``sid``; a newer binding from a reconnect is left alone."""
        participant = self.db.get(Participant, participant_id)
        if not participant or participant.socket_id != sid:
            return False
        participant.socket_id = None
        participant.last_active = utcnow()
        logger.info(f"Participant {participant.display_name} left session {participant.session_id}")
        return True

    def require_host(self, session_id: str, sid: str, action: str) -> Participant:
        host = (
            self.db.query(Participant)
            .filter(
                Participant.session_id == session_id,
                Participant.socket_id == sid,
                Participant.is_host.is_(True),
            )
            .first()
        )
        if not host:
            logger.warning(f"Connection {sid} is not the host of session {session_id}, refusing {action}")
            raise AuthorizationError(f"Unauthorized to {action}")
        return host

    def require_owner(self, session_id: str, response_id: str, sid: str) -> Response:
        response = (
            self.db.query(Response)
            .join(Participant, Response.participant_id == Participant.id)
            .filter(
                Response.id == response_id,
                Response.session_id == session_id,
                Participant.socket_id == sid,
            )
            .first()
        )
        if not response:
            raise NotFoundError("Response not found or unauthorized")
        return response
