"""Inbound Socket.IO command payloads."""

from typing import List, Optional

from pydantic import Field

from retroflow.models import ResponseCategory, SessionPhase
from retroflow.schemas.common import CamelModel, UUIDStr


class SessionCommand(CamelModel):
    session_id: UUIDStr


class JoinSession(SessionCommand):
    participant_id: UUIDStr


class ChangePhase(SessionCommand):
    phase: SessionPhase
    timer_duration: Optional[int] = Field(None, gt=0)
    stop_timer: bool = False


class Typing(SessionCommand):
    participant_id: UUIDStr


class AddResponse(SessionCommand):
    participant_id: UUIDStr
    content: str = Field(..., min_length=1, max_length=500)
    category: ResponseCategory


class UpdateResponse(SessionCommand):
    response_id: UUIDStr
    content: str = Field(..., min_length=1, max_length=500)


class DeleteResponse(SessionCommand):
    response_id: UUIDStr


class DragResponse(SessionCommand):
    response_id: UUIDStr
    x: float
    y: float
    group_id: Optional[UUIDStr] = None


class UngroupResponse(SessionCommand):
    response_id: UUIDStr


class CreateGroup(SessionCommand):
    label: str = Field(..., min_length=1, max_length=100)
    color: str = Field(..., min_length=1, max_length=20)
    x: float = 0
    y: float = 0
    response_ids: List[UUIDStr] = []


class UpdateGroup(SessionCommand):
    group_id: UUIDStr
    label: str = Field(..., min_length=1, max_length=100)


class DeleteGroup(SessionCommand):
    group_id: UUIDStr


class CreateConnection(SessionCommand):
    from_response_id: UUIDStr
    to_response_id: UUIDStr


class RemoveConnection(SessionCommand):
    connection_id: UUIDStr


class CastVote(SessionCommand):
    participant_id: UUIDStr
    # Persisted group id, "individual-<id>" or "connected-<id>--<id>..."
    group_id: str = Field(..., min_length=1)
    vote_count: int = Field(..., ge=0, le=4)


class Presentation(SessionCommand):
    pass


class NavigatePresentation(SessionCommand):
    item_index: int = Field(..., ge=0)
