from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_serializer

from retroflow.models import SessionPhase
from retroflow.schemas.board import ConnectionRead, GroupWithResponses, ResponseRead, VoteRead
from retroflow.schemas.common import CamelModel, isoformat_utc
from retroflow.schemas.participant import ParticipantRead


class SessionCreate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    host_name: str = Field(..., min_length=1, max_length=50)
    host_avatar: str = Field(..., min_length=1, max_length=20)


class SessionJoin(CamelModel):
    invite_code: str = Field(..., min_length=8, max_length=8)
    display_name: str = Field(..., min_length=1, max_length=50)
    avatar_id: str = Field(..., min_length=1, max_length=20)


class SessionRead(CamelModel):
    id: str
    title: str
    invite_code: str
    host_id: Optional[str] = None
    current_phase: SessionPhase
    timer_duration: Optional[int] = None
    timer_end_time: Optional[datetime] = None

    @field_serializer("timer_end_time")
    def _serialize_timer_end_time(self, value: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(value)


class SessionCreated(CamelModel):
    session: SessionRead
    participant: ParticipantRead
    invite_url: str


class SessionJoined(CamelModel):
    session: SessionRead
    participant: ParticipantRead


class SessionSnapshot(SessionRead):
    participants: List[ParticipantRead] = []
    responses: List[ResponseRead] = []
    groups: List[GroupWithResponses] = []
    connections: List[ConnectionRead] = []
    votes: List[VoteRead] = []


class InviteSummary(CamelModel):
    id: str
    title: str
    current_phase: SessionPhase
    participant_count: int
    created_at: Optional[datetime] = None
