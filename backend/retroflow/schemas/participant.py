from datetime import datetime
from typing import List, Optional

from pydantic import Field

from retroflow.schemas.board import VoteRead
from retroflow.schemas.common import CamelModel


class ParticipantRead(CamelModel):
    id: str
    session_id: str
    display_name: str
    avatar_id: str
    is_host: bool
    is_online: bool
    last_active: Optional[datetime] = None


class ParticipantUpdate(CamelModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=50)
    avatar_id: Optional[str] = Field(None, min_length=1, max_length=20)


class ParticipantVotes(CamelModel):
    votes: List[VoteRead]
    total_votes: int
    remaining_votes: int
