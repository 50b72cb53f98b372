from typing import List, Optional

from retroflow.models import ResponseCategory
from retroflow.schemas.common import CamelModel


class AuthorSummary(CamelModel):
    display_name: str
    avatar_id: str


class ResponseRead(CamelModel):
    id: str
    session_id: str
    participant_id: str
    content: str
    category: ResponseCategory
    position_x: float
    position_y: float
    group_id: Optional[str] = None
    participant: Optional[AuthorSummary] = None


class GroupRead(CamelModel):
    id: str
    session_id: str
    label: str
    color: str
    position_x: float
    position_y: float
    vote_count: int


class GroupWithResponses(GroupRead):
    responses: List[ResponseRead] = []


class ConnectionRead(CamelModel):
    id: str
    session_id: str
    from_response_id: str
    to_response_id: str


class VoteRead(CamelModel):
    id: str
    participant_id: str
    group_id: str
    vote_count: int
