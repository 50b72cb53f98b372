from retroflow.models.session import RetroSession, SessionPhase
from retroflow.models.participant import Participant, display_name_key
from retroflow.models.response import Response, ResponseCategory
from retroflow.models.group import Group
from retroflow.models.connection import Connection
from retroflow.models.vote import Vote

__all__ = [
    "RetroSession",
    "SessionPhase",
    "Participant",
    "display_name_key",
    "Response",
    "ResponseCategory",
    "Group",
    "Connection",
    "Vote",
]
