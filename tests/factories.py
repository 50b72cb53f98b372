"""Builders for test data; each commits so other sessions can see the rows."""

from __future__ import annotations

from unittest.mock import AsyncMock

from retroflow.models import Group, Participant, Response, ResponseCategory
from retroflow.schemas.session import SessionCreate
from retroflow.services.session_service import SessionService

SID_HOST = "sid-host"
SID_GUEST = "sid-guest"


def emitted(emit: AsyncMock, event: str) -> list[tuple[object, dict]]:
    """All (payload, kwargs) pairs emitted for ``event``."""
    found = []
    for call in emit.call_args_list:
        if call.args and call.args[0] == event:
            payload = call.args[1] if len(call.args) > 1 else None
            found.append((payload, call.kwargs))
    return found


def make_session(db, host_name: str = "Alice"):
    service = SessionService(db)
    session = service.create(SessionCreate(host_name=host_name, host_avatar="owl"))
    return session, service.host_of(session)


def add_participant(db, session, name: str, socket_id: str | None = None) -> Participant:
    participant = Participant(session_id=session.id, display_name=name, avatar_id="fox", socket_id=socket_id)
    db.add(participant)
    db.commit()
    db.refresh(participant)
    return participant


def bind(db, participant: Participant, socket_id: str) -> None:
    participant.socket_id = socket_id
    db.commit()


def add_response(
    db,
    session,
    participant,
    content: str = "Standups were short",
    category: ResponseCategory = ResponseCategory.WENT_WELL,
    group: Group | None = None,
    x: float = 0,
    y: float = 0,
) -> Response:
    response = Response(
        session_id=session.id,
        participant_id=participant.id,
        content=content,
        category=category,
        position_x=x,
        position_y=y,
        group_id=group.id if group else None,
    )
    db.add(response)
    db.commit()
    db.refresh(response)
    return response


def add_group(db, session, label: str = "Process") -> Group:
    group = Group(session_id=session.id, label=label, color="#000000", vote_count=0)
    db.add(group)
    db.commit()
    db.refresh(group)
    return group
