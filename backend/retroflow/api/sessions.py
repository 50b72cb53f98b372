from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from retroflow.config import get_settings
from retroflow.database import get_db
from retroflow.errors import ConflictError
from retroflow.schemas.participant import ParticipantRead
from retroflow.schemas.session import (
    InviteSummary,
    SessionCreate,
    SessionCreated,
    SessionJoin,
    SessionJoined,
    SessionRead,
    SessionSnapshot,
)
from retroflow.services.session_service import SessionService
from retroflow.websocket.locks import run_in_transaction, run_locked

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionCreated, status_code=201)
def create_session(session_data: SessionCreate, request: Request, db: Session = Depends(get_db)):
    service = SessionService(db)
    session = service.create(session_data)
    return SessionCreated(
        session=SessionRead.model_validate(session),
        participant=ParticipantRead.model_validate(service.host_of(session)),
        invite_url=f"{request.base_url}join/{session.invite_code}",
    )


@router.post("/join", response_model=SessionJoined, status_code=201)
async def join_session(join_data: SessionJoin):
    def lookup(db):
        session = SessionService(db).get_by_invite_code(join_data.invite_code)
        return session.id if session else None

    session_id = await run_in_transaction(lookup)
    if not session_id:
        raise HTTPException(status_code=404, detail="Session not found")

    def work(db):
        service = SessionService(db)
        session = service.get_by_id(session_id)
        participant = service.join(session, join_data, get_settings().max_participants)
        return SessionJoined(
            session=SessionRead.model_validate(session),
            participant=ParticipantRead.model_validate(participant),
        )

    # Capacity is counted under the session lock
    try:
        return await run_locked(session_id, work)
    except ConflictError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.get("/invite/{invite_code}", response_model=InviteSummary)
def get_session_by_invite(invite_code: str, db: Session = Depends(get_db)):
    if len(invite_code) != 8:
        raise HTTPException(status_code=400, detail="Invalid invite code")
    service = SessionService(db)
    session = service.get_by_invite_code(invite_code)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return InviteSummary(
        id=session.id,
        title=session.title,
        current_phase=session.current_phase,
        participant_count=service.participant_count(session.id),
        created_at=session.created_at,
    )


@router.get("/{session_id}", response_model=SessionSnapshot)
def get_session(session_id: str, db: Session = Depends(get_db)):
    service = SessionService(db)
    session = service.snapshot(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session
