import logging
import secrets
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from retroflow.errors import ConflictError
from retroflow.models import Group, Participant, Response, RetroSession, display_name_key
from retroflow.schemas.session import SessionCreate, SessionJoin

logger = logging.getLogger(__name__)

INVITE_ALPHABET = "ABCDEFGHIJKLMNPQRSTUVWXYZ123456789"
INVITE_LENGTH = 8


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(INVITE_LENGTH))


class SessionFullError(ConflictError):
    pass


class SessionService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, session_id: str) -> Optional[RetroSession]:
        return self.db.query(RetroSession).filter(RetroSession.id == session_id).first()

    def get_by_invite_code(self, invite_code: str) -> Optional[RetroSession]:
        return self.db.query(RetroSession).filter(RetroSession.invite_code == invite_code.upper()).first()

    def _unused_invite_code(self) -> str:
        while True:
            code = generate_invite_code()
            if not self.get_by_invite_code(code):
                return code

    def create(self, session_data: SessionCreate) -> RetroSession:
        session = RetroSession(
            title=session_data.title or "Retrospective",
            invite_code=self._unused_invite_code(),
        )
        self.db.add(session)
        self.db.flush()

        host = Participant(
            session_id=session.id,
            display_name=session_data.host_name,
            avatar_id=session_data.host_avatar,
            is_host=True,
        )
        self.db.add(host)
        self.db.flush()
        session.host_id = host.id

        self.db.commit()
        self.db.refresh(session)
        logger.info(f"Created session {session.id} hosted by {host.display_name}")
        return session

    def host_of(self, session: RetroSession) -> Optional[Participant]:
        return next((p for p in session.participants if p.is_host), None)

    def name_taken(self, session_id: str, display_name: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(Participant).filter(
            Participant.session_id == session_id,
            Participant.display_name_key == display_name_key(display_name),
        )
        if exclude_id:
            query = query.filter(Participant.id != exclude_id)
        return query.first() is not None

    def join(self, session: RetroSession, join_data: SessionJoin, max_participants: int) -> Participant:
        if self.participant_count(session.id) >= max_participants:
            raise SessionFullError("Session is full")
        if self.name_taken(session.id, join_data.display_name):
            raise ConflictError("Display name already taken")

        participant = Participant(
            session_id=session.id,
            display_name=join_data.display_name,
            avatar_id=join_data.avatar_id,
            is_host=False,
        )
        self.db.add(participant)
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent join claimed the same name first
            self.db.rollback()
            raise ConflictError("Display name already taken")
        self.db.refresh(participant)
        logger.info(f"Participant {participant.display_name} joined session {session.id} by invite")
        return participant

    def snapshot(self, session_id: str) -> Optional[RetroSession]:
        return (
            self.db.query(RetroSession)
            .options(
                selectinload(RetroSession.participants),
                selectinload(RetroSession.responses).selectinload(Response.participant),
                selectinload(RetroSession.groups).selectinload(Group.responses),
                selectinload(RetroSession.connections),
                selectinload(RetroSession.votes),
            )
            .filter(RetroSession.id == session_id)
            .first()
        )

    def participant_count(self, session_id: str) -> int:
        return self.db.query(Participant).filter(Participant.session_id == session_id).count()
