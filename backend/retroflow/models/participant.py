from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship, validates

from retroflow.database import Base
from retroflow.models._defaults import new_id, utcnow


def display_name_key(display_name: str) -> str:
    return display_name.strip().casefold()


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (UniqueConstraint("session_id", "display_name_key", name="uq_participant_display_name"),)

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    display_name = Column(String(50), nullable=False)
    display_name_key = Column(String(50), nullable=False)
    avatar_id = Column(String(20), nullable=False)
    is_host = Column(Boolean, nullable=False, default=False)
    socket_id = Column(String(64), nullable=True, index=True)
    last_active = Column(DateTime(timezone=True), default=utcnow)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    session = relationship("RetroSession", back_populates="participants")
    responses = relationship("Response", back_populates="participant", cascade="all, delete-orphan")
    votes = relationship("Vote", back_populates="participant", cascade="all, delete-orphan")

    @validates("display_name")
    def _sync_display_name_key(self, key, value):
        self.display_name_key = display_name_key(value)
        return value

    @property
    def is_online(self) -> bool:
        return self.socket_id is not None
