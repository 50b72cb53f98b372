import enum

from sqlalchemy import Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from retroflow.database import Base
from retroflow.models._defaults import new_id


class SessionPhase(str, enum.Enum):
    BRAINSTORM = "BRAINSTORM"
    GROUP = "GROUP"
    VOTE = "VOTE"
    DISCUSS = "DISCUSS"
    COMPLETE = "COMPLETE"


class RetroSession(Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False, default="Retrospective")
    invite_code = Column(String(8), nullable=False, unique=True, index=True)
    host_id = Column(String(36), nullable=True)
    current_phase = Column(Enum(SessionPhase), nullable=False, default=SessionPhase.BRAINSTORM)
    timer_duration = Column(Integer, nullable=True)
    timer_end_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    participants = relationship(
        "Participant", back_populates="session", cascade="all, delete-orphan", order_by="Participant.joined_at"
    )
    responses = relationship("Response", back_populates="session", cascade="all, delete-orphan")
    groups = relationship("Group", back_populates="session", cascade="all, delete-orphan")
    connections = relationship("Connection", back_populates="session", cascade="all, delete-orphan")
    votes = relationship("Vote", back_populates="session", cascade="all, delete-orphan")
