from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from retroflow.database import Base
from retroflow.models._defaults import new_id


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("participant_id", "group_id", name="uq_vote_participant_group"),
        CheckConstraint("vote_count > 0", name="ck_vote_count_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(String(36), ForeignKey("participants.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    vote_count = Column(Integer, nullable=False)

    session = relationship("RetroSession", back_populates="votes")
    participant = relationship("Participant", back_populates="votes")
    group = relationship("Group", back_populates="votes")
