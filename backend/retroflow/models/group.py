from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from retroflow.database import Base
from retroflow.models._defaults import new_id


class Group(Base):
    __tablename__ = "groups"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False)
    position_x = Column(Float, nullable=False, default=0)
    position_y = Column(Float, nullable=False, default=0)
    # Always the sum of this group's Vote rows
    vote_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("RetroSession", back_populates="groups")
    responses = relationship("Response", back_populates="group")
    votes = relationship("Vote", back_populates="group", cascade="all, delete-orphan")
