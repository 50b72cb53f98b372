import enum

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from retroflow.database import Base
from retroflow.models._defaults import new_id


class ResponseCategory(str, enum.Enum):
    WENT_WELL = "WENT_WELL"
    DIDNT_GO_WELL = "DIDNT_GO_WELL"


class Response(Base):
    __tablename__ = "responses"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(String(36), ForeignKey("participants.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(Enum(ResponseCategory), nullable=False)
    position_x = Column(Float, nullable=False, default=0)
    position_y = Column(Float, nullable=False, default=0)
    group_id = Column(String(36), ForeignKey("groups.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("RetroSession", back_populates="responses")
    participant = relationship("Participant", back_populates="responses")
    group = relationship("Group", back_populates="responses")
