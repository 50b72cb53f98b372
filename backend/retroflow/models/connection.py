from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from retroflow.database import Base
from retroflow.models._defaults import new_id


class Connection(Base):
    __tablename__ = "connections"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    from_response_id = Column(String(36), ForeignKey("responses.id", ondelete="CASCADE"), nullable=False)
    to_response_id = Column(String(36), ForeignKey("responses.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("RetroSession", back_populates="connections")
