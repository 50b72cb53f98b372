import logging

from sqlalchemy.orm import Session

from retroflow.services.presence import PresenceRegistry

logger = logging.getLogger(__name__)


class PresentationNavigator:
    """Host-driven walkthrough. Nothing is persisted; the host is trusted with the index."""

    def __init__(self, db: Session):
        self.db = db
        self.presence = PresenceRegistry(db)

    def start(self, session_id: str, sid: str) -> None:
        self.presence.require_host(session_id, sid, "start presentation")
        logger.info(f"Presentation started in session {session_id}")

    def end(self, session_id: str, sid: str) -> None:
        self.presence.require_host(session_id, sid, "end presentation")
        logger.info(f"Presentation ended in session {session_id}")

    def navigate(self, session_id: str, sid: str, item_index: int) -> dict:
        self.presence.require_host(session_id, sid, "navigate presentation")
        return {"itemIndex": item_index}
