import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from retroflow.errors import NotFoundError
from retroflow.models import RetroSession, SessionPhase
from retroflow.models._defaults import utcnow
from retroflow.schemas.common import as_utc, isoformat_utc
from retroflow.services.presence import PresenceRegistry

logger = logging.getLogger(__name__)


@dataclass
class PhaseChange:
    phase: SessionPhase
    timer_end_time: Optional[datetime]

    def to_wire(self) -> dict:
        return {"phase": self.phase.value, "timerEndTime": isoformat_utc(self.timer_end_time)}


def resolve_timer_end(
    previous: Optional[datetime],
    timer_duration: Optional[int],
    stop_timer: bool,
    now: datetime,
) -> Optional[datetime]:
    if stop_timer:
        return None
    if timer_duration:
        return now + timedelta(seconds=timer_duration)
    return as_utc(previous)


class PhaseController:
    """Host-gated session lifecycle. The timer is advisory only."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def change_phase(
        self,
        session_id: str,
        sid: str,
        phase: SessionPhase,
        timer_duration: Optional[int] = None,
        stop_timer: bool = False,
    ) -> PhaseChange:
        PresenceRegistry(self.db).require_host(session_id, sid, "change phase")

        session = self.db.get(RetroSession, session_id)
        if not session:
            raise NotFoundError("Session not found")

        timer_end_time = resolve_timer_end(session.timer_end_time, timer_duration, stop_timer, self.clock())
        session.current_phase = phase
        if timer_duration:
            session.timer_duration = timer_duration
        session.timer_end_time = timer_end_time

        logger.info(f"Session {session_id} moved to {phase.value} (timer ends {isoformat_utc(timer_end_time)})")
        return PhaseChange(phase=phase, timer_end_time=timer_end_time)
