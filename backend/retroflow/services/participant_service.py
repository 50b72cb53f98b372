import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from retroflow.errors import ConflictError, NotFoundError
from retroflow.models import Group, Participant, RetroSession, Vote
from retroflow.schemas.participant import ParticipantUpdate
from retroflow.services.board_service import BoardStore, ResponseRemoval
from retroflow.services.session_service import SessionService
from retroflow.services.voting_service import VoteResult, VotingLedger

logger = logging.getLogger(__name__)


@dataclass
class ParticipantRemoval:
    session_id: str
    participant_id: str
    promoted_id: Optional[str] = None
    removed_responses: List[ResponseRemoval] = field(default_factory=list)
    # Surviving groups whose totals lost this participant's votes
    retallied: List[VoteResult] = field(default_factory=list)
    participant_progress: Dict[str, int] = field(default_factory=dict)

    @property
    def removed_connection_ids(self) -> List[str]:
        return [cid for removal in self.removed_responses for cid in removal.removed_connection_ids]

    @property
    def deleted_group_ids(self) -> List[str]:
        return [removal.deleted_group_id for removal in self.removed_responses if removal.deleted_group_id]


class ParticipantService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, participant_id: str) -> Optional[Participant]:
        return self.db.query(Participant).filter(Participant.id == participant_id).first()

    def update(self, participant_id: str, update_data: ParticipantUpdate) -> Optional[Participant]:
        participant = self.get_by_id(participant_id)
        if not participant:
            return None

        changes = update_data.model_dump(exclude_unset=True, exclude_none=True)
        if "display_name" in changes and SessionService(self.db).name_taken(
            participant.session_id, changes["display_name"], exclude_id=participant_id
        ):
            raise ConflictError("Display name already taken")

        for field, value in changes.items():
            setattr(participant, field, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Display name already taken")
        self.db.refresh(participant)
        logger.info(f"Updated participant {participant.id}")
        return participant

    def remove(self, participant_id: str) -> ParticipantRemoval:
        """Delete a participant, handing the host role on if needed.

        Their responses go through the same cascade as a deletion from the
        board. The result lists every shared change so it can be broadcast.
        The caller owns the transaction.
        """
        participant = self.get_by_id(participant_id)
        if not participant:
            raise NotFoundError("Participant not found")
        session_id = participant.session_id

        promoted_id = None
        if participant.is_host:
            successor = (
                self.db.query(Participant)
                .filter(Participant.session_id == session_id, Participant.id != participant_id)
                .order_by(Participant.joined_at, Participant.id)
                .first()
            )
            session = self.db.get(RetroSession, session_id)
            participant.is_host = False
            if successor:
                successor.is_host = True
                promoted_id = successor.id
                logger.info(f"Promoted {successor.display_name} to host of session {session_id}")
            else:
                logger.info(f"Session {session_id} has no participants left and no host")
            if session:
                session.host_id = promoted_id

        removal = ParticipantRemoval(session_id=session_id, participant_id=participant_id, promoted_id=promoted_id)
        board = BoardStore(self.db)
        for response in list(participant.responses):
            removal.removed_responses.append(board.remove_response(response))
        self.db.expire(participant, ["responses"])

        voted_group_ids = [
            row.group_id for row in self.db.query(Vote.group_id).filter(Vote.participant_id == participant_id).all()
        ]
        self.db.delete(participant)
        self.db.flush()

        ledger = VotingLedger(self.db)
        for group in self.db.query(Group).filter(Group.id.in_(voted_group_ids)).all():
            removal.retallied.append(ledger.retally(session_id, group))
        removal.participant_progress = ledger.remaining_by_participant(session_id)

        logger.info(f"Removed participant {participant_id} from session {session_id}")
        return removal
