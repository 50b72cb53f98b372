import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from retroflow.errors import NotFoundError, QuotaExceededError
from retroflow.models import Group, Participant, Vote
from retroflow.services.materializer import GroupMaterializer, parse_vote_target

logger = logging.getLogger(__name__)

VOTE_QUOTA = 4


@dataclass
class VoteResult:
    target: str
    group_id: str
    total_votes: int
    participant_progress: Dict[str, int]
    # Present when the vote materialized a new group
    materialized_response_ids: Optional[List[str]] = field(default=None)

    def to_wire(self) -> dict:
        return {
            "groupId": self.target,
            "resolvedGroupId": self.group_id,
            "totalVotes": self.total_votes,
            "participantProgress": self.participant_progress,
        }


class VotingLedger:
    """Per-participant vote budget across the groups of a session.

    Totals are always recomputed from Vote rows, never adjusted in place.
    """

    def __init__(self, db: Session, quota: int = VOTE_QUOTA):
        self.db = db
        self.quota = quota

    def allocated(self, participant_id: str, group_id: Optional[str] = None) -> int:
        query = self.db.query(func.coalesce(func.sum(Vote.vote_count), 0)).filter(
            Vote.participant_id == participant_id
        )
        if group_id is not None:
            query = query.filter(Vote.group_id == group_id)
        return int(query.scalar())

    def group_total(self, group_id: str) -> int:
        return int(
            self.db.query(func.coalesce(func.sum(Vote.vote_count), 0)).filter(Vote.group_id == group_id).scalar()
        )

    def remaining_by_participant(self, session_id: str) -> Dict[str, int]:
        used = dict(
            self.db.query(Vote.participant_id, func.sum(Vote.vote_count))
            .filter(Vote.session_id == session_id)
            .group_by(Vote.participant_id)
            .all()
        )
        participant_ids = [
            row.id for row in self.db.query(Participant.id).filter(Participant.session_id == session_id).all()
        ]
        return {pid: self.quota - int(used.get(pid) or 0) for pid in participant_ids}

    def refresh_group_total(self, group: Group) -> int:
        group.vote_count = self.group_total(group.id)
        return group.vote_count

    def cast_vote(self, session_id: str, participant_id: str, target: str, count: int) -> VoteResult:
        participant = (
            self.db.query(Participant)
            .filter(Participant.id == participant_id, Participant.session_id == session_id)
            .first()
        )
        if not participant:
            raise NotFoundError("Participant not found")

        resolved = GroupMaterializer(self.db).resolve(session_id, parse_vote_target(target))
        group = resolved.group

        new_total = self.allocated(participant_id) - self.allocated(participant_id, group.id) + count
        if new_total > self.quota:
            logger.warning(f"Participant {participant_id} would hold {new_total} votes, quota is {self.quota}")
            raise QuotaExceededError("Insufficient votes remaining")

        vote = (
            self.db.query(Vote)
            .filter(Vote.participant_id == participant_id, Vote.group_id == group.id)
            .first()
        )
        if count == 0:
            if vote:
                self.db.delete(vote)
        elif vote:
            vote.vote_count = count
        else:
            self.db.add(Vote(session_id=session_id, participant_id=participant_id, group_id=group.id, vote_count=count))
        self.db.flush()

        total = self.refresh_group_total(group)
        logger.info(f"Participant {participant_id} allocated {count} votes to group {group.id} (group total {total})")
        return VoteResult(
            target=target,
            group_id=group.id,
            total_votes=total,
            participant_progress=self.remaining_by_participant(session_id),
            materialized_response_ids=resolved.response_ids,
        )

    def votes_for(self, participant_id: str) -> List[Vote]:
        return self.db.query(Vote).filter(Vote.participant_id == participant_id).all()

    def retally(self, session_id: str, group: Group) -> VoteResult:
        """Recount a group whose Vote rows changed outside ``cast_vote``."""
        return VoteResult(
            target=group.id,
            group_id=group.id,
            total_votes=self.refresh_group_total(group),
            participant_progress=self.remaining_by_participant(session_id),
        )

    def progress(self, session_id: str) -> Dict[str, Dict[str, int]]:
        return {"participantProgress": self.remaining_by_participant(session_id)}
