from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from retroflow.database import get_db
from retroflow.errors import ConflictError, NotFoundError
from retroflow.schemas.board import VoteRead
from retroflow.schemas.participant import ParticipantRead, ParticipantUpdate, ParticipantVotes
from retroflow.services.participant_service import ParticipantService
from retroflow.services.voting_service import VOTE_QUOTA, VotingLedger
from retroflow.websocket.handler import ws_handler
from retroflow.websocket.locks import run_in_transaction, session_locks

router = APIRouter(prefix="/participants", tags=["participants"])


@router.get("/{participant_id}", response_model=ParticipantRead)
def get_participant(participant_id: str, db: Session = Depends(get_db)):
    participant = ParticipantService(db).get_by_id(participant_id)
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")
    return participant


@router.patch("/{participant_id}", response_model=ParticipantRead)
def update_participant(participant_id: str, update_data: ParticipantUpdate, db: Session = Depends(get_db)):
    if not update_data.model_dump(exclude_none=True):
        raise HTTPException(status_code=400, detail="No update data provided")
    try:
        participant = ParticipantService(db).update(participant_id, update_data)
    except ConflictError as e:
        raise HTTPException(status_code=400, detail=e.message)
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")
    return participant


@router.delete("/{participant_id}", status_code=204)
async def delete_participant(participant_id: str):
    def lookup(db):
        participant = ParticipantService(db).get_by_id(participant_id)
        return participant.session_id if participant else None

    session_id = await run_in_transaction(lookup)
    if not session_id:
        raise HTTPException(status_code=404, detail="Participant not found")

    async with session_locks.for_session(session_id):
        try:
            removal = await run_in_transaction(lambda db: ParticipantService(db).remove(participant_id))
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Participant not found")
        await ws_handler.announce_participant_removal(removal)


@router.get("/{participant_id}/votes", response_model=ParticipantVotes)
def get_participant_votes(participant_id: str, db: Session = Depends(get_db)):
    if not ParticipantService(db).get_by_id(participant_id):
        raise HTTPException(status_code=404, detail="Participant not found")
    votes = VotingLedger(db).votes_for(participant_id)
    total = sum(vote.vote_count for vote in votes)
    return ParticipantVotes(
        votes=[VoteRead.model_validate(vote) for vote in votes],
        total_votes=total,
        remaining_votes=max(0, VOTE_QUOTA - total),
    )
