"""Resolve vote targets that may not be persisted groups yet.

Clients address an ungrouped response (``individual-<id>``) or a drawn chain
of connected responses (``connected-<id>--<id>...``) before any group exists
for it. The first vote on such a target materializes the group; later votes
reuse whatever group the responses already belong to.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from retroflow.errors import NotFoundError, ValidationError
from retroflow.models import Group, Response, ResponseCategory
from retroflow.services.board_service import BoardStore

logger = logging.getLogger(__name__)

INDIVIDUAL_PREFIX = "individual-"
CONNECTED_PREFIX = "connected-"
CHAIN_SEPARATOR = "--"

WENT_WELL_COLOR = "#10b981"
DIDNT_GO_WELL_COLOR = "#ef4444"

SINGLE_LABEL_LIMIT = 30
CHAIN_PART_LIMIT = 20
CHAIN_LABEL_LIMIT = 80


@dataclass(frozen=True)
class PersistedGroup:
    group_id: str


@dataclass(frozen=True)
class IndividualResponse:
    response_id: str


@dataclass(frozen=True)
class ConnectedChain:
    response_ids: Tuple[str, ...]


VoteTarget = Union[PersistedGroup, IndividualResponse, ConnectedChain]


def _parse_uuid(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValidationError(f"Invalid group identifier: {value!r}")


def parse_vote_target(raw: str) -> VoteTarget:
    if raw.startswith(CONNECTED_PREFIX):
        parts = raw[len(CONNECTED_PREFIX):].split(CHAIN_SEPARATOR)
        if not parts or any(not part for part in parts):
            raise ValidationError("Invalid connected group format")
        ids = []
        for part in parts:
            response_id = _parse_uuid(part)
            if response_id not in ids:
                ids.append(response_id)
        return ConnectedChain(response_ids=tuple(ids))
    if raw.startswith(INDIVIDUAL_PREFIX):
        return IndividualResponse(response_id=_parse_uuid(raw[len(INDIVIDUAL_PREFIX):]))
    return PersistedGroup(group_id=_parse_uuid(raw))


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def color_for(category: ResponseCategory) -> str:
    return WENT_WELL_COLOR if category == ResponseCategory.WENT_WELL else DIDNT_GO_WELL_COLOR


def chain_label(contents: List[str]) -> str:
    label = " • ".join(_truncate(content, CHAIN_PART_LIMIT) for content in contents)
    return _truncate(label, CHAIN_LABEL_LIMIT)


@dataclass
class Materialization:
    group: Group
    # Set only when a new group was created
    response_ids: Optional[List[str]] = None

    @property
    def created(self) -> bool:
        return self.response_ids is not None


class GroupMaterializer:
    """Find-or-create the persisted group behind a vote target.

    Must run inside the session's critical section so two requests for the
    same virtual target cannot both create a group.
    """

    def __init__(self, db: Session):
        self.db = db
        self.board = BoardStore(db)

    def resolve(self, session_id: str, target: VoteTarget) -> Materialization:
        if isinstance(target, PersistedGroup):
            return Materialization(group=self.board.get_group(session_id, target.group_id))
        if isinstance(target, IndividualResponse):
            return self._resolve_responses(session_id, [target.response_id], single=True)
        return self._resolve_responses(session_id, list(target.response_ids), single=False)

    def _resolve_responses(self, session_id: str, response_ids: List[str], single: bool) -> Materialization:
        found = {
            response.id: response
            for response in self.db.query(Response)
            .filter(Response.id.in_(response_ids), Response.session_id == session_id)
            .all()
        }
        if len(found) != len(response_ids):
            raise NotFoundError("Response not found" if single else "Connected responses not found")
        responses = [found[response_id] for response_id in response_ids]

        for response in responses:
            if response.group_id:
                logger.info(f"Reusing group {response.group_id} for responses {response_ids}")
                return Materialization(group=self.board.get_group(session_id, response.group_id))

        first = responses[0]
        if single:
            label = _truncate(first.content, SINGLE_LABEL_LIMIT)
        else:
            label = chain_label([response.content for response in responses])

        group = self.board.create_group(
            session_id,
            label=label,
            color=color_for(first.category),
            x=first.position_x or 0,
            y=first.position_y or 0,
            response_ids=response_ids,
        )
        logger.info(f"Materialized group {group.id} for responses {response_ids} in session {session_id}")
        return Materialization(group=group, response_ids=response_ids)
