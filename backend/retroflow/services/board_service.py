import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from retroflow.errors import ConflictError, NotFoundError, ValidationError
from retroflow.models import Connection, Group, Participant, Response, ResponseCategory
from retroflow.services.presence import PresenceRegistry

logger = logging.getLogger(__name__)


@dataclass
class ResponseRemoval:
    response_id: str
    removed_connection_ids: List[str] = field(default_factory=list)
    # Group the response belonged to, and that group if it was left empty
    group_id: Optional[str] = None
    deleted_group_id: Optional[str] = None

    @property
    def touched_shared_state(self) -> bool:
        return bool(self.removed_connection_ids or self.group_id)


class BoardStore:
    """Responses, groups and connections for one session."""

    def __init__(self, db: Session):
        self.db = db

    # -- lookups ---------------------------------------------------------

    def get_response(self, session_id: str, response_id: str) -> Response:
        response = (
            self.db.query(Response)
            .filter(Response.id == response_id, Response.session_id == session_id)
            .first()
        )
        if not response:
            raise NotFoundError("Response not found")
        return response

    def get_group(self, session_id: str, group_id: str) -> Group:
        group = self.db.query(Group).filter(Group.id == group_id, Group.session_id == session_id).first()
        if not group:
            raise NotFoundError("Group not found")
        return group

    # -- responses -------------------------------------------------------

    def add_response(
        self, session_id: str, participant_id: str, content: str, category: ResponseCategory
    ) -> Response:
        participant = (
            self.db.query(Participant)
            .filter(Participant.id == participant_id, Participant.session_id == session_id)
            .first()
        )
        if not participant:
            raise NotFoundError("Participant not found")

        response = Response(
            session_id=session_id,
            participant_id=participant_id,
            content=content,
            category=category,
            position_x=0,
            position_y=0,
        )
        self.db.add(response)
        self.db.flush()
        self.db.refresh(response)
        logger.info(f"Participant {participant_id} added response {response.id} to session {session_id}")
        return response

    def update_response(self, session_id: str, response_id: str, sid: str, content: str) -> Response:
        response = PresenceRegistry(self.db).require_owner(session_id, response_id, sid)
        response.content = content
        self.db.flush()
        return response

    def delete_response(self, session_id: str, response_id: str, sid: str) -> ResponseRemoval:
        response = PresenceRegistry(self.db).require_owner(session_id, response_id, sid)
        removal = self.remove_response(response)
        logger.info(f"Deleted response {response_id} from session {session_id}")
        return removal

    def remove_response(self, response: Response) -> ResponseRemoval:
        """Delete a response with its connections, and its group if it was the last member."""
        removal = ResponseRemoval(response_id=response.id)

        connections = (
            self.db.query(Connection)
            .filter(
                Connection.session_id == response.session_id,
                or_(Connection.from_response_id == response.id, Connection.to_response_id == response.id),
            )
            .all()
        )
        for connection in connections:
            removal.removed_connection_ids.append(connection.id)
            self.db.delete(connection)

        group_id = removal.group_id = response.group_id
        self.db.delete(response)
        self.db.flush()

        if group_id:
            remaining = self.db.query(Response).filter(Response.group_id == group_id).count()
            if remaining == 0:
                group = self.db.get(Group, group_id)
                if group:
                    self._delete_group(group)
                    removal.deleted_group_id = group_id
        return removal

    def drag_response(
        self,
        session_id: str,
        response_id: str,
        x: float,
        y: float,
        group_id: Optional[str] = None,
        regroup: bool = True,
    ) -> Response:
        """Move a response; membership changes only when ``regroup`` is set."""
        response = self.get_response(session_id, response_id)
        if regroup and group_id is not None:
            self.get_group(session_id, group_id)
        response.position_x = x
        response.position_y = y
        if regroup:
            response.group_id = group_id
        self.db.flush()
        return response

    def ungroup_response(self, session_id: str, response_id: str) -> Response:
        response = self.get_response(session_id, response_id)
        response.group_id = None
        self.db.flush()
        return response

    # -- groups ----------------------------------------------------------

    def create_group(
        self,
        session_id: str,
        label: str,
        color: str,
        x: float = 0,
        y: float = 0,
        response_ids: Sequence[str] = (),
    ) -> Group:
        group = Group(session_id=session_id, label=label, color=color, position_x=x, position_y=y, vote_count=0)
        self.db.add(group)
        self.db.flush()

        if response_ids:
            self.assign_responses(session_id, group, response_ids)
        self.db.refresh(group)
        logger.info(f"Created group {group.id} ({label!r}) in session {session_id}")
        return group

    def assign_responses(self, session_id: str, group: Group, response_ids: Sequence[str]) -> None:
        responses = (
            self.db.query(Response)
            .filter(Response.id.in_(list(response_ids)), Response.session_id == session_id)
            .all()
        )
        for response in responses:
            response.group_id = group.id
        self.db.flush()

    def rename_group(self, session_id: str, group_id: str, label: str) -> Group:
        group = self.get_group(session_id, group_id)
        group.label = label
        self.db.flush()
        return group

    def delete_group(self, session_id: str, group_id: str) -> None:
        group = self.get_group(session_id, group_id)
        self._delete_group(group)
        logger.info(f"Deleted group {group_id} from session {session_id}")

    def _delete_group(self, group: Group) -> None:
        for response in self.db.query(Response).filter(Response.group_id == group.id).all():
            response.group_id = None
        # Vote rows go with the group through the relationship cascade
        self.db.delete(group)
        self.db.flush()

    # -- connections -----------------------------------------------------

    def create_connection(self, session_id: str, from_response_id: str, to_response_id: str) -> Connection:
        if from_response_id == to_response_id:
            raise ValidationError("A response cannot be connected to itself")

        existing = (
            self.db.query(Connection)
            .filter(
                Connection.session_id == session_id,
                or_(
                    and_(
                        Connection.from_response_id == from_response_id,
                        Connection.to_response_id == to_response_id,
                    ),
                    and_(
                        Connection.from_response_id == to_response_id,
                        Connection.to_response_id == from_response_id,
                    ),
                ),
            )
            .first()
        )
        if existing:
            raise ConflictError("Connection already exists")

        found = (
            self.db.query(Response)
            .filter(Response.id.in_([from_response_id, to_response_id]), Response.session_id == session_id)
            .count()
        )
        if found != 2:
            raise NotFoundError("Invalid responses for connection")

        connection = Connection(
            session_id=session_id, from_response_id=from_response_id, to_response_id=to_response_id
        )
        self.db.add(connection)
        self.db.flush()
        return connection

    def remove_connection(self, session_id: str, connection_id: str) -> None:
        connection = (
            self.db.query(Connection)
            .filter(Connection.id == connection_id, Connection.session_id == session_id)
            .first()
        )
        if not connection:
            raise NotFoundError("Connection not found")
        self.db.delete(connection)
        self.db.flush()
