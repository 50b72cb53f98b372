import functools
import logging
from typing import Any, Dict, List, Type

from pydantic import BaseModel
from pydantic import ValidationError as PayloadError

from retroflow.config import get_settings
from retroflow.errors import AuthorizationError, RetroError
from retroflow.schemas import events
from retroflow.schemas.board import ConnectionRead, GroupWithResponses, ResponseRead
from retroflow.schemas.participant import ParticipantRead
from retroflow.schemas.session import SessionRead
from retroflow.services.board_service import BoardStore
from retroflow.services.participant_service import ParticipantRemoval
from retroflow.services.phase_service import PhaseController
from retroflow.services.presence import PresenceRegistry, create_presence_store, online_key, typing_key
from retroflow.services.presentation_service import PresentationNavigator
from retroflow.services.voting_service import VotingLedger
from retroflow.websocket.broadcast import broadcaster, sio
from retroflow.websocket.locks import run_in_transaction, session_locks

logger = logging.getLogger(__name__)

settings = get_settings()
presence_store = create_presence_store(settings.redis_url)

# sid -> {'sessionId', 'participantId'} for connections that joined a session
player_info: Dict[str, Dict[str, str]] = {}


def command(action: str, schema: Type[BaseModel], quiet: bool = False):
    """Validate the payload and turn any failure into an ``error`` for the caller only."""

    def decorator(handler):
        @functools.wraps(handler)
        async def wrapper(sid, data=None):
            try:
                payload = schema.model_validate(data if data is not None else {})
            except PayloadError as e:
                logger.warning(f"Invalid {action} payload from {sid}: {e.errors()}")
                if not quiet:
                    await broadcaster.error(sid, f"Invalid {action} request")
                return
            try:
                await handler(sid, payload)
            except RetroError as e:
                logger.warning(f"Rejected {action} from {sid}: {e.message}")
                if not quiet:
                    await broadcaster.error(sid, e.message)
            except Exception:
                logger.exception(f"Failed to {action} for {sid}")
                if not quiet:
                    await broadcaster.error(sid, f"Failed to {action}")

        return wrapper

    return decorator


@sio.event
async def connect(sid, environ, auth=None):
    logger.info(f"Socket.IO client connected: {sid}")


@sio.event
async def disconnect(sid, reason=None):
    logger.info(f"Socket.IO client disconnected: {sid}")
    player_info.pop(sid, None)
    try:
        binding = await run_in_transaction(lambda db: PresenceRegistry(db).find_binding(sid))
        if not binding:
            return

        async with session_locks.for_session(binding.session_id):
            released = await run_in_transaction(
                lambda db: PresenceRegistry(db).disconnect(binding.participant_id, sid)
            )
            if not released:
                return
            await broadcaster.to_others(
                binding.session_id, sid, 'participant_left', {'participantId': binding.participant_id}
            )
        await presence_store.delete(
            online_key(binding.participant_id), typing_key(binding.session_id, binding.participant_id)
        )
    except Exception:
        logger.exception(f"Disconnect cleanup failed for {sid}")


@sio.on('join_session')
@command("join session", events.JoinSession)
async def join_session(sid, payload: events.JoinSession):
    session_id = payload.session_id

    def work(db):
        joined = PresenceRegistry(db).join(session_id, payload.participant_id, sid)
        return {
            'session': SessionRead.model_validate(joined.session).to_wire(),
            'participant': ParticipantRead.model_validate(joined.participant).to_wire(),
            'participants': [ParticipantRead.model_validate(p).to_wire() for p in joined.participants],
        }

    async with session_locks.for_session(session_id):
        state = await run_in_transaction(work)

        previous = player_info.get(sid)
        if previous and previous['sessionId'] != session_id:
            await broadcaster.leave(sid, previous['sessionId'])
        player_info[sid] = {'sessionId': session_id, 'participantId': payload.participant_id}
        await broadcaster.enter(sid, session_id)

        state['typingParticipantIds'] = [
            p['id'] for p in state['participants'] if await presence_store.get(typing_key(session_id, p['id']))
        ]
        await broadcaster.to_connection(sid, 'session_joined', state)

        participant = state['participant']
        await broadcaster.to_others(session_id, sid, 'participant_joined', {
            'id': participant['id'],
            'displayName': participant['displayName'],
            'avatarId': participant['avatarId'],
            'isHost': participant['isHost'],
            'isOnline': True
        })

    await presence_store.setex(online_key(payload.participant_id), settings.presence_ttl_seconds, sid)


@sio.on('change_phase')
@command("change phase", events.ChangePhase)
async def change_phase(sid, payload: events.ChangePhase):
    def work(db):
        return PhaseController(db).change_phase(
            payload.session_id, sid, payload.phase, payload.timer_duration, payload.stop_timer
        ).to_wire()

    async with session_locks.for_session(payload.session_id):
        change = await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'phase_changed', change)


def require_joined(sid: str, session_id: str, participant_id: str) -> None:
    if player_info.get(sid) != {'sessionId': session_id, 'participantId': participant_id}:
        raise AuthorizationError("Connection has not joined as this participant")


async def announce_cascade(session_id: str, connection_ids: List[str], group_ids: List[str]):
    for connection_id in connection_ids:
        await broadcaster.to_room(session_id, 'connection_removed', {'connectionId': connection_id})
    for group_id in group_ids:
        await broadcaster.to_room(session_id, 'group_deleted', {'groupId': group_id})


@sio.on('typing_start')
@command("start typing", events.Typing, quiet=True)
async def typing_start(sid, payload: events.Typing):
    require_joined(sid, payload.session_id, payload.participant_id)
    await broadcaster.to_others(
        payload.session_id, sid, 'participant_typing_start', {'participantId': payload.participant_id}
    )
    await presence_store.setex(
        typing_key(payload.session_id, payload.participant_id), settings.typing_ttl_seconds, sid
    )


@sio.on('typing_stop')
@command("stop typing", events.Typing, quiet=True)
async def typing_stop(sid, payload: events.Typing):
    require_joined(sid, payload.session_id, payload.participant_id)
    await broadcaster.to_others(
        payload.session_id, sid, 'participant_typing_stop', {'participantId': payload.participant_id}
    )
    await presence_store.delete(typing_key(payload.session_id, payload.participant_id))


@sio.on('add_response')
@command("add response", events.AddResponse)
async def add_response(sid, payload: events.AddResponse):
    def work(db):
        response = BoardStore(db).add_response(
            payload.session_id, payload.participant_id, payload.content, payload.category
        )
        return ResponseRead.model_validate(response).to_wire()

    async with session_locks.for_session(payload.session_id):
        response = await run_in_transaction(work)
        # Ungrouped responses stay private to their author
        await broadcaster.to_connection(sid, 'response_added', response)


@sio.on('update_response')
@command("update response", events.UpdateResponse)
async def update_response(sid, payload: events.UpdateResponse):
    def work(db):
        response = BoardStore(db).update_response(payload.session_id, payload.response_id, sid, payload.content)
        return ResponseRead.model_validate(response).to_wire()

    async with session_locks.for_session(payload.session_id):
        response = await run_in_transaction(work)
        if response['groupId']:
            await broadcaster.to_room(payload.session_id, 'response_updated', response)
        else:
            await broadcaster.to_connection(sid, 'response_updated', response)


@sio.on('delete_response')
@command("delete response", events.DeleteResponse)
async def delete_response(sid, payload: events.DeleteResponse):
    def work(db):
        removal = BoardStore(db).delete_response(payload.session_id, payload.response_id, sid)
        progress = VotingLedger(db).progress(payload.session_id) if removal.deleted_group_id else None
        return removal, progress

    async with session_locks.for_session(payload.session_id):
        removal, progress = await run_in_transaction(work)
        deleted = {'responseId': removal.response_id}
        if not removal.touched_shared_state:
            await broadcaster.to_connection(sid, 'response_deleted', deleted)
            return

        await broadcaster.to_room(payload.session_id, 'response_deleted', deleted)
        await announce_cascade(
            payload.session_id,
            removal.removed_connection_ids,
            [removal.deleted_group_id] if removal.deleted_group_id else []
        )
        if progress:
            await broadcaster.to_room(payload.session_id, 'vote_progress', progress)


@sio.on('drag_response')
@command("move response", events.DragResponse)
async def drag_response(sid, payload: events.DragResponse):
    # An omitted groupId keeps the current group; an explicit null ungroups
    regroup = 'group_id' in payload.model_fields_set

    def work(db):
        response = BoardStore(db).drag_response(
            payload.session_id, payload.response_id, payload.x, payload.y, payload.group_id, regroup=regroup
        )
        return response.group_id

    async with session_locks.for_session(payload.session_id):
        group_id = await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'response_dragged', {
            'responseId': payload.response_id,
            'x': payload.x,
            'y': payload.y,
            'groupId': group_id
        })


@sio.on('ungroup_response')
@command("ungroup response", events.UngroupResponse)
async def ungroup_response(sid, payload: events.UngroupResponse):
    def work(db):
        BoardStore(db).ungroup_response(payload.session_id, payload.response_id)

    async with session_locks.for_session(payload.session_id):
        await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'response_ungrouped', {'responseId': payload.response_id})


@sio.on('create_group')
@command("create group", events.CreateGroup)
async def create_group(sid, payload: events.CreateGroup):
    def work(db):
        group = BoardStore(db).create_group(
            payload.session_id, payload.label, payload.color, payload.x, payload.y, payload.response_ids
        )
        return GroupWithResponses.model_validate(group).to_wire()

    async with session_locks.for_session(payload.session_id):
        group = await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'group_created', group)


@sio.on('update_group')
@command("update group", events.UpdateGroup)
async def update_group(sid, payload: events.UpdateGroup):
    def work(db):
        group = BoardStore(db).rename_group(payload.session_id, payload.group_id, payload.label)
        return GroupWithResponses.model_validate(group).to_wire()

    async with session_locks.for_session(payload.session_id):
        group = await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'group_updated', group)


@sio.on('delete_group')
@command("delete group", events.DeleteGroup)
async def delete_group(sid, payload: events.DeleteGroup):
    def work(db):
        BoardStore(db).delete_group(payload.session_id, payload.group_id)
        return VotingLedger(db).progress(payload.session_id)

    async with session_locks.for_session(payload.session_id):
        progress = await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'group_deleted', {'groupId': payload.group_id})
        # The group's votes went with it and return to their owners' budgets
        await broadcaster.to_room(payload.session_id, 'vote_progress', progress)


@sio.on('create_connection')
@command("create connection", events.CreateConnection)
async def create_connection(sid, payload: events.CreateConnection):
    def work(db):
        connection = BoardStore(db).create_connection(
            payload.session_id, payload.from_response_id, payload.to_response_id
        )
        return ConnectionRead.model_validate(connection).to_wire()

    async with session_locks.for_session(payload.session_id):
        connection = await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'connection_created', connection)


@sio.on('remove_connection')
@command("remove connection", events.RemoveConnection)
async def remove_connection(sid, payload: events.RemoveConnection):
    def work(db):
        BoardStore(db).remove_connection(payload.session_id, payload.connection_id)

    async with session_locks.for_session(payload.session_id):
        await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'connection_removed', {'connectionId': payload.connection_id})


@sio.on('cast_vote')
@command("cast vote", events.CastVote)
async def cast_vote(sid, payload: events.CastVote):
    def work(db):
        return VotingLedger(db).cast_vote(
            payload.session_id, payload.participant_id, payload.group_id, payload.vote_count
        )

    async with session_locks.for_session(payload.session_id):
        result = await run_in_transaction(work)
        if result.materialized_response_ids is not None:
            await broadcaster.to_room(payload.session_id, 'connected_group_created', {
                'groupId': result.group_id,
                'responseIds': result.materialized_response_ids
            })
        await broadcaster.to_room(payload.session_id, 'votes_updated', result.to_wire())


@sio.on('start_presentation')
@command("start presentation", events.Presentation)
async def start_presentation(sid, payload: events.Presentation):
    async with session_locks.for_session(payload.session_id):
        await run_in_transaction(lambda db: PresentationNavigator(db).start(payload.session_id, sid))
        await broadcaster.to_room(payload.session_id, 'presentation_started')


@sio.on('end_presentation')
@command("end presentation", events.Presentation)
async def end_presentation(sid, payload: events.Presentation):
    async with session_locks.for_session(payload.session_id):
        await run_in_transaction(lambda db: PresentationNavigator(db).end(payload.session_id, sid))
        await broadcaster.to_room(payload.session_id, 'presentation_ended')


@sio.on('navigate_presentation')
@command("navigate presentation", events.NavigatePresentation)
async def navigate_presentation(sid, payload: events.NavigatePresentation):
    def work(db) -> Dict[str, Any]:
        return PresentationNavigator(db).navigate(payload.session_id, sid, payload.item_index)

    async with session_locks.for_session(payload.session_id):
        position = await run_in_transaction(work)
        await broadcaster.to_room(payload.session_id, 'presentation_navigate', position)


class WebSocketHandler:
    def __init__(self):
        self.sio = sio
        self.broadcaster = broadcaster

    async def broadcast_to_session(self, session_id: str, event: str, data: Dict[str, Any]):
        await self.broadcaster.to_room(session_id, event, data)

    async def announce_participant_removal(self, removal: ParticipantRemoval):
        session_id = removal.session_id
        await self.broadcast_to_session(session_id, 'participant_left', {
            'participantId': removal.participant_id,
            'removed': True,
            'newHostId': removal.promoted_id
        })
        for response in removal.removed_responses:
            if response.touched_shared_state:
                await self.broadcast_to_session(session_id, 'response_deleted', {'responseId': response.response_id})
        await announce_cascade(session_id, removal.removed_connection_ids, removal.deleted_group_ids)
        for result in removal.retallied:
            await self.broadcast_to_session(session_id, 'votes_updated', result.to_wire())
        await self.broadcast_to_session(
            session_id, 'vote_progress', {'participantProgress': removal.participant_progress}
        )

    @property
    def connection_count(self) -> int:
        return len(player_info)


ws_handler = WebSocketHandler()
