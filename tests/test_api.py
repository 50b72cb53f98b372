"""REST endpoints for sessions and participants."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from factories import add_group, add_participant, add_response, emitted, make_session
from retroflow.api import sessions as sessions_api
from retroflow.config import get_settings
from retroflow.main import api
from retroflow.models import Participant
from retroflow.schemas.session import SessionJoin
from retroflow.services.board_service import BoardStore
from retroflow.services.session_service import SessionService
from retroflow.services.voting_service import VotingLedger
from retroflow.websocket.broadcast import room_for


@pytest.fixture
def client(db_engine, emits):
    return TestClient(api)


def create_session(client, host_name: str = "Alice") -> dict:
    response = client.post("/api/sessions", json={"title": "Sprint 42", "hostName": host_name, "hostAvatar": "owl"})
    assert response.status_code == 201
    return response.json()


def join(client, invite_code: str, name: str):
    return client.post("/api/sessions/join", json={"inviteCode": invite_code, "displayName": name, "avatarId": "fox"})


class TestSessions:
    def test_create_returns_host_and_invite(self, client) -> None:
        created = create_session(client)

        session = created["session"]
        assert session["title"] == "Sprint 42"
        assert session["currentPhase"] == "BRAINSTORM"
        assert len(session["inviteCode"]) == 8
        assert session["hostId"] == created["participant"]["id"]
        assert created["participant"]["isHost"] is True
        assert created["inviteUrl"] == f"http://testserver/join/{session['inviteCode']}"

    def test_join_with_lowercase_code(self, client) -> None:
        code = create_session(client)["session"]["inviteCode"]

        response = join(client, code.lower(), "Bob")

        assert response.status_code == 201
        assert response.json()["participant"]["isHost"] is False

    def test_display_names_are_unique_ignoring_case(self, client) -> None:
        code = create_session(client)["session"]["inviteCode"]

        response = join(client, code, "  ALICE ")

        assert response.status_code == 400
        assert response.json()["detail"] == "Display name already taken"

    def test_unknown_invite_code(self, client) -> None:
        assert join(client, "ZZZZZZZZ", "Bob").status_code == 404

    def test_full_session_rejects_joins(self, client, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "max_participants", 2)
        code = create_session(client)["session"]["inviteCode"]

        assert join(client, code, "Bob").status_code == 201
        response = join(client, code, "Carol")

        assert response.status_code == 400
        assert response.json()["detail"] == "Session is full"

    def test_invite_lookup(self, client) -> None:
        code = create_session(client)["session"]["inviteCode"]
        join(client, code, "Bob")

        summary = client.get(f"/api/sessions/invite/{code}").json()

        assert summary["title"] == "Sprint 42"
        assert summary["participantCount"] == 2
        assert client.get("/api/sessions/invite/SHORT").status_code == 400
        assert client.get("/api/sessions/invite/ZZZZZZZZ").status_code == 404

    def test_snapshot(self, client) -> None:
        created = create_session(client)
        session_id = created["session"]["id"]

        snapshot = client.get(f"/api/sessions/{session_id}").json()

        assert [p["displayName"] for p in snapshot["participants"]] == ["Alice"]
        assert snapshot["responses"] == []
        assert snapshot["groups"] == []
        assert snapshot["timerEndTime"] is None
        assert client.get("/api/sessions/unknown").status_code == 404


class TestParticipants:
    def test_rename_to_taken_name_is_rejected(self, client) -> None:
        code = create_session(client)["session"]["inviteCode"]
        bob = join(client, code, "Bob").json()["participant"]

        response = client.patch(f"/api/participants/{bob['id']}", json={"displayName": "alice"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Display name already taken"

    def test_rename_and_empty_update(self, client) -> None:
        host = create_session(client)["participant"]

        renamed = client.patch(f"/api/participants/{host['id']}", json={"displayName": "Alicia"})

        assert renamed.status_code == 200
        assert renamed.json()["displayName"] == "Alicia"
        assert client.patch(f"/api/participants/{host['id']}", json={}).status_code == 400
        assert client.patch("/api/participants/missing", json={"avatarId": "cat"}).status_code == 404

    def test_removing_host_promotes_earliest_participant(self, client, db, emits) -> None:
        created = create_session(client)
        code = created["session"]["inviteCode"]
        host_id = created["participant"]["id"]
        bob = join(client, code, "Bob").json()["participant"]
        carol = join(client, code, "Carol").json()["participant"]
        db.get(Participant, carol["id"]).joined_at = db.get(Participant, bob["id"]).joined_at + timedelta(minutes=1)
        db.commit()

        response = client.delete(f"/api/participants/{host_id}")

        assert response.status_code == 204
        snapshot = client.get(f"/api/sessions/{created['session']['id']}").json()
        hosts = [p["id"] for p in snapshot["participants"] if p["isHost"]]
        assert hosts == [bob["id"]]
        assert snapshot["hostId"] == bob["id"]
        [(left, kwargs)] = emitted(emits, "participant_left")
        assert left == {"participantId": host_id, "removed": True, "newHostId": bob["id"]}
        assert kwargs == {"room": room_for(created["session"]["id"])}

    def test_removing_last_participant_leaves_session_without_host(self, client) -> None:
        created = create_session(client)
        session_id = created["session"]["id"]

        assert client.delete(f"/api/participants/{created['participant']['id']}").status_code == 204

        snapshot = client.get(f"/api/sessions/{session_id}").json()
        assert snapshot["hostId"] is None
        assert snapshot["participants"] == []
        assert client.delete(f"/api/participants/{created['participant']['id']}").status_code == 404

    def test_vote_summary(self, client, db) -> None:
        created = create_session(client)
        host_id = created["participant"]["id"]
        session = db.get(Participant, host_id).session
        group = add_group(db, session)
        VotingLedger(db).cast_vote(session.id, host_id, group.id, 3)
        db.commit()

        summary = client.get(f"/api/participants/{host_id}/votes").json()

        assert summary["totalVotes"] == 3
        assert summary["remainingVotes"] == 1
        assert [(v["groupId"], v["voteCount"]) for v in summary["votes"]] == [(group.id, 3)]

    def test_removal_broadcasts_the_board_cascade(self, client, db, emits) -> None:
        session, host = make_session(db)
        bob = add_participant(db, session, "Bob")
        bobs = add_response(db, session, bob, content="Retro notes were late")
        hosts = add_response(db, session, host, content="Pairing worked")
        shared = add_group(db, session, label="Shared")
        add_response(db, session, host, content="Demos", group=shared)
        board = BoardStore(db)
        connection = board.create_connection(session.id, bobs.id, hosts.id)
        ledger = VotingLedger(db)
        materialized = ledger.cast_vote(session.id, host.id, f"individual-{bobs.id}", 3)
        ledger.cast_vote(session.id, bob.id, shared.id, 2)
        db.commit()

        assert client.delete(f"/api/participants/{bob.id}").status_code == 204

        assert [p for p, _ in emitted(emits, "response_deleted")] == [{"responseId": bobs.id}]
        assert [p for p, _ in emitted(emits, "connection_removed")] == [{"connectionId": connection.id}]
        assert [p for p, _ in emitted(emits, "group_deleted")] == [{"groupId": materialized.group_id}]
        [(retallied, _)] = emitted(emits, "votes_updated")
        assert (retallied["groupId"], retallied["totalVotes"]) == (shared.id, 0)
        assert retallied["participantProgress"] == {host.id: 4}
        [(progress, kwargs)] = emitted(emits, "vote_progress")
        assert progress == {"participantProgress": {host.id: 4}}
        assert kwargs == {"room": room_for(session.id)}


class TestConcurrentJoins:
    @pytest.mark.asyncio
    async def test_capacity_holds_under_concurrent_joins(self, db, emits, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "max_participants", 2)
        session, _ = make_session(db)
        requests = [
            SessionJoin(invite_code=session.invite_code, display_name=name, avatar_id="fox")
            for name in ("Bob", "Carol", "Dave")
        ]

        results = await asyncio.gather(
            *[sessions_api.join_session(request) for request in requests], return_exceptions=True
        )

        rejected = [result for result in results if isinstance(result, HTTPException)]
        assert [(e.status_code, e.detail) for e in rejected] == [(400, "Session is full")] * 2
        assert SessionService(db).participant_count(session.id) == 2
