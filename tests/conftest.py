"""Shared fixtures: a throwaway SQLite database and captured Socket.IO traffic."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import create_engine

from retroflow.database import Base, SessionLocal, engine as default_engine
from retroflow.services.presence import InMemoryPresenceStore
from retroflow.websocket import handler
from retroflow.websocket.broadcast import sio


@pytest.fixture
def db_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'retroflow-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal.configure(bind=engine)
    yield engine
    SessionLocal.configure(bind=default_engine)
    engine.dispose()


@pytest.fixture
def db(db_engine):
    session = SessionLocal(expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture
def emits(monkeypatch):
    """Replace the Socket.IO server's I/O so handlers can run without clients."""
    emit = AsyncMock()
    monkeypatch.setattr(sio, "emit", emit)
    monkeypatch.setattr(sio, "enter_room", AsyncMock())
    monkeypatch.setattr(sio, "leave_room", AsyncMock())
    monkeypatch.setattr(handler, "presence_store", InMemoryPresenceStore())
    handler.player_info.clear()
    yield emit
    handler.player_info.clear()
