"""Single writer per session.

Every state-mutating command takes its session's lock, then runs its
database work as one transaction in a worker thread. Commands for different
sessions never wait on each other.
"""

import asyncio
import logging
import weakref
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from retroflow.database import session_scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionLocks:
    def __init__(self):
        # A lock lives only while someone holds or waits on it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_session(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock


session_locks = SessionLocks()


def _unit_of_work(work: Callable[[Session], T]) -> T:
    with session_scope() as db:
        return work(db)


async def run_in_transaction(work: Callable[[Session], T]) -> T:
    return await asyncio.to_thread(_unit_of_work, work)


async def run_locked(session_id: str, work: Callable[[Session], T]) -> T:
    async with session_locks.for_session(session_id):
        return await run_in_transaction(work)
