from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..core.steps import FIRST_STEP, StandupAnswers, StandupStep


@dataclass
class FlowSession:
    """Live conversational state for one user mid-standup."""

    user_id: str
    roster_member_id: int
    run_id: int
    current_step: StandupStep = FIRST_STEP
    answers: StandupAnswers = field(default_factory=StandupAnswers)

    def reset(self) -> None:
        self.current_step = FIRST_STEP
        self.answers = StandupAnswers()


class SessionCache:
    """
    Process-local cache of flow sessions keyed by user id.

    The database is the source of truth; entries here only save a round
    trip. The cache also owns one lock per user so that mutations for the
    same user are applied one at a time.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, FlowSession] = {}
        # A lock lives only while a caller holds or waits on it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, user_id: str) -> Optional[FlowSession]:
        return self._sessions.get(user_id)

    def put(self, session: FlowSession) -> None:
        self._sessions[session.user_id] = session

    def evict(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def evict_run(self, run_id: int) -> int:
        """Drop every cached session belonging to a run."""
        stale = [uid for uid, session in self._sessions.items() if session.run_id == run_id]
        for user_id in stale:
            del self._sessions[user_id]
        return len(stale)

    def lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
