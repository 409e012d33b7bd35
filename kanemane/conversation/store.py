"""
Conversation State Store (in memory)

Same compare-and-set contract as SqlConversationStore, for tests and
single-process development.
"""

import asyncio
from datetime import datetime
from typing import Optional

from kanemane.models.conversation import ConversationState
from kanemane.services.storage.interface import ConversationStoreInterface


CHAT_ID_SUFFIXES = ("@c.us", "@lid", "@s.whatsapp.net")


def normalize_actor(chat_id: str) -> str:
    """
    Key conversation state by the bare chat partner id.

    "6281234567890@c.us" and "6281234567890" are the same actor.
    """
    actor = (chat_id or "").strip()
    for suffix in CHAT_ID_SUFFIXES:
        if actor.endswith(suffix):
            return actor[: -len(suffix)]
    return actor


class InMemoryConversationStore(ConversationStoreInterface):
    """Dict-backed store guarded by an asyncio lock."""

    def __init__(self):
        self._states: dict[str, ConversationState] = {}
        self._lock = asyncio.Lock()

    def _live(self, actor: str, now: datetime) -> Optional[ConversationState]:
        state = self._states.get(actor)
        if state is None:
            return None
        if state.is_expired(now):
            del self._states[actor]
            return None
        return state

    async def get(self, actor: str, now: datetime) -> Optional[ConversationState]:
        async with self._lock:
            state = self._live(actor, now)
            return state.model_copy(deep=True) if state else None

    async def create(self, state: ConversationState, now: datetime) -> bool:
        async with self._lock:
            if self._live(state.actor, now) is not None:
                return False
            self._states[state.actor] = state.model_copy(deep=True)
            return True

    async def replace(
        self,
        state: ConversationState,
        expected_version: int,
        now: datetime,
    ) -> bool:
        async with self._lock:
            current = self._live(state.actor, now)
            if current is None or current.version != expected_version:
                return False
            self._states[state.actor] = state.model_copy(deep=True)
            return True

    async def claim(self, actor: str, expected_version: int, now: datetime) -> bool:
        async with self._lock:
            current = self._live(actor, now)
            if current is None or current.version != expected_version:
                return False
            del self._states[actor]
            return True

    async def clear(self, actor: str) -> None:
        async with self._lock:
            self._states.pop(actor, None)
