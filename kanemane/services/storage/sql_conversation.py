"""
SQL Conversation State Store

Conversation state is a single row per actor. Every write is a
conditional UPDATE/DELETE on (actor, version, not expired), so when the
same webhook is delivered twice only one delivery gets to act on it.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from kanemane.models.conversation import ConversationState, ConversationStep
from kanemane.services.storage.database import ConversationStateRow, Database
from kanemane.services.storage.interface import ConversationStoreInterface


_NO_SYNC = {"synchronize_session": False}


def _state_from_row(row: ConversationStateRow) -> ConversationState:
    return ConversationState(
        actor=row.actor,
        step=ConversationStep(row.step),
        data=dict(row.data or {}),
        expires_at=row.expires_at,
        version=row.version,
    )


class SqlConversationStore(ConversationStoreInterface):
    """Conversation state in the conversation_states table."""

    def __init__(self, database: Database):
        self._db = database

    async def get(self, actor: str, now: datetime) -> Optional[ConversationState]:
        with self._db.session_factory() as session:
            row = session.get(ConversationStateRow, actor)
            if row is None or row.expires_at <= now:
                return None
            return _state_from_row(row)

    async def create(self, state: ConversationState, now: datetime) -> bool:
        Row = ConversationStateRow
        with self._db.session_factory() as session:
            try:
                # Lazy expiry: a stale row must not block a new flow
                session.execute(
                    delete(Row).where(Row.actor == state.actor, Row.expires_at <= now),
                    execution_options=_NO_SYNC,
                )
                session.add(Row(
                    actor=state.actor,
                    step=state.step.value,
                    data=state.data,
                    expires_at=state.expires_at,
                    version=state.version,
                ))
                session.commit()
                return True
            except IntegrityError:
                session.rollback()
                return False

    async def replace(
        self,
        state: ConversationState,
        expected_version: int,
        now: datetime,
    ) -> bool:
        Row = ConversationStateRow
        with self._db.session_factory() as session:
            result = session.execute(
                update(Row)
                .where(
                    Row.actor == state.actor,
                    Row.version == expected_version,
                    Row.expires_at > now,
                )
                .values(
                    step=state.step.value,
                    data=state.data,
                    expires_at=state.expires_at,
                    version=state.version,
                ),
                execution_options=_NO_SYNC,
            )
            session.commit()
            return result.rowcount == 1

    async def claim(self, actor: str, expected_version: int, now: datetime) -> bool:
        Row = ConversationStateRow
        with self._db.session_factory() as session:
            result = session.execute(
                delete(Row).where(
                    Row.actor == actor,
                    Row.version == expected_version,
                    Row.expires_at > now,
                ),
                execution_options=_NO_SYNC,
            )
            session.commit()
            return result.rowcount == 1

    async def clear(self, actor: str) -> None:
        with self._db.session_factory() as session:
            session.execute(
                delete(ConversationStateRow).where(ConversationStateRow.actor == actor),
                execution_options=_NO_SYNC,
            )
            session.commit()
