"""
Conversation Engine

Runs the multi-turn bot flows as a state machine over ConversationStore.

FLOW OF ONE MESSAGE:
1. Load the actor's live state (expired state counts as none)
2. No state -> try the trigger commands; nothing matches -> not consumed
3. Cancel keyword -> claim the state, acknowledge
4. Otherwise the handler for the current step decides:
   - Advance:  write the next step (compare-and-set on version)
   - Finish:   claim the state (compare-and-delete), THEN run the side effect
   - Reprompt: reply, leave the state as it was

CRITICAL: A side effect only runs after its state was claimed. When the
gateway delivers the same message twice, both deliveries read the same
version and only one of them wins the claim. The loser is consumed
silently: no reply, no booking.
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Mapping, Optional, Sequence, Union
from uuid import UUID

from pydantic import BaseModel, Field

from kanemane.audit.logger import AuditLogger
from kanemane.config import get_settings
from kanemane.models.conversation import ConversationState, ConversationStep
from kanemane.models.ledger import User
from kanemane.services.storage.interface import ConversationStoreInterface


CANCEL_KEYWORDS = frozenset({"batal", "cancel", "stop", "berhenti", "keluar"})
CANCELLED_REPLY = "❌ Dibatalkan."


def is_cancel(text: str) -> bool:
    return (text or "").strip().lower() in CANCEL_KEYWORDS


# =============================================================================
# HANDLER OUTCOMES
# =============================================================================

class Advance(BaseModel):
    """Move to `step` with `data`, send `reply`."""

    step: ConversationStep
    data: dict = Field(default_factory=dict)
    reply: str


class Finish(BaseModel):
    """
    End the conversation.

    `action` is the terminal side effect; it runs only after the state
    has been claimed and returns the reply text. Without an action,
    `reply` is sent as is.
    """

    reply: Optional[str] = None
    action: Optional[Callable[[], Awaitable[str]]] = None


class Reprompt(BaseModel):
    """Answer was not valid; keep the state and ask again."""

    reply: str


Outcome = Union[Advance, Finish, Reprompt]


class TurnContext(BaseModel):
    """One inbound message as the handlers see it."""

    actor: str
    text: str
    user: User
    correlation_id: Optional[UUID] = None

    @property
    def answer(self) -> str:
        """Trimmed, lower-cased text for matching menu answers."""
        return self.text.strip().lower()


class EngineResult(BaseModel):
    """
    consumed=False means no flow claimed the message; the caller
    handles it as a regular command or transaction.
    """

    consumed: bool
    replies: list[str] = Field(default_factory=list)


StepHandler = Callable[[ConversationState, TurnContext], Awaitable[Outcome]]
# Returns Advance to start a flow, Reprompt to answer without one, None to pass
Trigger = Callable[[TurnContext], Awaitable[Optional[Union[Advance, Reprompt]]]]


class MissingStepHandlerError(Exception):
    """A ConversationStep has no handler."""
    pass


class ConversationEngine:
    """
    State machine driver for bot conversations.

    Usage:
        engine = ConversationEngine(store, flows.handlers(), flows.triggers())
        result = await engine.handle("6281234567890", "tambah aset", user)
    """

    def __init__(
        self,
        store: ConversationStoreInterface,
        handlers: Mapping[ConversationStep, StepHandler],
        triggers: Sequence[Trigger] = (),
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        missing = [step.value for step in ConversationStep if step not in handlers]
        if missing:
            raise MissingStepHandlerError(f"No handler for steps: {', '.join(missing)}")

        self._store = store
        self._handlers = dict(handlers)
        self._triggers = list(triggers)
        if ttl_seconds is None:
            ttl_seconds = get_settings().app.conversation_ttl_seconds
        self._ttl_seconds = ttl_seconds
        self._clock = clock or datetime.utcnow
        self._audit = audit_logger

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def active_state(self, actor: str) -> Optional[ConversationState]:
        return await self._store.get(actor, self._clock())

    async def start(
        self,
        actor: str,
        step: ConversationStep,
        data: dict,
        reply: str,
    ) -> EngineResult:
        """
        Begin a flow at `step`.

        Fails quietly (consumed, no reply) if the actor already has a
        live state, which happens when a duplicate delivery got here first.
        """
        now = self._clock()
        state = ConversationState(
            actor=actor,
            step=step,
            data=data,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        if await self._store.create(state, now):
            return EngineResult(consumed=True, replies=[reply])
        return EngineResult(consumed=True)

    async def handle(
        self,
        actor: str,
        text: str,
        user: User,
        correlation_id: Optional[UUID] = None,
    ) -> EngineResult:
        """Feed one inbound text message to the actor's conversation."""
        ctx = TurnContext(actor=actor, text=text or "", user=user, correlation_id=correlation_id)
        state = await self._store.get(actor, self._clock())

        if state is None:
            return await self._run_triggers(ctx)

        if is_cancel(ctx.text):
            if not await self._store.claim(actor, state.version, self._clock()):
                return EngineResult(consumed=True)
            if self._audit:
                await self._audit.log_conversation_cancelled(
                    actor=actor,
                    step=state.step.value,
                    correlation_id=correlation_id,
                )
            return EngineResult(consumed=True, replies=[CANCELLED_REPLY])

        outcome = await self._handlers[state.step](state, ctx)
        return await self._apply(state, outcome, ctx)

    async def _run_triggers(self, ctx: TurnContext) -> EngineResult:
        for trigger in self._triggers:
            outcome = await trigger(ctx)
            if outcome is None:
                continue
            if isinstance(outcome, Advance):
                return await self.start(ctx.actor, outcome.step, outcome.data, outcome.reply)
            return EngineResult(consumed=True, replies=[outcome.reply])
        return EngineResult(consumed=False)

    async def _apply(
        self,
        state: ConversationState,
        outcome: Outcome,
        ctx: TurnContext,
    ) -> EngineResult:
        if isinstance(outcome, Reprompt):
            return EngineResult(consumed=True, replies=[outcome.reply])

        now = self._clock()

        if isinstance(outcome, Advance):
            successor = state.refreshed(outcome.step, outcome.data, now, self._ttl_seconds)
            if await self._store.replace(successor, state.version, now):
                return EngineResult(consumed=True, replies=[outcome.reply])
            return EngineResult(consumed=True)

        if not await self._store.claim(state.actor, state.version, now):
            return EngineResult(consumed=True)

        reply = outcome.reply
        if outcome.action is not None:
            reply = await outcome.action()

        if self._audit:
            await self._audit.log_conversation_completed(
                actor=state.actor,
                step=state.step.value,
                correlation_id=ctx.correlation_id,
            )
        return EngineResult(consumed=True, replies=[reply] if reply else [])
