"""
Conversation Package

Multi-turn WhatsApp flows: the state machine engine, its in-memory
store, and the flow handlers.
"""

from kanemane.conversation.engine import (
    CANCEL_KEYWORDS,
    Advance,
    ConversationEngine,
    EngineResult,
    Finish,
    MissingStepHandlerError,
    Reprompt,
    TurnContext,
    is_cancel,
)
from kanemane.conversation.flows import (
    ConversationFlows,
    find_asset,
    parse_balance,
    pending_transaction_data,
)
from kanemane.conversation.messages import format_money
from kanemane.conversation.store import InMemoryConversationStore, normalize_actor

__all__ = [
    # Engine
    "CANCEL_KEYWORDS",
    "Advance",
    "ConversationEngine",
    "EngineResult",
    "Finish",
    "MissingStepHandlerError",
    "Reprompt",
    "TurnContext",
    "is_cancel",
    # Flows
    "ConversationFlows",
    "find_asset",
    "parse_balance",
    "pending_transaction_data",
    "format_money",
    # Store
    "InMemoryConversationStore",
    "normalize_actor",
]
