"""
Conversation Models

The bot keeps a short-lived state per chat partner while a multi-turn
flow is running (creating an asset, confirming a parsed transaction, ...).
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConversationStep(str, Enum):
    """
    Every step a conversation can wait in.

    Each member must have exactly one handler in ConversationFlows;
    the engine refuses to start otherwise.
    """
    EXPORT_PERIOD = "export_period"

    ASSET_CREATION_OWNER = "asset_creation_owner"
    ASSET_CREATION_TYPE = "asset_creation_type"
    ASSET_CREATION_COUNTRY = "asset_creation_country"
    ASSET_CREATION_NAME = "asset_creation_name"
    ASSET_CREATION_BALANCE = "asset_creation_balance"

    ASSET_EDIT_CHOICE = "asset_edit_choice"
    ASSET_EDIT_NAME = "asset_edit_name"
    ASSET_EDIT_BALANCE = "asset_edit_balance"

    ASSET_DELETE_CONFIRM = "asset_delete_confirm"

    TRANSACTION_CONFIRM = "transaction_confirm"
    RECEIPT_CONFIRM = "receipt_confirm"


class ConversationState(BaseModel):
    """
    Where one actor's conversation currently stands.

    `version` increases on every write and is what compare-and-set
    operations check against.
    """

    actor: str = Field(..., min_length=1, description="Normalized actor id")
    step: ConversationStep
    data: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime
    version: int = Field(default=1, ge=1)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def refreshed(
        self,
        step: ConversationStep,
        data: dict[str, Any],
        now: datetime,
        ttl_seconds: int,
    ) -> "ConversationState":
        """Return the successor state written by an answer."""
        return self.model_copy(update={
            "step": step,
            "data": data,
            "expires_at": now + timedelta(seconds=ttl_seconds),
            "version": self.version + 1,
        })
