"""
Data Models Package

This package contains all Pydantic models used in Kanemane.
All data flowing through the system must conform to these schemas.
"""

from kanemane.models.ledger import (
    BALANCE_ADJUSTMENT_CATEGORY,
    OPENING_BALANCE_CATEGORY,
    Asset,
    AssetType,
    Country,
    Currency,
    FamilyOwner,
    IndividualOwner,
    Owner,
    Transaction,
    TransactionKind,
    TransactionMeta,
    TransactionUpdate,
    User,
    owner_from_key,
    owner_key,
    to_amount,
)
from kanemane.models.conversation import (
    ConversationState,
    ConversationStep,
)
from kanemane.models.parsing import (
    KnownAsset,
    ParsedTransaction,
    ParseSource,
    ReceiptItem,
    ReceiptScan,
)
from kanemane.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BALANCE_ADJUSTMENT_CATEGORY",
    "OPENING_BALANCE_CATEGORY",
    "Asset",
    "AssetType",
    "Country",
    "Currency",
    "FamilyOwner",
    "IndividualOwner",
    "Owner",
    "Transaction",
    "TransactionKind",
    "TransactionMeta",
    "TransactionUpdate",
    "User",
    "owner_from_key",
    "owner_key",
    "to_amount",
    # Conversation models
    "ConversationState",
    "ConversationStep",
    # Parser models
    "KnownAsset",
    "ParsedTransaction",
    "ParseSource",
    "ReceiptItem",
    "ReceiptScan",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
