"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The ledger, conversation state and audit trail all live in one
SQLAlchemy-managed database.
"""

from kanemane.services.storage.interface import (
    AuditStorageInterface,
    ConversationStoreInterface,
    DuplicateError,
    LedgerSession,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from kanemane.services.storage.database import Base, Database
from kanemane.services.storage.sql_audit import SqlAuditStorage
from kanemane.services.storage.sql_conversation import SqlConversationStore
from kanemane.services.storage.sql_ledger import SqlLedgerSession, SqlLedgerStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ConversationStoreInterface",
    "LedgerSession",
    "LedgerStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # SQL implementation
    "Base",
    "Database",
    "SqlAuditStorage",
    "SqlConversationStore",
    "SqlLedgerSession",
    "SqlLedgerStorage",
]
