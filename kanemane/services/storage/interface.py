"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the ledger against SQLite in tests and a server database in production
2. Use in-memory conversation state for testing
3. Keep business logic decoupled from storage implementation

CRITICAL: A LedgerSession is one unit of work. Everything done through it
commits together or not at all, and rows read with for_update=True stay
locked until the unit of work ends. Callers must not perform network I/O
while a unit of work is open.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

from kanemane.models.audit import AuditEvent
from kanemane.models.conversation import ConversationState
from kanemane.models.ledger import (
    Asset,
    Family,
    FamilyOwner,
    IndividualOwner,
    Transaction,
    User,
)


AnyOwner = Union[IndividualOwner, FamilyOwner]


class LedgerSession(ABC):
    """
    Operations available inside a ledger unit of work.
    """

    @abstractmethod
    def get_asset(self, asset_id: UUID, for_update: bool = False) -> Optional[Asset]:
        """
        Load an asset.

        Args:
            asset_id: The asset's unique identifier
            for_update: Lock the row until the unit of work ends

        Returns:
            The asset if found, None otherwise
        """
        pass

    @abstractmethod
    def add_asset(self, asset: Asset) -> None:
        """Insert a new asset."""
        pass

    @abstractmethod
    def save_asset(self, asset: Asset) -> None:
        """
        Write back name and balance of an existing asset.

        Raises:
            NotFoundError: If the asset doesn't exist
        """
        pass

    @abstractmethod
    def delete_asset(self, asset_id: UUID) -> int:
        """
        Delete an asset together with its transactions.

        Returns:
            Number of transactions removed with it
        """
        pass

    @abstractmethod
    def get_transaction(
        self,
        transaction_id: UUID,
        for_update: bool = False,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    def add_transaction(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    def save_transaction(self, transaction: Transaction) -> None:
        """
        Overwrite an existing transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: UUID) -> None:
        pass

    @abstractmethod
    def net_transaction_total(self, asset_id: UUID) -> Decimal:
        """
        Sum of income minus sum of expense over the asset's transactions.
        """
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Mutations go through unit_of_work(); the read helpers below open
    their own short read-only session.
    """

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[LedgerSession]:
        """
        Open a unit of work.

        Commits when the block exits normally, rolls back when it raises.
        """
        pass

    @abstractmethod
    def get_asset(self, asset_id: UUID) -> Optional[Asset]:
        pass

    @abstractmethod
    def list_assets(self, owners: Iterable[AnyOwner]) -> list[Asset]:
        """
        List assets belonging to any of the given owners, oldest first.
        """
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        pass

    @abstractmethod
    def list_transactions(
        self,
        owners: Iterable[AnyOwner],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        asset_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        List transactions with optional filters.

        Args:
            owners: Only transactions owned by one of these
            date_from: Filter transactions on or after this date
            date_to: Filter transactions on or before this date
            asset_id: Only transactions booked against this asset

        Returns:
            Matching transactions ordered by date, then creation time
        """
        pass

    @abstractmethod
    def get_user(self, user_id: UUID) -> Optional[User]:
        pass

    @abstractmethod
    def find_user_by_phone(self, phone: str) -> Optional[User]:
        """Look up a user by normalized (digits only) phone number."""
        pass

    @abstractmethod
    def save_user(self, user: User) -> None:
        """Insert or update a user."""
        pass

    @abstractmethod
    def get_family(self, family_id: UUID) -> Optional[Family]:
        pass

    @abstractmethod
    def save_family(self, family: Family) -> None:
        """Insert or update a family."""
        pass

    @abstractmethod
    def list_family_members(self, family_id: UUID) -> list[User]:
        """Users whose family_id is `family_id`, by name."""
        pass


class ConversationStoreInterface(ABC):
    """
    Abstract interface for conversation state.

    Every write is a compare-and-set. A state whose expires_at is not
    after `now` counts as absent for every operation.
    """

    @abstractmethod
    async def get(self, actor: str, now: datetime) -> Optional[ConversationState]:
        """Return the live state for an actor, or None."""
        pass

    @abstractmethod
    async def create(self, state: ConversationState, now: datetime) -> bool:
        """
        Store a new state.

        Succeeds only if the actor has no live state. An expired state
        is overwritten.
        """
        pass

    @abstractmethod
    async def replace(
        self,
        state: ConversationState,
        expected_version: int,
        now: datetime,
    ) -> bool:
        """
        Overwrite the live state if its version still equals expected_version.
        """
        pass

    @abstractmethod
    async def claim(self, actor: str, expected_version: int, now: datetime) -> bool:
        """
        Delete the live state if its version still equals expected_version.

        Exactly one caller can claim a given version.
        """
        pass

    @abstractmethod
    async def clear(self, actor: str) -> None:
        """Delete whatever state the actor has."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events caused by one inbound message, oldest first.
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass
