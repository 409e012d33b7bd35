"""
Ledger Engine

The only code allowed to change an asset balance.

CRITICAL INVARIANT: for every asset,
    balance == sum(income amounts) - sum(expense amounts)
over the transactions currently booked against it. Every operation below
changes the balance and the transaction rows in ONE unit of work, with the
asset row(s) locked, so the invariant holds after each commit and no
partial state is ever visible.

DESIGN DECISION: Opening balances and manual corrections are booked as
transactions too ("Saldo Awal", "Penyesuaian Saldo") instead of writing
the balance column directly. That keeps the invariant free of exceptions.

Audit events are written after the unit of work has closed; nothing here
performs I/O while row locks are held.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from kanemane.audit.logger import AuditLogger
from kanemane.config import get_settings
from kanemane.models.ledger import (
    BALANCE_ADJUSTMENT_CATEGORY,
    OPENING_BALANCE_CATEGORY,
    Asset,
    AssetType,
    Country,
    Currency,
    Transaction,
    TransactionKind,
    TransactionMeta,
    TransactionUpdate,
    to_amount,
)
from kanemane.services.storage.interface import (
    AnyOwner,
    LedgerSession,
    LedgerStorageInterface,
)


ZERO = Decimal("0.00")


# =============================================================================
# ERRORS
# =============================================================================

class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class InvalidAmountError(LedgerError):
    """Amount is negative or not a number."""

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Invalid amount: {amount!r}")


class InvalidAssetNameError(LedgerError):
    """Asset name is empty."""
    pass


class AssetNotFoundError(LedgerError):
    def __init__(self, asset_id: UUID):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} not found")


class TransactionNotFoundError(LedgerError):
    def __init__(self, transaction_id: UUID):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class InsufficientBalanceError(LedgerError):
    """
    An expense would take more than the asset holds.

    Raised before anything is written; the asset is unchanged.
    """

    def __init__(self, asset_id: UUID, balance: Decimal, requested: Decimal):
        self.asset_id = asset_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient balance on asset {asset_id}: "
            f"balance {balance}, requested {requested}"
        )


def _validated_amount(value) -> Decimal:
    try:
        amount = to_amount(value)
    except ValueError:
        raise InvalidAmountError(value)
    if amount < 0:
        raise InvalidAmountError(value)
    return amount


def _lock_asset(uow: LedgerSession, asset_id: UUID) -> Asset:
    asset = uow.get_asset(asset_id, for_update=True)
    if asset is None:
        raise AssetNotFoundError(asset_id)
    return asset


class LedgerEngine:
    """
    Balance-consistent operations on assets and transactions.

    Usage:
        engine = LedgerEngine(SqlLedgerStorage(db), audit_logger)
        tx = await engine.record_expense(asset.id, "1500", TransactionMeta(category="Makanan"))
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        strict_update_check: Optional[bool] = None,
    ):
        """
        Args:
            storage: Ledger storage backend
            audit_logger: Receives an event for every mutation (optional)
            strict_update_check: Refuse edits that leave an asset below zero.
                Defaults to AppSettings.strict_update_check.
        """
        self._storage = storage
        self._audit = audit_logger
        if strict_update_check is None:
            strict_update_check = get_settings().app.strict_update_check
        self._strict_update_check = strict_update_check

    # =========================================================================
    # ASSETS
    # =========================================================================

    async def open_asset(
        self,
        owner: AnyOwner,
        name: str,
        asset_type: AssetType,
        country: Country,
        currency: Currency,
        opening_balance=ZERO,
        created_by: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Asset:
        """
        Create an asset. A positive opening balance is booked as income.
        """
        opening = _validated_amount(opening_balance)
        name = (name or "").strip()
        if not name:
            raise InvalidAssetNameError("Asset name must not be empty")

        now = datetime.utcnow()
        asset = Asset(
            owner=owner,
            country=country,
            name=name,
            type=asset_type,
            currency=currency,
            balance=ZERO,
            created_at=now,
            updated_at=now,
        )

        with self._storage.unit_of_work() as uow:
            uow.add_asset(asset)
            if opening > 0:
                uow.add_transaction(Transaction(
                    kind=TransactionKind.INCOME,
                    owner=asset.owner,
                    asset_id=asset.id,
                    category=OPENING_BALANCE_CATEGORY,
                    amount=opening,
                    currency=asset.currency,
                    date=now.date(),
                    created_by=created_by,
                    created_at=now,
                    updated_at=now,
                ))
                asset.balance = opening
                uow.save_asset(asset)

        if self._audit:
            await self._audit.log_asset_opened(
                asset_id=asset.id,
                name=asset.name,
                currency=asset.currency.value,
                opening_balance=opening,
                correlation_id=correlation_id,
            )
        return asset

    async def rename_asset(
        self,
        asset_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> Asset:
        name = (name or "").strip()
        if not name:
            raise InvalidAssetNameError("Asset name must not be empty")

        with self._storage.unit_of_work() as uow:
            asset = _lock_asset(uow, asset_id)
            old_name = asset.name
            asset.name = name
            asset.updated_at = datetime.utcnow()
            uow.save_asset(asset)

        if self._audit:
            await self._audit.log_asset_renamed(
                asset_id=asset_id,
                old_name=old_name,
                new_name=name,
                correlation_id=correlation_id,
            )
        return asset

    async def correct_balance(
        self,
        asset_id: UUID,
        new_balance,
        created_by: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Asset:
        """
        Set an asset to a balance the user counted by hand.

        The difference is booked as a "Penyesuaian Saldo" income or expense.
        """
        target = _validated_amount(new_balance)

        with self._storage.unit_of_work() as uow:
            asset = _lock_asset(uow, asset_id)
            old_balance = asset.balance
            difference = target - old_balance
            if difference != 0:
                now = datetime.utcnow()
                kind = TransactionKind.INCOME if difference > 0 else TransactionKind.EXPENSE
                uow.add_transaction(Transaction(
                    kind=kind,
                    owner=asset.owner,
                    asset_id=asset.id,
                    category=BALANCE_ADJUSTMENT_CATEGORY,
                    amount=abs(difference),
                    currency=asset.currency,
                    date=now.date(),
                    created_by=created_by,
                    created_at=now,
                    updated_at=now,
                ))
                asset.balance = target
                asset.updated_at = now
                uow.save_asset(asset)

        if self._audit and difference != 0:
            await self._audit.log_balance_corrected(
                asset_id=asset_id,
                old_balance=old_balance,
                new_balance=target,
                correlation_id=correlation_id,
            )
        return asset

    async def delete_asset(
        self,
        asset_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete an asset and every transaction booked against it.

        Returns:
            Number of transactions removed
        """
        with self._storage.unit_of_work() as uow:
            asset = _lock_asset(uow, asset_id)
            removed = uow.delete_asset(asset_id)

        if self._audit:
            await self._audit.log_asset_deleted(
                asset_id=asset_id,
                name=asset.name,
                removed_transactions=removed,
                correlation_id=correlation_id,
            )
        return removed

    async def reconcile(
        self,
        asset_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Decimal:
        """
        Recompute an asset's balance from its transactions and store it.

        Returns:
            The recomputed balance
        """
        with self._storage.unit_of_work() as uow:
            asset = _lock_asset(uow, asset_id)
            old_balance = asset.balance
            total = to_amount(uow.net_transaction_total(asset_id))
            if total != old_balance:
                asset.balance = total
                asset.updated_at = datetime.utcnow()
                uow.save_asset(asset)

        if self._audit and total != old_balance:
            await self._audit.log_balance_corrected(
                asset_id=asset_id,
                old_balance=old_balance,
                new_balance=total,
                correlation_id=correlation_id,
            )
        return total

    async def get_asset(self, asset_id: UUID) -> Asset:
        asset = self._storage.get_asset(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    async def list_assets(
        self,
        owners: Iterable[AnyOwner],
    ) -> list[Asset]:
        return self._storage.list_assets(owners)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def record_income(
        self,
        asset_id: UUID,
        amount,
        meta: TransactionMeta,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """Book an income and add it to the asset balance."""
        transaction, _ = await self.book(
            TransactionKind.INCOME, asset_id, amount, meta, correlation_id
        )
        return transaction

    async def record_expense(
        self,
        asset_id: UUID,
        amount,
        meta: TransactionMeta,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Book an expense and subtract it from the asset balance.

        Raises:
            InsufficientBalanceError: If the asset holds less than `amount`
        """
        transaction, _ = await self.book(
            TransactionKind.EXPENSE, asset_id, amount, meta, correlation_id
        )
        return transaction

    async def book(
        self,
        kind: TransactionKind,
        asset_id: UUID,
        amount,
        meta: TransactionMeta,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, Asset]:
        """
        Book an income or expense.

        Returns:
            The new transaction and the asset as committed with it

        Raises:
            InsufficientBalanceError: If an expense exceeds the balance
        """
        amount = _validated_amount(amount)

        try:
            with self._storage.unit_of_work() as uow:
                asset = _lock_asset(uow, asset_id)
                if kind is TransactionKind.EXPENSE and asset.balance < amount:
                    raise InsufficientBalanceError(asset.id, asset.balance, amount)

                now = datetime.utcnow()
                transaction = Transaction(
                    kind=kind,
                    owner=asset.owner,
                    asset_id=asset.id,
                    category=meta.category,
                    amount=amount,
                    currency=asset.currency,
                    date=meta.date,
                    note=meta.note,
                    created_by=meta.created_by,
                    created_at=now,
                    updated_at=now,
                )
                asset.balance = asset.balance + transaction.signed_amount
                asset.updated_at = now
                uow.save_asset(asset)
                uow.add_transaction(transaction)
        except InsufficientBalanceError as e:
            if self._audit:
                await self._audit.log_insufficient_balance(
                    asset_id=e.asset_id,
                    balance=e.balance,
                    requested=e.requested,
                    correlation_id=correlation_id,
                )
            raise

        if self._audit:
            await self._audit.log_transaction_recorded(
                transaction_id=transaction.id,
                asset_id=asset_id,
                kind=kind.value,
                amount=amount,
                currency=transaction.currency.value,
                correlation_id=correlation_id,
            )
        return transaction, asset

    async def update_transaction(
        self,
        transaction_id: UUID,
        changes: TransactionUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Edit a transaction, moving it to another asset if asked.

        The old effect is reversed on the old asset using the old kind,
        then the new amount is applied to the new asset. Both assets are
        locked in id order. Currency and owner follow the new asset.
        """
        if changes.amount is not None:
            _validated_amount(changes.amount)
        if "category" in changes.model_fields_set and not changes.category:
            raise LedgerError("Category must not be empty")

        with self._storage.unit_of_work() as uow:
            old = uow.get_transaction(transaction_id, for_update=True)
            if old is None:
                raise TransactionNotFoundError(transaction_id)

            new_asset_id = changes.asset_id or old.asset_id
            assets = {
                aid: _lock_asset(uow, aid)
                for aid in sorted({old.asset_id, new_asset_id}, key=str)
            }
            balances_before = {aid: a.balance for aid, a in assets.items()}
            old_asset = assets[old.asset_id]
            new_asset = assets[new_asset_id]

            now = datetime.utcnow()
            old_asset.balance = old_asset.balance - old.signed_amount

            update = {
                "asset_id": new_asset.id,
                "owner": new_asset.owner,
                "currency": new_asset.currency,
                "updated_at": now,
            }
            if changes.amount is not None:
                update["amount"] = changes.amount
            if changes.category:
                update["category"] = changes.category
            if changes.date is not None:
                update["date"] = changes.date
            if "note" in changes.model_fields_set:
                update["note"] = changes.note
            updated = old.model_copy(update=update)

            new_asset.balance = new_asset.balance + updated.signed_amount

            if self._strict_update_check:
                for aid, asset in assets.items():
                    if asset.balance < 0:
                        raise InsufficientBalanceError(
                            aid,
                            balances_before[aid],
                            balances_before[aid] - asset.balance,
                        )

            for asset in assets.values():
                asset.updated_at = now
                uow.save_asset(asset)
            uow.save_transaction(updated)

        if self._audit:
            await self._audit.log_transaction_updated(
                transaction_id=transaction_id,
                old_asset_id=old.asset_id,
                new_asset_id=updated.asset_id,
                old_amount=old.amount,
                new_amount=updated.amount,
                correlation_id=correlation_id,
            )
        return updated

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Remove a transaction and reverse its effect on the asset."""
        with self._storage.unit_of_work() as uow:
            # Asset row first, then the transaction row, as in delete_asset
            found = uow.get_transaction(transaction_id)
            if found is None:
                raise TransactionNotFoundError(transaction_id)
            asset = _lock_asset(uow, found.asset_id)
            transaction = uow.get_transaction(transaction_id, for_update=True)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            asset.balance = asset.balance - transaction.signed_amount
            asset.updated_at = datetime.utcnow()
            uow.save_asset(asset)
            uow.delete_transaction(transaction_id)

        if self._audit:
            await self._audit.log_transaction_deleted(
                transaction_id=transaction_id,
                asset_id=transaction.asset_id,
                kind=transaction.kind.value,
                amount=transaction.amount,
                correlation_id=correlation_id,
            )

    async def get_transaction(self, transaction_id: UUID) -> Transaction:
        transaction = self._storage.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    async def list_transactions(
        self,
        owners: Iterable[AnyOwner],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        asset_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        return self._storage.list_transactions(
            owners,
            date_from=date_from,
            date_to=date_to,
            asset_id=asset_id,
        )
