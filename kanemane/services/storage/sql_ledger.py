"""
SQL Ledger Storage Implementation

Maps the pydantic ledger models onto the SQLAlchemy rows in
database.py. Every public read returns detached pydantic objects;
nothing outside this module ever holds an ORM row.
"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterable, Iterator, Optional
from uuid import UUID

from sqlalchemy import and_, delete, false, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kanemane.models.ledger import (
    Asset,
    AssetType,
    Country,
    Currency,
    Family,
    Transaction,
    TransactionKind,
    User,
    owner_from_key,
    owner_key,
    to_amount,
)
from kanemane.services.storage.database import (
    AssetRow,
    Database,
    FamilyRow,
    TransactionRow,
    UserRow,
)
from kanemane.services.storage.interface import (
    AnyOwner,
    DuplicateError,
    LedgerSession,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


# =============================================================================
# ROW <-> MODEL MAPPING
# =============================================================================

def _asset_from_row(row: AssetRow) -> Asset:
    return Asset(
        id=row.id,
        owner=owner_from_key(row.owner_kind, row.owner_id),
        country=Country(row.country),
        name=row.name,
        type=AssetType(row.type),
        currency=Currency(row.currency),
        balance=to_amount(row.balance),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _asset_to_row(asset: Asset) -> AssetRow:
    kind, owner_id = owner_key(asset.owner)
    return AssetRow(
        id=asset.id,
        owner_kind=kind,
        owner_id=owner_id,
        country=asset.country.value,
        name=asset.name,
        type=asset.type.value,
        currency=asset.currency.value,
        balance=asset.balance,
        created_at=asset.created_at,
        updated_at=asset.updated_at,
    )


def _transaction_from_row(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        kind=TransactionKind(row.kind),
        owner=owner_from_key(row.owner_kind, row.owner_id),
        asset_id=row.asset_id,
        category=row.category,
        amount=to_amount(row.amount),
        currency=Currency(row.currency),
        date=row.date,
        note=row.note,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _copy_transaction(transaction: Transaction, row: TransactionRow) -> None:
    kind, owner_id = owner_key(transaction.owner)
    row.kind = transaction.kind.value
    row.owner_kind = kind
    row.owner_id = owner_id
    row.asset_id = transaction.asset_id
    row.category = transaction.category
    row.amount = transaction.amount
    row.currency = transaction.currency.value
    row.date = transaction.date
    row.note = transaction.note
    row.created_by = transaction.created_by
    row.created_at = transaction.created_at
    row.updated_at = transaction.updated_at


def _user_from_row(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name,
        phone=row.phone,
        family_id=row.family_id,
        primary_asset_id=row.primary_asset_id,
    )


def _family_from_row(row: FamilyRow) -> Family:
    return Family(id=row.id, name=row.name, created_at=row.created_at)


def _owned_by(model, owners: Iterable[AnyOwner]):
    """WHERE clause matching rows owned by any of the given owners."""
    clauses = [
        and_(model.owner_kind == kind, model.owner_id == owner_id)
        for kind, owner_id in (owner_key(o) for o in owners)
    ]
    if not clauses:
        return false()
    return or_(*clauses)


# =============================================================================
# UNIT OF WORK
# =============================================================================

class SqlLedgerSession(LedgerSession):
    """LedgerSession backed by one SQLAlchemy session."""

    def __init__(self, session: Session):
        self._session = session

    def get_asset(self, asset_id: UUID, for_update: bool = False) -> Optional[Asset]:
        stmt = select(AssetRow).where(AssetRow.id == asset_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self._session.scalars(stmt).first()
        return _asset_from_row(row) if row else None

    def add_asset(self, asset: Asset) -> None:
        self._session.add(_asset_to_row(asset))
        self._session.flush()

    def save_asset(self, asset: Asset) -> None:
        row = self._session.get(AssetRow, asset.id)
        if row is None:
            raise NotFoundError(f"Asset {asset.id} not found")
        row.name = asset.name
        row.balance = asset.balance
        row.updated_at = asset.updated_at
        self._session.flush()

    def delete_asset(self, asset_id: UUID) -> int:
        removed = self._session.execute(
            delete(TransactionRow).where(TransactionRow.asset_id == asset_id)
        ).rowcount
        self._session.execute(delete(AssetRow).where(AssetRow.id == asset_id))
        return removed or 0

    def get_transaction(
        self,
        transaction_id: UUID,
        for_update: bool = False,
    ) -> Optional[Transaction]:
        stmt = select(TransactionRow).where(TransactionRow.id == transaction_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self._session.scalars(stmt).first()
        return _transaction_from_row(row) if row else None

    def add_transaction(self, transaction: Transaction) -> None:
        row = TransactionRow(id=transaction.id)
        _copy_transaction(transaction, row)
        self._session.add(row)
        self._session.flush()

    def save_transaction(self, transaction: Transaction) -> None:
        row = self._session.get(TransactionRow, transaction.id)
        if row is None:
            raise NotFoundError(f"Transaction {transaction.id} not found")
        _copy_transaction(transaction, row)
        self._session.flush()

    def delete_transaction(self, transaction_id: UUID) -> None:
        self._session.execute(
            delete(TransactionRow).where(TransactionRow.id == transaction_id)
        )

    def net_transaction_total(self, asset_id: UUID) -> Decimal:
        rows = self._session.execute(
            select(TransactionRow.kind, TransactionRow.amount)
            .where(TransactionRow.asset_id == asset_id)
        ).all()
        total = Decimal("0.00")
        for kind, amount in rows:
            total += to_amount(amount) * TransactionKind(kind).sign
        return total


class SqlLedgerStorage(LedgerStorageInterface):
    """
    Ledger storage on any database SQLAlchemy supports.
    """

    def __init__(self, database: Database):
        self._db = database

    @contextmanager
    def unit_of_work(self) -> Iterator[LedgerSession]:
        session = self._db.session_factory()
        try:
            yield SqlLedgerSession(session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Ledger write failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_asset(self, asset_id: UUID) -> Optional[Asset]:
        with self._db.session_factory() as session:
            row = session.get(AssetRow, asset_id)
            return _asset_from_row(row) if row else None

    def list_assets(self, owners: Iterable[AnyOwner]) -> list[Asset]:
        stmt = (
            select(AssetRow)
            .where(_owned_by(AssetRow, list(owners)))
            .order_by(AssetRow.created_at, AssetRow.name)
        )
        with self._db.session_factory() as session:
            return [_asset_from_row(row) for row in session.scalars(stmt)]

    def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        with self._db.session_factory() as session:
            row = session.get(TransactionRow, transaction_id)
            return _transaction_from_row(row) if row else None

    def list_transactions(
        self,
        owners: Iterable[AnyOwner],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        asset_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        stmt = select(TransactionRow).where(_owned_by(TransactionRow, list(owners)))
        if date_from:
            stmt = stmt.where(TransactionRow.date >= date_from)
        if date_to:
            stmt = stmt.where(TransactionRow.date <= date_to)
        if asset_id:
            stmt = stmt.where(TransactionRow.asset_id == asset_id)
        stmt = stmt.order_by(TransactionRow.date, TransactionRow.created_at)

        with self._db.session_factory() as session:
            return [_transaction_from_row(row) for row in session.scalars(stmt)]

    def get_user(self, user_id: UUID) -> Optional[User]:
        with self._db.session_factory() as session:
            row = session.get(UserRow, user_id)
            return _user_from_row(row) if row else None

    def find_user_by_phone(self, phone: str) -> Optional[User]:
        with self._db.session_factory() as session:
            row = session.scalars(select(UserRow).where(UserRow.phone == phone)).first()
            return _user_from_row(row) if row else None

    def save_user(self, user: User) -> None:
        with self._db.session_factory() as session:
            session.merge(UserRow(
                id=user.id,
                name=user.name,
                phone=user.phone,
                family_id=user.family_id,
                primary_asset_id=user.primary_asset_id,
            ))
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateError(f"Phone {user.phone} already registered") from e

    def get_family(self, family_id: UUID) -> Optional[Family]:
        with self._db.session_factory() as session:
            row = session.get(FamilyRow, family_id)
            return _family_from_row(row) if row else None

    def save_family(self, family: Family) -> None:
        with self._db.session_factory() as session:
            session.merge(FamilyRow(id=family.id, name=family.name, created_at=family.created_at))
            session.commit()

    def list_family_members(self, family_id: UUID) -> list[User]:
        stmt = select(UserRow).where(UserRow.family_id == family_id).order_by(UserRow.name)
        with self._db.session_factory() as session:
            return [_user_from_row(row) for row in session.scalars(stmt)]
