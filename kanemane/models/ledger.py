"""
Core Ledger Models for Kanemane

These models define the strict schemas for money flowing through the system:
assets, the income/expense transactions booked against them, and the users
that own them.

DESIGN DECISION: Ownership is a tagged union, not a class-name string.
An asset belongs either to one person or to a family group, and the
`kind` discriminator makes that explicit in every payload and row.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


CENT = Decimal("0.01")

# Categories booked by the ledger itself rather than typed by a user
OPENING_BALANCE_CATEGORY = "Saldo Awal"
BALANCE_ADJUSTMENT_CATEGORY = "Penyesuaian Saldo"


def to_amount(value) -> Decimal:
    """
    Convert a number-like value to a Decimal rounded to cents.

    Floats go through str() so 0.1 stays 0.10 rather than 0.1000000000000000055.
    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"Not a valid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a valid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Currency(str, Enum):
    """Currencies an asset can hold."""
    JPY = "JPY"
    IDR = "IDR"

    @property
    def symbol(self) -> str:
        return {"JPY": "¥", "IDR": "Rp"}[self.value]


class Country(str, Enum):
    """Country an asset is held in."""
    JP = "JP"
    ID = "ID"


class AssetType(str, Enum):
    """Kinds of asset."""
    SAVINGS = "savings"
    E_MONEY = "e-money"
    INVESTMENT = "investment"
    CASH = "cash"

    @property
    def label(self) -> str:
        return {
            "savings": "Tabungan",
            "e-money": "E-Money",
            "investment": "Investasi",
            "cash": "Cash",
        }[self.value]


class TransactionKind(str, Enum):
    """
    The two concrete transaction kinds.

    Income adds to the asset balance, expense subtracts from it.
    """
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def sign(self) -> int:
        return 1 if self is TransactionKind.INCOME else -1

    @property
    def label(self) -> str:
        return "Pemasukan" if self is TransactionKind.INCOME else "Pengeluaran"


# =============================================================================
# OWNERSHIP
# =============================================================================

class IndividualOwner(BaseModel):
    """An asset or transaction owned by a single user."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["user"] = "user"
    user_id: UUID


class FamilyOwner(BaseModel):
    """An asset or transaction shared by a family group."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["family"] = "family"
    family_id: UUID


Owner = Annotated[Union[IndividualOwner, FamilyOwner], Field(discriminator="kind")]


def owner_key(owner: Union[IndividualOwner, FamilyOwner]) -> tuple[str, UUID]:
    """Return the (kind, id) pair used to store an owner."""
    if isinstance(owner, IndividualOwner):
        return owner.kind, owner.user_id
    return owner.kind, owner.family_id


def owner_from_key(kind: str, owner_id: UUID) -> Union[IndividualOwner, FamilyOwner]:
    """Inverse of owner_key()."""
    if kind == "user":
        return IndividualOwner(user_id=owner_id)
    if kind == "family":
        return FamilyOwner(family_id=owner_id)
    raise ValueError(f"Unknown owner kind: {kind!r}")


# =============================================================================
# USERS
# =============================================================================

class Family(BaseModel):
    """A group of users that share family-owned assets."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)

    @property
    def owner(self) -> FamilyOwner:
        return FamilyOwner(family_id=self.id)


class User(BaseModel):
    """A person using the app, identified on WhatsApp by phone number."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(
        default=None,
        max_length=32,
        description="Normalized phone number, digits only"
    )
    family_id: Optional[UUID] = None
    primary_asset_id: Optional[UUID] = None

    @property
    def owner(self) -> IndividualOwner:
        return IndividualOwner(user_id=self.id)

    @property
    def owners(self) -> list[Union[IndividualOwner, FamilyOwner]]:
        """Every owner whose assets this user may see and use."""
        owners: list[Union[IndividualOwner, FamilyOwner]] = [self.owner]
        if self.family_id:
            owners.append(FamilyOwner(family_id=self.family_id))
        return owners

    def can_access(self, owner: Union[IndividualOwner, FamilyOwner]) -> bool:
        return owner in self.owners


# =============================================================================
# ASSETS AND TRANSACTIONS
# =============================================================================

class Asset(BaseModel):
    """
    A named store of money with a currency and a running balance.

    CRITICAL: `balance` is only ever changed by the ledger engine, in the
    same unit of work that writes the transaction explaining the change.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner: Owner
    country: Country
    name: str = Field(..., min_length=1, max_length=255)
    type: AssetType
    currency: Currency
    balance: Decimal = Field(default=Decimal("0.00"), decimal_places=2)
    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)


class Transaction(BaseModel):
    """
    A single income or expense booked against an asset.

    `owner` is copied from the asset at booking time so that listing and
    authorization do not need to join through the asset.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    kind: TransactionKind
    owner: Owner
    asset_id: UUID
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    currency: Currency
    date: dt.date
    note: Optional[str] = Field(default=None, max_length=1000)
    created_by: Optional[UUID] = None
    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)

    @property
    def signed_amount(self) -> Decimal:
        """The effect this transaction has on its asset's balance."""
        return self.amount * self.kind.sign


class TransactionMeta(BaseModel):
    """Descriptive fields supplied when booking a transaction."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(..., min_length=1, max_length=100)
    date: dt.date = Field(default_factory=dt.date.today)
    note: Optional[str] = Field(default=None, max_length=1000)
    created_by: Optional[UUID] = None


class TransactionUpdate(BaseModel):
    """
    Fields that may change on an existing transaction.

    Unset fields keep their current value. The kind (income/expense)
    cannot change; delete and re-book instead.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    asset_id: Optional[UUID] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(default=None, decimal_places=2)
    date: Optional[dt.date] = None
    note: Optional[str] = Field(default=None, max_length=1000)

    @field_validator('amount', mode='before')
    @classmethod
    def round_amount(cls, v):
        if v is None:
            return v
        return to_amount(v)
