"""
Parser Models

CRITICAL: Everything in this module is a GUESS produced from free text or
a photo. None of it is trusted. The bot shows it to the user and only
books a transaction after an explicit "yes".
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from kanemane.models.ledger import Currency, TransactionKind


class ParseSource(str, Enum):
    """Which parser produced a guess."""
    AI = "ai"
    FALLBACK = "fallback"


class KnownAsset(BaseModel):
    """The slice of an asset the parser may see for name matching."""

    id: UUID
    name: str
    currency: Currency


class ParsedTransaction(BaseModel):
    """Structured guess for a free-text transaction message."""
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: TransactionKind = TransactionKind.EXPENSE
    category: str = Field(default="Lainnya", min_length=1, max_length=100)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: Currency = Currency.JPY
    asset_name_hint: Optional[str] = Field(default=None, max_length=255)
    description: str = Field(default="", max_length=1000)
    source: ParseSource = ParseSource.AI

    @property
    def has_amount(self) -> bool:
        return self.amount > 0


class ReceiptItem(BaseModel):
    """A line on a scanned receipt."""

    name: str = Field(..., max_length=200)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class ReceiptScan(BaseModel):
    """Structured guess for a receipt photo."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., ge=0)
    date: dt.date = Field(default_factory=dt.date.today)
    merchant: str = Field(default="Unknown", max_length=200)
    category: str = Field(default="Lainnya", min_length=1, max_length=100)
    currency: Currency = Currency.JPY
    items: list[ReceiptItem] = Field(default_factory=list)
