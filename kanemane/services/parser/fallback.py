"""
Keyword Fallback Parser

Deterministic parser used when Gemini is unavailable. It only knows
keywords and the first number in the message, so the bot always shows
its guess for confirmation, same as an AI guess.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from kanemane.models.ledger import Currency, TransactionKind, to_amount
from kanemane.models.parsing import KnownAsset, ParsedTransaction, ParseSource
from kanemane.services.parser.interface import DEFAULT_CATEGORY


INCOME_PATTERN = re.compile(
    r"gaji|gajian|salary|beasiswa|scholarship|bonus|dapat|terima|masuk|income|pendapatan",
    re.IGNORECASE,
)
IDR_PATTERN = re.compile(r"rupiah|idr|(?<![a-z])rp(?![a-z])", re.IGNORECASE)
JPY_PATTERN = re.compile(r"(?<![a-z])yen(?![a-z])|円|jpy|¥", re.IGNORECASE)

# Checked in order, first match wins
CATEGORY_PATTERNS = [
    ("食費", re.compile(r"makan|jajan|food|resto|cafe|breakfast|lunch|dinner|食|飯", re.IGNORECASE)),
    ("交通費", re.compile(r"train|bus|taxi|transport|交通|kereta|grab|gojek|bensin", re.IGNORECASE)),
    ("家賃", re.compile(r"rent|sewa|家賃", re.IGNORECASE)),
    ("光熱費", re.compile(r"electric|water|internet|\bgas\b|光熱費|listrik|\bair\b|wifi", re.IGNORECASE)),
]

# The number is matched whole; a letter suffix that is not a multiplier is
# a currency or plain word ("1500yen", "2000IDR")
AMOUNT_PATTERN = re.compile(r"(\d[\d.,]*)(?![\d.,])\s*([a-z]+)?", re.IGNORECASE)
MULTIPLIERS = {
    "rb": 1_000,
    "ribu": 1_000,
    "k": 1_000,
    "jt": 1_000_000,
    "juta": 1_000_000,
}


def parse_number(raw: str) -> Optional[Decimal]:
    """
    Read a number written with thousand separators or a decimal part.

    A trailing group of exactly three digits is a thousands group
    ("1.500", "50,000"); one or two trailing digits are decimals ("12.50").
    """
    groups = re.split(r"[.,]", raw.strip(".,"))
    if not groups or not groups[0]:
        return None
    if len(groups) > 1 and len(groups[-1]) in (1, 2):
        number = "".join(groups[:-1]) + "." + groups[-1]
    else:
        number = "".join(groups)
    try:
        return Decimal(number)
    except InvalidOperation:
        return None


def find_amount(text: str) -> Decimal:
    """First number in the text, with rb/k/jt suffixes applied. Zero if none."""
    for match in AMOUNT_PATTERN.finditer(text):
        number = parse_number(match.group(1))
        if number is None:
            continue
        suffix = (match.group(2) or "").lower()
        return to_amount(number * MULTIPLIERS.get(suffix, 1))
    return Decimal("0.00")


def find_asset_name(text: str, assets: Sequence[KnownAsset]) -> Optional[str]:
    """Longest asset name that appears in the text, ignoring case."""
    lowered = text.lower()
    for asset in sorted(assets, key=lambda a: len(a.name), reverse=True):
        if asset.name and asset.name.lower() in lowered:
            return asset.name
    return None


class FallbackTransactionParser:
    """Keyword and regex parser. Never fails, may return amount 0."""

    def parse(self, text: str, assets: Sequence[KnownAsset] = ()) -> ParsedTransaction:
        text = (text or "").strip()

        kind = TransactionKind.INCOME if INCOME_PATTERN.search(text) else TransactionKind.EXPENSE

        currency = Currency.JPY
        if IDR_PATTERN.search(text) and not JPY_PATTERN.search(text):
            currency = Currency.IDR

        category = DEFAULT_CATEGORY
        for label, pattern in CATEGORY_PATTERNS:
            if pattern.search(text):
                category = label
                break

        return ParsedTransaction(
            kind=kind,
            category=category,
            amount=find_amount(text),
            currency=currency,
            asset_name_hint=find_asset_name(text, assets),
            description=text[:1000],
            source=ParseSource.FALLBACK,
        )
