"""
Transaction Parser Interface

THE PARSER IS A TRANSLATOR, NOT A BOOKKEEPER.
It turns a chat message or a receipt photo into a structured guess.
It never touches the ledger; every guess goes through a confirmation
step before anything is booked.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from kanemane.models.parsing import KnownAsset, ParsedTransaction, ReceiptScan


# Categories the AI is asked to choose from, and how they are shown to users
CATEGORY_LABELS = {
    "食費": "Makanan",
    "交通費": "Transportasi",
    "家賃": "Sewa",
    "光熱費": "Utilitas",
    "その他": "Lainnya",
}
DEFAULT_CATEGORY = "その他"


def normalize_category(category: str) -> str:
    """Map a parser category to the Indonesian label stored on transactions."""
    category = (category or "").strip()
    if not category:
        return CATEGORY_LABELS[DEFAULT_CATEGORY]
    return CATEGORY_LABELS.get(category, category)


class ParserUnavailableError(Exception):
    """
    The parser backend failed, timed out, or answered with something
    that is not a usable transaction.
    """
    pass


class TransactionParserInterface(ABC):
    """
    Abstract interface for AI-backed parsers.
    """

    @abstractmethod
    async def parse_text(
        self,
        text: str,
        assets: Sequence[KnownAsset] = (),
    ) -> ParsedTransaction:
        """
        Parse a free-text transaction message.

        Args:
            text: Message as typed by the user
            assets: The user's assets, for matching an asset name in the text

        Raises:
            ParserUnavailableError: Upstream failure, timeout or malformed answer
        """
        pass

    @abstractmethod
    async def scan_receipt(
        self,
        image: bytes,
        mime_type: str = "image/jpeg",
    ) -> ReceiptScan:
        """
        Read total, date, merchant and items off a receipt photo.

        Raises:
            ParserUnavailableError: Upstream failure, timeout or malformed answer
        """
        pass
