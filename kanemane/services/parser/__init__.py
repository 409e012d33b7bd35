"""
Transaction Parser Package

Gemini parser, keyword fallback, and the service that chains them.
"""

from kanemane.services.parser.interface import (
    CATEGORY_LABELS,
    ParserUnavailableError,
    TransactionParserInterface,
    normalize_category,
)
from kanemane.services.parser.fallback import FallbackTransactionParser
from kanemane.services.parser.gemini import GeminiTransactionParser
from kanemane.services.parser.service import TransactionParsingService

__all__ = [
    "CATEGORY_LABELS",
    "FallbackTransactionParser",
    "GeminiTransactionParser",
    "ParserUnavailableError",
    "TransactionParserInterface",
    "TransactionParsingService",
    "normalize_category",
]
