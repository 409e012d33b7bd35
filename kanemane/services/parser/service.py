"""
Transaction Parsing Service

Puts the AI parser in front of the keyword parser:
- Text: try Gemini, fall back to keywords on ParserUnavailableError.
- Photos: Gemini only; there is no text to fall back on.
"""

from typing import Optional, Sequence
from uuid import UUID

from kanemane.audit.logger import AuditLogger
from kanemane.models.parsing import KnownAsset, ParsedTransaction, ReceiptScan
from kanemane.services.parser.fallback import FallbackTransactionParser
from kanemane.services.parser.interface import (
    ParserUnavailableError,
    TransactionParserInterface,
)


class TransactionParsingService:
    """
    Entry point the bot uses for parsing.

    Args:
        primary: AI parser, or None to run on keywords only
        fallback: Keyword parser
        audit_logger: Records every fallback and scan failure
    """

    def __init__(
        self,
        primary: Optional[TransactionParserInterface] = None,
        fallback: Optional[FallbackTransactionParser] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._primary = primary
        self._fallback = fallback or FallbackTransactionParser()
        self._audit = audit_logger

    async def parse_text(
        self,
        text: str,
        assets: Sequence[KnownAsset] = (),
        correlation_id: Optional[UUID] = None,
    ) -> ParsedTransaction:
        if self._primary is not None:
            try:
                return await self._primary.parse_text(text, assets)
            except ParserUnavailableError as e:
                if self._audit:
                    await self._audit.log_parser_fallback(
                        reason=str(e),
                        correlation_id=correlation_id,
                    )
        return self._fallback.parse(text, assets)

    async def scan_receipt(
        self,
        image: bytes,
        mime_type: str = "image/jpeg",
        correlation_id: Optional[UUID] = None,
    ) -> ReceiptScan:
        """
        Raises:
            ParserUnavailableError: No scanner configured or the scan failed
        """
        if self._primary is None:
            raise ParserUnavailableError("No receipt scanner configured")
        try:
            return await self._primary.scan_receipt(image, mime_type)
        except ParserUnavailableError as e:
            if self._audit:
                await self._audit.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
