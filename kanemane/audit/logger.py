"""
Audit Logger

DESIGN DECISION: Every balance change and every bot decision is logged.
This provides:
1. Complete traceability of balances
2. Debugging capability when the parser or gateway misbehaves
3. User can see history of their interactions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
- Is never called while a ledger unit of work is open
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from kanemane.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from kanemane.services.storage.interface import AuditStorageInterface


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(default=str)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: Optional[str] = None):
    """Structured logger for modules that log outside the audit trail."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_events table (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("kanemane.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_asset_opened(
        self,
        asset_id: UUID,
        name: str,
        currency: str,
        opening_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.asset_opened(
            asset_id=asset_id,
            name=name,
            currency=currency,
            opening_balance=opening_balance,
            correlation_id=correlation_id,
        ))

    async def log_asset_renamed(
        self,
        asset_id: UUID,
        old_name: str,
        new_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.asset_renamed(
            asset_id=asset_id,
            old_name=old_name,
            new_name=new_name,
            correlation_id=correlation_id,
        ))

    async def log_asset_deleted(
        self,
        asset_id: UUID,
        name: str,
        removed_transactions: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.asset_deleted(
            asset_id=asset_id,
            name=name,
            removed_transactions=removed_transactions,
            correlation_id=correlation_id,
        ))

    async def log_family_joined(
        self,
        user_id: UUID,
        family_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.family_membership(
            user_id=user_id,
            family_id=family_id,
            joined=True,
            correlation_id=correlation_id,
        ))

    async def log_family_left(
        self,
        user_id: UUID,
        family_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.family_membership(
            user_id=user_id,
            family_id=family_id,
            joined=False,
            correlation_id=correlation_id,
        ))

    async def log_balance_corrected(
        self,
        asset_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_corrected(
            asset_id=asset_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_transaction_recorded(
        self,
        transaction_id: UUID,
        asset_id: UUID,
        kind: str,
        amount: Decimal,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a newly booked income or expense."""
        await self.log(AuditEventBuilder.transaction_recorded(
            transaction_id=transaction_id,
            asset_id=asset_id,
            kind=kind,
            amount=amount,
            currency=currency,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: UUID,
        old_asset_id: UUID,
        new_asset_id: UUID,
        old_amount: Decimal,
        new_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            old_asset_id=old_asset_id,
            new_asset_id=new_asset_id,
            old_amount=old_amount,
            new_amount=new_amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        asset_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            asset_id=asset_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_insufficient_balance(
        self,
        asset_id: UUID,
        balance: Decimal,
        requested: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a refused expense."""
        await self.log(AuditEventBuilder.insufficient_balance(
            asset_id=asset_id,
            balance=balance,
            requested=requested,
            correlation_id=correlation_id,
        ))

    async def log_parser_fallback(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.parser_fallback(
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_conversation_completed(
        self,
        actor: str,
        step: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.conversation_completed(
            actor=actor,
            step=step,
            correlation_id=correlation_id,
        ))

    async def log_conversation_cancelled(
        self,
        actor: str,
        step: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.conversation_cancelled(
            actor=actor,
            step=step,
            correlation_id=correlation_id,
        ))

    async def log_report_exported(
        self,
        url: str,
        row_count: int,
        period_label: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.report_exported(
            url=url,
            row_count=row_count,
            period_label=period_label,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when an inbound message arrives and pass it through
    every operation it causes.
    """
    return uuid4()
