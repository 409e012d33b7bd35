"""
Audit Models for Kanemane

Every balance change, refused expense and bot decision is logged for audit
purposes. This provides:
1. Traceability of how an asset reached its current balance
2. Debugging information when the parser or the gateway misbehaves
3. A history the user can be shown when a number looks wrong

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Assets
    ASSET_OPENED = "asset_opened"
    ASSET_RENAMED = "asset_renamed"
    ASSET_DELETED = "asset_deleted"
    BALANCE_CORRECTED = "balance_corrected"

    # Families
    FAMILY_JOINED = "family_joined"
    FAMILY_LEFT = "family_left"

    # Transactions
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    INSUFFICIENT_BALANCE = "insufficient_balance"

    # Parsing
    PARSER_FALLBACK = "parser_fallback"

    # Conversation
    CONVERSATION_COMPLETED = "conversation_completed"
    CONVERSATION_CANCELLED = "conversation_cancelled"

    # Reports
    REPORT_EXPORTED = "report_exported"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'asset', 'transaction', 'conversation')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Groups every event caused by one inbound message
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def details_json(self) -> str:
        return json.dumps(self.details, default=str)


def _money(value: Decimal) -> str:
    return format(value, "f")


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_recorded(tx_id, asset_id, "expense", amount, "JPY")
        event = AuditEventBuilder.parser_fallback("timeout")
    """

    @staticmethod
    def asset_opened(
        asset_id: UUID,
        name: str,
        currency: str,
        opening_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_OPENED,
            entity_type="asset",
            entity_id=str(asset_id),
            correlation_id=correlation_id,
            description=f"Asset opened: {name}",
            details={
                "name": name,
                "currency": currency,
                "opening_balance": _money(opening_balance),
            },
            is_user_action=True,
        )

    @staticmethod
    def asset_renamed(
        asset_id: UUID,
        old_name: str,
        new_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_RENAMED,
            entity_type="asset",
            entity_id=str(asset_id),
            correlation_id=correlation_id,
            description=f"Asset renamed: {old_name} -> {new_name}",
            details={"old_name": old_name, "new_name": new_name},
            is_user_action=True,
        )

    @staticmethod
    def asset_deleted(
        asset_id: UUID,
        name: str,
        removed_transactions: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="asset",
            entity_id=str(asset_id),
            correlation_id=correlation_id,
            description=f"Asset deleted: {name}",
            details={"name": name, "removed_transactions": removed_transactions},
            is_user_action=True,
        )

    @staticmethod
    def family_membership(
        user_id: UUID,
        family_id: UUID,
        joined: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FAMILY_JOINED if joined else AuditEventType.FAMILY_LEFT,
            entity_type="family",
            entity_id=str(family_id),
            correlation_id=correlation_id,
            description=f"User {'joined' if joined else 'left'} family",
            details={"user_id": str(user_id)},
            is_user_action=True,
        )

    @staticmethod
    def balance_corrected(
        asset_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_CORRECTED,
            entity_type="asset",
            entity_id=str(asset_id),
            correlation_id=correlation_id,
            description="Asset balance corrected manually",
            details={
                "old_balance": _money(old_balance),
                "new_balance": _money(new_balance),
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_recorded(
        transaction_id: UUID,
        asset_id: UUID,
        kind: str,
        amount: Decimal,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} recorded: {_money(amount)} {currency}",
            details={
                "asset_id": str(asset_id),
                "kind": kind,
                "amount": _money(amount),
                "currency": currency,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        old_asset_id: UUID,
        new_asset_id: UUID,
        old_amount: Decimal,
        new_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description="Transaction updated",
            details={
                "old_asset_id": str(old_asset_id),
                "new_asset_id": str(new_asset_id),
                "old_amount": _money(old_amount),
                "new_amount": _money(new_amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        asset_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} deleted: {_money(amount)}",
            details={
                "asset_id": str(asset_id),
                "kind": kind,
                "amount": _money(amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def insufficient_balance(
        asset_id: UUID,
        balance: Decimal,
        requested: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSUFFICIENT_BALANCE,
            severity=AuditSeverity.WARNING,
            entity_type="asset",
            entity_id=str(asset_id),
            correlation_id=correlation_id,
            description="Expense refused: insufficient balance",
            details={
                "balance": _money(balance),
                "requested": _money(requested),
            },
        )

    @staticmethod
    def parser_fallback(
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARSER_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type="parser",
            correlation_id=correlation_id,
            description="AI parser unavailable, used keyword parser",
            error_message=reason,
        )

    @staticmethod
    def conversation_completed(
        actor: str,
        step: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONVERSATION_COMPLETED,
            entity_type="conversation",
            entity_id=actor,
            correlation_id=correlation_id,
            description=f"Conversation finished at step {step}",
            details={"step": step},
            is_user_action=True,
        )

    @staticmethod
    def conversation_cancelled(
        actor: str,
        step: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONVERSATION_CANCELLED,
            entity_type="conversation",
            entity_id=actor,
            correlation_id=correlation_id,
            description=f"Conversation cancelled at step {step}",
            details={"step": step},
            is_user_action=True,
        )

    @staticmethod
    def report_exported(
        url: str,
        row_count: int,
        period_label: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_EXPORTED,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Report exported: {period_label}",
            details={"url": url, "row_count": row_count},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
