"""
SQL Audit Storage

Append-only: this class has no update or delete path.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from kanemane.models.audit import AuditEvent, AuditEventType, AuditSeverity
from kanemane.services.storage.database import AuditEventRow, Database
from kanemane.services.storage.interface import AuditStorageInterface, StorageError


def _event_from_row(row: AuditEventRow) -> AuditEvent:
    return AuditEvent(
        event_id=row.event_id,
        timestamp=row.timestamp,
        event_type=AuditEventType(row.event_type),
        severity=AuditSeverity(row.severity),
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        correlation_id=row.correlation_id,
        description=row.description,
        details=row.details or {},
        error_message=row.error_message,
        is_user_action=row.is_user_action,
    )


class SqlAuditStorage(AuditStorageInterface):
    """Audit events in the audit_events table."""

    def __init__(self, database: Database):
        self._db = database

    async def append_event(self, event: AuditEvent) -> bool:
        row = AuditEventRow(
            event_id=event.event_id,
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=event.correlation_id,
            description=event.description,
            # Round-trip through JSON so Decimals and UUIDs become strings
            details=event.model_dump(mode="json")["details"],
            error_message=event.error_message,
            is_user_action=event.is_user_action,
        )
        with self._db.session_factory() as session:
            try:
                session.add(row)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"Failed to append audit event: {e}") from e
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == correlation_id)
            .order_by(AuditEventRow.timestamp)
        )
        with self._db.session_factory() as session:
            return [_event_from_row(row) for row in session.scalars(stmt)]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(
                AuditEventRow.entity_type == entity_type,
                AuditEventRow.entity_id == str(entity_id),
            )
            .order_by(AuditEventRow.timestamp)
        )
        with self._db.session_factory() as session:
            return [_event_from_row(row) for row in session.scalars(stmt)]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .order_by(AuditEventRow.timestamp.desc())
            .limit(limit)
        )
        with self._db.session_factory() as session:
            return [_event_from_row(row) for row in session.scalars(stmt)]
