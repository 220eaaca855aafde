"""
Audit trail records.

Applied mutations, rejected attempts and document lifecycle events
(created, loaded, saved, archived as corrupt) each become one AuditEvent.
The trail is written one JSON object per line and only ever appended to.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """What happened to the ledger."""
    # Document lifecycle
    DOCUMENT_LOADED = "document_loaded"
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_SAVED = "document_saved"
    CORRUPT_DOCUMENT_ARCHIVED = "corrupt_document_archived"

    # Mutations
    TRANSACTION_ADDED = "transaction_added"
    FUND_ADDED = "fund_added"
    OBLIGATION_ADDED = "obligation_added"
    MONEY_ALLOCATED = "money_allocated"
    MONEY_RELEASED = "money_released"
    PAYMENT_REGISTERED = "payment_registered"
    FUND_ADJUSTED = "fund_adjusted"
    OBLIGATION_STATUS_CHANGED = "obligation_status_changed"
    CALENDAR_TIMES_UPDATED = "calendar_times_updated"
    RECORD_DELETED = "record_deleted"

    # Rejections and errors
    OPERATION_REJECTED = "operation_rejected"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """One entry of the audit trail."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about? (fund, obligation, transaction, ...)
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Flat dict used both for structlog and for the JSON line."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_json_line(self) -> str:
        """One line of the JSON-lines audit file."""
        return json.dumps(self.to_log_dict(), ensure_ascii=False, default=str)


class AuditEventBuilder:
    """
    Constructors for the events the store and the service emit.

    Example:
        event = AuditEventBuilder.mutation(AuditEventType.FUND_ADDED, "fund", fund.id, "Fund created: Ahorro")
        event = AuditEventBuilder.operation_rejected("adjust_fund_balance", "negative_balance_rejected", msg)
    """

    @staticmethod
    def mutation(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        failure: str,
        message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            description=f"Operation rejected: {operation}",
            error_code=failure,
            error_message=message,
            details={"operation": operation, **(details or {})},
        )

    @staticmethod
    def document_loaded(fund_count: int, record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_LOADED,
            severity=AuditSeverity.DEBUG,
            entity_type="document",
            description="Ledger document loaded",
            details={"funds": fund_count, "records": record_count},
        )

    @staticmethod
    def document_created() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_CREATED,
            entity_type="document",
            description="No ledger document found; created a default one",
        )

    @staticmethod
    def document_saved() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_SAVED,
            severity=AuditSeverity.DEBUG,
            entity_type="document",
            description="Ledger document saved",
        )

    @staticmethod
    def corrupt_document_archived(backup_name: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CORRUPT_DOCUMENT_ARCHIVED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            description=f"Unreadable ledger document archived as {backup_name}",
            error_message=reason,
            details={"backup": backup_name},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
