"""
Audit logging for the ledger.

Events always go to the structlog output. When an audit storage is
attached they are also appended there; a failing backend is reported
through structlog and never interrupts the mutation that produced it.
"""

from typing import Optional

import structlog

from fincalendar.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from fincalendar.models.results import MutationResult
from fincalendar.services.storage import AuditStorageInterface


# JSON output on the stdlib logging tree
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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

_LEVELS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "error",
}


class AuditLogger:
    """Writes audit events to structlog and, optionally, an audit storage."""

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("fincalendar.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Emit one event.

        Returns False only when an attached storage failed to take it.
        """
        emit = getattr(self._logger, _LEVELS[event.severity])
        emit("audit_event", **event.to_log_dict())

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_mutation(
        self,
        event_type: AuditEventType,
        entity_type: str,
        operation: str,
        result: MutationResult,
    ) -> None:
        """Log a mutation that was applied and saved."""
        self.log(AuditEventBuilder.mutation(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=result.record_id,
            description=result.message,
            details={"operation": operation, **result.details},
        ))

    def log_rejection(
        self,
        operation: str,
        failure: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a rejected mutation."""
        self.log(AuditEventBuilder.operation_rejected(
            operation=operation,
            failure=failure,
            message=message,
            details=details,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        ))
