"""
Ledger Exceptions

Every domain failure has a typed exception carrying a FailureKind code, so
callers branch on the type or the code, never on the message text.

    LedgerError
    +-- LedgerValidationError   bad or missing input
    +-- InvariantViolation      would break a data-model invariant
    +-- RecordNotFound          referenced id does not exist
    +-- OverAllocationWarning   soft: needs explicit confirmation

    StorageCorruption           persisted bytes are unreadable

LedgerService converts the first four into a failed MutationResult at its
public boundary. StorageCorruption never leaves LedgerStore.load().
"""

from typing import Any, Optional

from fincalendar.models.results import FailureKind


class LedgerError(Exception):
    """Base exception for ledger operations."""

    kind: FailureKind

    def __init__(
        self,
        message: str,
        kind: Optional[FailureKind] = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.details = details


class LedgerValidationError(LedgerError):
    """Bad or missing user input. Recoverable; nothing was changed."""
    kind = FailureKind.INVALID_AMOUNT


class InvariantViolation(LedgerError):
    """The operation would break a data-model invariant."""
    kind = FailureKind.NEGATIVE_BALANCE_REJECTED


class RecordNotFound(LedgerError):
    """A referenced record id does not exist."""
    kind = FailureKind.NOT_FOUND

    def __init__(self, entity_type: str, record_id: Optional[str]):
        super().__init__(
            f"{entity_type.capitalize()} not found: {record_id}",
            entity_type=entity_type,
            record_id=record_id,
        )


class OverAllocationWarning(LedgerError):
    """Allocation exceeds the available balance; allowed once confirmed."""
    kind = FailureKind.OVER_ALLOCATION


class StorageCorruption(Exception):
    """The persisted document could not be parsed."""

    def __init__(self, message: str, raw: bytes):
        super().__init__(message)
        self.raw = raw
