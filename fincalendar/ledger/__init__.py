"""Ledger engine: store, derivations and the mutation service."""

from fincalendar.ledger import derivations
from fincalendar.ledger.errors import (
    InvariantViolation,
    LedgerError,
    LedgerValidationError,
    OverAllocationWarning,
    RecordNotFound,
    StorageCorruption,
)
from fincalendar.ledger.store import LedgerStore, parse_document
from fincalendar.ledger.service import LedgerService

__all__ = [
    "derivations",
    "InvariantViolation",
    "LedgerError",
    "LedgerService",
    "LedgerStore",
    "LedgerValidationError",
    "OverAllocationWarning",
    "RecordNotFound",
    "StorageCorruption",
    "parse_document",
]
