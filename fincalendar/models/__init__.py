"""
Data Models Package

This package contains all Pydantic models used in FinCalendar.
All data flowing through the ledger must conform to these schemas.
"""

from fincalendar.models.ledger import (
    Allocation,
    AllocationDirection,
    CalendarTimes,
    Fund,
    FundAdjustment,
    LedgerDocument,
    DocumentSettings,
    Obligation,
    ObligationStatus,
    PaymentPolicy,
    Transaction,
    TransactionType,
    default_document,
)
from fincalendar.models.results import (
    CategoryTotal,
    Coverage,
    CoverageLevel,
    DailyActivity,
    DayBalance,
    FailureKind,
    MonthlyTotals,
    MonthSummary,
    MutationResult,
    SearchResult,
)
from fincalendar.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Allocation",
    "AllocationDirection",
    "CalendarTimes",
    "Fund",
    "FundAdjustment",
    "LedgerDocument",
    "DocumentSettings",
    "Obligation",
    "ObligationStatus",
    "PaymentPolicy",
    "Transaction",
    "TransactionType",
    "default_document",
    # Results
    "CategoryTotal",
    "Coverage",
    "CoverageLevel",
    "DailyActivity",
    "DayBalance",
    "FailureKind",
    "MonthlyTotals",
    "MonthSummary",
    "MutationResult",
    "SearchResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
