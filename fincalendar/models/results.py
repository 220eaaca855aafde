"""
Result Models

Read-only outputs of the derivation engine and the outcome of every
mutation. None of these are persisted.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from fincalendar.models.ledger import Obligation, Transaction


ZERO = Decimal("0")


class FailureKind(str, Enum):
    """Machine-readable reason a mutation was rejected."""
    INVALID_AMOUNT = "invalid_amount"
    INVALID_NAME = "invalid_name"
    DUPLICATE_NAME = "duplicate_name"
    INVALID_HOUR = "invalid_hour"
    INVALID_DURATION = "invalid_duration"
    INVALID_TARGET = "invalid_target"
    INVALID_ADJUSTMENT = "invalid_adjustment"
    INVALID_STATUS = "invalid_status"
    INVALID_DATE = "invalid_date"
    INVALID_TYPE = "invalid_type"
    INSUFFICIENT_FUND_BALANCE = "insufficient_fund_balance"
    NEGATIVE_BALANCE_REJECTED = "negative_balance_rejected"
    NON_ZERO_BALANCE = "non_zero_balance"
    FUND_IN_USE = "fund_in_use"
    NOT_FOUND = "not_found"
    OVER_ALLOCATION = "over_allocation"


class CoverageLevel(str, Enum):
    """Traffic-light state of an obligation."""
    PAID = "paid"
    COVERED = "covered"
    PARTIAL = "partial"
    UNCOVERED = "uncovered"

    @property
    def icon(self) -> str:
        return _COVERAGE_ICONS[self]


_COVERAGE_ICONS = {
    CoverageLevel.PAID: "✅",
    CoverageLevel.COVERED: "🟢",
    CoverageLevel.PARTIAL: "🟡",
    CoverageLevel.UNCOVERED: "🔴",
}


# =============================================================================
# DERIVATIONS
# =============================================================================

class Coverage(BaseModel):
    covered: Decimal = ZERO
    remaining: Decimal = ZERO


class DailyActivity(BaseModel):
    income: Decimal = ZERO
    expense: Decimal = ZERO
    allocations_out: Decimal = ZERO
    allocations_in: Decimal = ZERO

    @property
    def has_activity(self) -> bool:
        return any((self.income, self.expense, self.allocations_out, self.allocations_in))

    @property
    def net(self) -> Decimal:
        return self.income - self.expense - self.allocations_out + self.allocations_in


class MonthlyTotals(BaseModel):
    income: Decimal = ZERO
    expense: Decimal = ZERO
    allocated: Decimal = ZERO
    obligations_total: Decimal = ZERO
    obligations_covered: Decimal = ZERO
    obligations_paid: Decimal = ZERO


class MonthSummary(BaseModel):
    """Monthly totals plus the ratios shown in the month summary."""

    month_key: str
    totals: MonthlyTotals
    net: Decimal
    savings_rate: Decimal = Field(description="Net as a percentage of income")
    coverage_rate: Decimal = Field(description="Covered obligations as a percentage of their total")
    paid_rate: Decimal = Field(description="Paid obligations as a percentage of their total")


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal
    share: Decimal = Field(description="Percentage of the month's expenses")


class DayBalance(BaseModel):
    day: date
    activity: DailyActivity
    available: Decimal


class SearchResult(BaseModel):
    query: str
    transactions: list[Transaction] = Field(default_factory=list)
    obligations: list[Obligation] = Field(default_factory=list)

    @property
    def total_matches(self) -> int:
        return len(self.transactions) + len(self.obligations)


# =============================================================================
# MUTATIONS
# =============================================================================

class MutationResult(BaseModel):
    """
    Outcome of one mutation.

    A failed result guarantees nothing in the document changed.
    ``requires_confirmation`` marks the soft over-allocation warning:
    the caller may repeat the call with confirmation.
    """

    operation: str
    success: bool
    record_id: Optional[str] = None
    failure: Optional[FailureKind] = None
    message: str = ""
    requires_confirmation: bool = False
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, operation: str, record_id: Optional[str], message: str, **details: Any) -> "MutationResult":
        return cls(
            operation=operation,
            success=True,
            record_id=record_id,
            message=message,
            details=details,
        )
