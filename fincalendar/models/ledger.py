"""
Core Ledger Models for FinCalendar

These models define the strict schemas for the persisted ledger document.
They are designed to:
1. Enforce the record invariants (positive amounts, non-negative funds)
2. Be validated ONCE, at the normalization boundary
3. Serialize to the camelCase JSON document the store writes
4. Keep unknown fields from older or newer documents

DESIGN DECISION: Status, direction and transaction type are closed enums.
Anything outside them is repaired or dropped by the normalizer, never
compared as free text downstream.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from fincalendar.utils import MAX_TEXT, money_to_json


Money = Annotated[
    Decimal,
    PlainSerializer(money_to_json, return_type=Union[int, float], when_used="json"),
]

EventHour = Optional[Annotated[int, Field(ge=0, le=23)]]

PAYMENT_EVENT_TAG = "PAYMENT_EVENT"
PAYMENT_CATEGORY = "Pago"
INCOME_CATEGORY = "Ingreso"
EXPENSE_CATEGORY = "Importante"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ObligationStatus(str, Enum):
    """
    Payoff status of an obligation.

    CRITICAL: PAID is sticky. Allocation changes never demote it;
    only a manual status change can.
    """
    PENDING = "pending"
    COVERED = "covered"
    PAID = "paid"

    @classmethod
    def parse(cls, value: object) -> Optional["ObligationStatus"]:
        """Accept canonical values and the legacy Spanish ones."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        return _LEGACY_STATUS.get(key) or next(
            (status for status in cls if status.value == key), None
        )


_LEGACY_STATUS = {
    "pendiente": ObligationStatus.PENDING,
    "cubierta": ObligationStatus.COVERED,
    "pagada": ObligationStatus.PAID,
}


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class AllocationDirection(str, Enum):
    """
    Which way an allocation moves money.

    TO_FUND and TO_OBLIGATION take money out of the available balance;
    RELEASE puts it back.
    """
    TO_FUND = "toFund"
    TO_OBLIGATION = "toObligation"
    RELEASE = "release"

    @property
    def is_outflow(self) -> bool:
        return self in (AllocationDirection.TO_FUND, AllocationDirection.TO_OBLIGATION)


class PaymentPolicy(str, Enum):
    """
    How register_payment decides whether an obligation is now paid.

    LAST_PAYMENT only looks at the payment being registered (the historic
    rule). CUMULATIVE adds up every payment linked to the obligation.
    """
    LAST_PAYMENT = "last_payment"
    CUMULATIVE = "cumulative"


# =============================================================================
# BASE
# =============================================================================

class LedgerModel(BaseModel):
    """
    Base for every persisted record.

    Python names are snake_case, the document is camelCase, and unknown
    keys survive a load/save cycle.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        str_strip_whitespace=True,
    )


# =============================================================================
# SETTINGS
# =============================================================================

class CalendarTimes(LedgerModel):
    """Default event hour per record kind, plus event duration."""

    obligation_hour: int = Field(default=8, ge=0, le=23)
    transaction_hour: int = Field(default=9, ge=0, le=23)
    allocation_hour: int = Field(default=10, ge=0, le=23)
    payment_hour: int = Field(default=11, ge=0, le=23)
    duration_minutes: int = Field(default=30, ge=5, le=240)


class DocumentSettings(LedgerModel):
    currency: str = Field(default="MXN", min_length=1)
    start_balance: Money = Field(
        default=Decimal("0"),
        description="Balance at the epoch of the ledger (may be negative)",
    )
    calendar_times: CalendarTimes = Field(default_factory=CalendarTimes)


# =============================================================================
# RECORDS
# =============================================================================

class Fund(LedgerModel):
    """
    A savings envelope.

    The balance field is the source of truth; it is never negative.
    """
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=MAX_TEXT)
    balance: Money = Field(default=Decimal("0"), ge=0)


class Obligation(LedgerModel):
    """A bill or debt due on a date."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., max_length=MAX_TEXT)
    due_date: date
    amount: Money = Field(..., gt=0)
    status: ObligationStatus = ObligationStatus.PENDING
    note: str = ""
    event_hour: EventHour = None


class Transaction(LedgerModel):
    """
    Income or expense.

    The amount is always positive; the sign comes from ``type``.
    Payments registered against an obligation carry ``obligation_id``
    (and ``fund_id`` when they drew from a fund).
    """
    id: str = Field(..., min_length=1)
    date: date
    type: TransactionType
    name: str = Field(..., max_length=MAX_TEXT)
    amount: Money = Field(..., gt=0)
    category: str = ""
    note: str = ""
    event_hour: EventHour = None
    obligation_id: Optional[str] = None
    fund_id: Optional[str] = None

    @property
    def is_payment(self) -> bool:
        return self.note == PAYMENT_EVENT_TAG

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class Allocation(LedgerModel):
    """Money earmarked for a fund or obligation, or released back."""

    id: str = Field(..., min_length=1)
    date: date
    amount: Money = Field(..., gt=0)
    direction: AllocationDirection
    to_fund_id: Optional[str] = None
    to_obligation_id: Optional[str] = None
    note: str = ""
    event_hour: EventHour = None

    @model_validator(mode="after")
    def validate_target(self) -> "Allocation":
        """Exactly the target matching the direction is set."""
        if self.direction == AllocationDirection.TO_FUND:
            if not self.to_fund_id or self.to_obligation_id:
                raise ValueError("toFund allocation must reference a fund only")
        elif self.direction == AllocationDirection.TO_OBLIGATION:
            if not self.to_obligation_id or self.to_fund_id:
                raise ValueError("toObligation allocation must reference an obligation only")
        elif self.to_obligation_id:
            raise ValueError("release allocation cannot reference an obligation")
        return self


class FundAdjustment(LedgerModel):
    """Audit-log entry for a manual fund correction. Never replayed."""

    id: str = Field(..., min_length=1)
    date: date
    fund_id: str = Field(..., min_length=1)
    amount: Money
    reason: str = ""

    @model_validator(mode="after")
    def validate_amount(self) -> "FundAdjustment":
        if self.amount == 0:
            raise ValueError("Adjustment amount cannot be zero")
        return self


# =============================================================================
# DOCUMENT
# =============================================================================

def default_funds() -> list[Fund]:
    return [
        Fund(id="f_ahorro", name="Ahorro"),
        Fund(id="f_tarjetas", name="Tarjetas"),
        Fund(id="f_varios", name="Gastos varios"),
    ]


class LedgerDocument(LedgerModel):
    """
    The whole persisted document.

    One of these is owned by the LedgerStore for a load/mutate/save cycle.
    """
    settings: DocumentSettings = Field(default_factory=DocumentSettings)
    funds: list[Fund] = Field(default_factory=default_funds)
    obligations: list[Obligation] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    allocations: list[Allocation] = Field(default_factory=list)
    fund_adjustments: list[FundAdjustment] = Field(default_factory=list)

    def get_fund(self, fund_id: Optional[str]) -> Optional[Fund]:
        return next((f for f in self.funds if f.id == fund_id), None)

    def get_obligation(self, obligation_id: Optional[str]) -> Optional[Obligation]:
        return next((o for o in self.obligations if o.id == obligation_id), None)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def get_allocation(self, allocation_id: str) -> Optional[Allocation]:
        return next((a for a in self.allocations if a.id == allocation_id), None)

    def find_fund_by_name(self, name: str) -> Optional[Fund]:
        """Case-insensitive lookup; fund names are unique that way."""
        needle = name.strip().lower()
        return next((f for f in self.funds if f.name.lower() == needle), None)


def default_document() -> LedgerDocument:
    return LedgerDocument()
