"""
Calendar Projections

Read-only views of a month's records as calendar events, for an external
calendar sync layer.

DESIGN DECISION: The ledger never reads calendar state.
Every projected event carries a stable ``FC:<KIND>:<record id>`` tag in its
notes. A sync layer removes every event whose notes carry the ``FC:``
prefix inside the month window, then writes the projections again. The
ledger stays the only source of truth.
"""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from fincalendar.ledger import derivations
from fincalendar.models.ledger import (
    Allocation,
    AllocationDirection,
    CalendarTimes,
    LedgerDocument,
    Obligation,
    ObligationStatus,
    Transaction,
    TransactionType,
)
from fincalendar.utils import DateLike, days_of_month, format_money, month_key


TAG_PREFIX = "FC:"

DEFAULT_HOUR = 9
DEFAULT_DURATION = 30


class ProjectionKind(str, Enum):
    TRANSACTION = "TX"
    ALLOCATION = "AL"
    OBLIGATION = "OBL"


class CalendarEventProjection(BaseModel):
    """One event the sync layer should write."""

    tag: str = Field(..., description="Stable key, e.g. FC:TX:<id>")
    kind: ProjectionKind
    record_id: str
    title: str
    notes: str
    start: datetime
    end: datetime


def make_tag(kind: ProjectionKind, record_id: str) -> str:
    return f"{TAG_PREFIX}{kind.value}:{record_id}"


def is_managed_event(notes: Optional[str]) -> bool:
    """True for events previously written from a projection."""
    return bool(notes) and TAG_PREFIX in notes


def month_window(month: DateLike) -> tuple[datetime, datetime]:
    """[first day 00:00, first day of next month 00:00)."""
    days = days_of_month(month_key(month))
    start = datetime.combine(days[0], time())
    return start, datetime.combine(days[-1] + timedelta(days=1), time())


def event_window(day: date, hour: Optional[int], duration_minutes: Optional[int]) -> tuple[datetime, datetime]:
    """Start at ``hour`` (clamped to 0-23), lasting 5 to 240 minutes."""
    h = max(0, min(23, hour if hour is not None else DEFAULT_HOUR))
    minutes = max(5, min(240, duration_minutes or DEFAULT_DURATION))
    start = datetime.combine(day, time(hour=h))
    return start, start + timedelta(minutes=minutes)


# =============================================================================
# PER-RECORD PROJECTIONS
# =============================================================================

def _transaction_event(tx: Transaction, times: CalendarTimes) -> CalendarEventProjection:
    default_hour = times.payment_hour if tx.is_payment else times.transaction_hour
    start, end = event_window(
        tx.date,
        tx.event_hour if tx.event_hour is not None else default_hour,
        times.duration_minutes,
    )
    icon = "💰" if tx.type == TransactionType.INCOME else "💸"
    return CalendarEventProjection(
        tag=make_tag(ProjectionKind.TRANSACTION, tx.id),
        kind=ProjectionKind.TRANSACTION,
        record_id=tx.id,
        title=f"{icon} {tx.name} ({format_money(tx.signed_amount)})",
        notes="\n".join([
            make_tag(ProjectionKind.TRANSACTION, tx.id),
            f"Tipo:{tx.type.value}",
            f"Monto:{tx.amount}",
            f"Fecha:{tx.date.isoformat()}",
        ]),
        start=start,
        end=end,
    )


def _allocation_label(doc: LedgerDocument, allocation: Allocation) -> str:
    if allocation.direction == AllocationDirection.TO_FUND:
        fund = doc.get_fund(allocation.to_fund_id)
        return f"Fondo: {fund.name if fund else '?'}"
    if allocation.direction == AllocationDirection.TO_OBLIGATION:
        obligation = doc.get_obligation(allocation.to_obligation_id)
        return f"Obligación: {obligation.name if obligation else '?'}"
    fund = doc.get_fund(allocation.to_fund_id)
    return f"Liberado de: {fund.name}" if fund else "Liberación"


def _allocation_event(doc: LedgerDocument, allocation: Allocation, times: CalendarTimes) -> CalendarEventProjection:
    start, end = event_window(
        allocation.date,
        allocation.event_hour if allocation.event_hour is not None else times.allocation_hour,
        times.duration_minutes,
    )
    label = _allocation_label(doc, allocation)
    signed = -allocation.amount if allocation.direction.is_outflow else allocation.amount
    return CalendarEventProjection(
        tag=make_tag(ProjectionKind.ALLOCATION, allocation.id),
        kind=ProjectionKind.ALLOCATION,
        record_id=allocation.id,
        title=f"🧷 Apartado {label} ({format_money(signed)})",
        notes="\n".join([
            make_tag(ProjectionKind.ALLOCATION, allocation.id),
            f"Monto:{allocation.amount}",
            f"Fecha:{allocation.date.isoformat()}",
            label,
        ]),
        start=start,
        end=end,
    )


def _obligation_event(doc: LedgerDocument, obligation: Obligation, times: CalendarTimes) -> CalendarEventProjection:
    start, end = event_window(
        obligation.due_date,
        obligation.event_hour if obligation.event_hour is not None else times.obligation_hour,
        times.duration_minutes,
    )
    coverage = derivations.obligation_coverage(doc, obligation.id)
    level = derivations.coverage_level(doc, obligation)
    icon = "✅" if obligation.status == ObligationStatus.PAID else "🧾"
    return CalendarEventProjection(
        tag=make_tag(ProjectionKind.OBLIGATION, obligation.id),
        kind=ProjectionKind.OBLIGATION,
        record_id=obligation.id,
        title=f"{icon} {obligation.name} ({format_money(-obligation.amount)}) {level.icon}",
        notes="\n".join([
            make_tag(ProjectionKind.OBLIGATION, obligation.id),
            f"Estado:{obligation.status.value}",
            f"Cubierto:{coverage.covered}",
            f"Faltante:{coverage.remaining}",
            f"Fecha:{obligation.due_date.isoformat()}",
        ]),
        start=start,
        end=end,
    )


# =============================================================================
# MONTH
# =============================================================================

def month_projections(doc: LedgerDocument, month: DateLike) -> list[CalendarEventProjection]:
    """
    Every event for a month: transactions, then allocations, then
    obligations due in the month. Record order within a kind is kept.
    """
    key = month_key(month)
    times = doc.settings.calendar_times

    events = [
        _transaction_event(tx, times)
        for tx in doc.transactions
        if tx.date.isoformat().startswith(key)
    ]
    events.extend(
        _allocation_event(doc, allocation, times)
        for allocation in doc.allocations
        if allocation.date.isoformat().startswith(key)
    )
    events.extend(
        _obligation_event(doc, obligation, times)
        for obligation in doc.obligations
        if obligation.due_date.isoformat().startswith(key)
    )
    return events
