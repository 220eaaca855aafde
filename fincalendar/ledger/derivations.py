"""
Derivation Engine

Pure functions computing balances, coverage and summaries from the raw
record lists. Nothing here mutates the document.

DESIGN DECISION: Everything is recomputed from the records on every call.
Record volume is personal-finance small, and there is no cache to get out
of sync with the document. Callers only depend on these function
signatures, so a cached variant could replace them later.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fincalendar.models.ledger import (
    AllocationDirection,
    LedgerDocument,
    Obligation,
    ObligationStatus,
    TransactionType,
)
from fincalendar.models.results import (
    CategoryTotal,
    Coverage,
    CoverageLevel,
    DailyActivity,
    DayBalance,
    MonthlyTotals,
    MonthSummary,
    SearchResult,
)
from fincalendar.utils import DateLike, coerce_date, days_of_month, month_key


ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNCATEGORIZED = "Sin categoría"


def _in_month(day: date, key: str) -> bool:
    return day.isoformat().startswith(key)


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return part * HUNDRED / whole


# =============================================================================
# BALANCES AND COVERAGE
# =============================================================================

def available_balance(doc: LedgerDocument, as_of: Optional[DateLike] = None) -> Decimal:
    """
    Money not yet committed to any fund or obligation.

    startBalance + income - expense - outgoing allocations + releases,
    counting only records dated on or before ``as_of`` when it is given.
    """
    cutoff = coerce_date(as_of) if as_of is not None else None
    balance = doc.settings.start_balance

    for tx in doc.transactions:
        if cutoff and tx.date > cutoff:
            continue
        balance += tx.signed_amount

    for allocation in doc.allocations:
        if cutoff and allocation.date > cutoff:
            continue
        if allocation.direction.is_outflow:
            balance -= allocation.amount
        else:
            balance += allocation.amount

    return balance


def obligation_coverage(doc: LedgerDocument, obligation_id: str) -> Coverage:
    """
    How much of an obligation is matched by allocations.

    Payments do not count here; coverage tracks allocations only.
    An unknown obligation has zero coverage and nothing remaining.
    """
    obligation = doc.get_obligation(obligation_id)
    if obligation is None:
        return Coverage()

    covered = sum(
        (
            a.amount for a in doc.allocations
            if a.direction == AllocationDirection.TO_OBLIGATION
            and a.to_obligation_id == obligation_id
        ),
        ZERO,
    )
    return Coverage(covered=covered, remaining=max(ZERO, obligation.amount - covered))


def coverage_level(doc: LedgerDocument, obligation: Obligation) -> CoverageLevel:
    """Traffic-light state: paid, fully covered, partially covered, uncovered."""
    if obligation.status == ObligationStatus.PAID:
        return CoverageLevel.PAID
    coverage = obligation_coverage(doc, obligation.id)
    if coverage.remaining <= 0:
        return CoverageLevel.COVERED
    if coverage.covered > 0:
        return CoverageLevel.PARTIAL
    return CoverageLevel.UNCOVERED


def payments_for(doc: LedgerDocument, obligation_id: str) -> Decimal:
    """Total of the payment transactions linked to an obligation."""
    return sum(
        (t.amount for t in doc.transactions if t.is_payment and t.obligation_id == obligation_id),
        ZERO,
    )


# =============================================================================
# DAILY AND MONTHLY AGGREGATES
# =============================================================================

def daily_activity(doc: LedgerDocument, day: DateLike) -> DailyActivity:
    """Sums for one exact date."""
    target = coerce_date(day)
    activity = DailyActivity()

    for tx in doc.transactions:
        if tx.date != target:
            continue
        if tx.type == TransactionType.INCOME:
            activity.income += tx.amount
        else:
            activity.expense += tx.amount

    for allocation in doc.allocations:
        if allocation.date != target:
            continue
        if allocation.direction.is_outflow:
            activity.allocations_out += allocation.amount
        else:
            activity.allocations_in += allocation.amount

    return activity


def monthly_totals(doc: LedgerDocument, month: DateLike) -> MonthlyTotals:
    """
    Totals for every record whose date falls in ``month`` ("YYYY-MM").

    obligations_covered clamps each obligation at its face amount, so an
    over-allocated obligation never inflates the aggregate.
    """
    key = month_key(month)
    totals = MonthlyTotals()

    for tx in doc.transactions:
        if not _in_month(tx.date, key):
            continue
        if tx.type == TransactionType.INCOME:
            totals.income += tx.amount
        else:
            totals.expense += tx.amount

    for allocation in doc.allocations:
        if _in_month(allocation.date, key) and allocation.direction.is_outflow:
            totals.allocated += allocation.amount

    for obligation in doc.obligations:
        if not _in_month(obligation.due_date, key):
            continue
        totals.obligations_total += obligation.amount
        coverage = obligation_coverage(doc, obligation.id)
        totals.obligations_covered += min(obligation.amount, coverage.covered)
        if obligation.status == ObligationStatus.PAID:
            totals.obligations_paid += obligation.amount

    return totals


def month_summary(doc: LedgerDocument, month: DateLike) -> MonthSummary:
    key = month_key(month)
    totals = monthly_totals(doc, key)
    net = totals.income - totals.expense
    return MonthSummary(
        month_key=key,
        totals=totals,
        net=net,
        savings_rate=_percent(net, totals.income),
        coverage_rate=_percent(totals.obligations_covered, totals.obligations_total),
        paid_rate=_percent(totals.obligations_paid, totals.obligations_total),
    )


def expense_summary_by_category(doc: LedgerDocument, month: DateLike) -> list[CategoryTotal]:
    """Expenses of the month grouped by category, largest first."""
    key = month_key(month)
    by_category: dict[str, Decimal] = {}
    for tx in doc.transactions:
        if tx.type != TransactionType.EXPENSE or not _in_month(tx.date, key):
            continue
        category = tx.category or UNCATEGORIZED
        by_category[category] = by_category.get(category, ZERO) + tx.amount

    total = sum(by_category.values(), ZERO)
    rows = sorted(by_category.items(), key=lambda item: item[1], reverse=True)
    return [
        CategoryTotal(category=category, amount=amount, share=_percent(amount, total))
        for category, amount in rows
    ]


def daily_balances(
    doc: LedgerDocument,
    month: DateLike,
    include_days: Optional[set[date]] = None,
) -> list[DayBalance]:
    """
    Running available balance through a month.

    Returns the days with activity, plus any day in ``include_days``
    (typically today), each with the balance at the end of that day.
    """
    key = month_key(month)
    extra_days = include_days or set()
    result = []
    for day in days_of_month(key):
        activity = daily_activity(doc, day)
        if not activity.has_activity and day not in extra_days:
            continue
        result.append(DayBalance(day=day, activity=activity, available=available_balance(doc, day)))
    return result


def search(doc: LedgerDocument, text: str) -> SearchResult:
    """Case-insensitive substring search over transactions and obligations."""
    needle = text.strip().lower()
    if not needle:
        return SearchResult(query=text)

    transactions = [
        t for t in doc.transactions
        if needle in t.name.lower() or needle in t.category.lower() or needle in t.note.lower()
    ]
    obligations = [
        o for o in doc.obligations
        if needle in o.name.lower() or needle in o.note.lower()
    ]
    return SearchResult(query=text, transactions=transactions, obligations=obligations)


def obligations_in_month(doc: LedgerDocument, month: DateLike) -> list[Obligation]:
    """Obligations due in the month, earliest first."""
    key = month_key(month)
    return sorted(
        (o for o in doc.obligations if _in_month(o.due_date, key)),
        key=lambda o: o.due_date,
    )
