"""
Mutation Engine

Every change to the ledger goes through LedgerService. Each public method:
1. Validates all of its input and preconditions
2. Only then touches the document
3. Audits and saves the whole document before returning

DESIGN DECISION: Validation and mutation are strictly separated.
Each operation's nested ``step`` raises a LedgerError before the first
write, or runs to completion. A failed operation is therefore a no-op and
comes back as a MutationResult naming the reason, never as an exception.

CRITICAL: An obligation marked paid is never auto-demoted. Allocation
changes only move it between pending and covered.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional, Union

import structlog

from fincalendar.audit import AuditLogger
from fincalendar.config import LedgerSettings, get_settings
from fincalendar.ledger import derivations
from fincalendar.ledger.errors import (
    InvariantViolation,
    LedgerError,
    LedgerValidationError,
    OverAllocationWarning,
    RecordNotFound,
)
from fincalendar.ledger.store import LedgerStore
from fincalendar.models.audit import AuditEventType
from fincalendar.models.ledger import (
    EXPENSE_CATEGORY,
    INCOME_CATEGORY,
    PAYMENT_CATEGORY,
    PAYMENT_EVENT_TAG,
    Allocation,
    AllocationDirection,
    CalendarTimes,
    Fund,
    FundAdjustment,
    LedgerDocument,
    Obligation,
    ObligationStatus,
    PaymentPolicy,
    Transaction,
    TransactionType,
)
from fincalendar.models.results import FailureKind, MutationResult
from fincalendar.utils import (
    clamp_text,
    format_money,
    new_id,
    parse_iso_date,
    to_decimal,
    to_positive_amount,
    today,
)


logger = structlog.get_logger(__name__)

Step = Callable[[LedgerDocument], MutationResult]


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def _amount(value: Any, what: str = "Amount") -> Decimal:
    amount = to_positive_amount(value)
    if amount is None:
        raise LedgerValidationError(f"{what} must be greater than 0", FailureKind.INVALID_AMOUNT, value=str(value))
    return amount


def _name(value: Any, what: str = "Name") -> str:
    name = clamp_text(value)
    if not name:
        raise LedgerValidationError(f"{what} cannot be empty", FailureKind.INVALID_NAME)
    return name


def _date(value: Any) -> date:
    if value is None:
        return today()
    parsed = parse_iso_date(value)
    if parsed is None:
        raise LedgerValidationError(f"Date must be YYYY-MM-DD: {value!r}", FailureKind.INVALID_DATE)
    return parsed


def _bounded_int(value: Any, low: int, high: int) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or not low <= value <= high:
        return None
    return value


def _hour(value: Any, default: int) -> int:
    if value is None:
        return default
    hour = _bounded_int(value, 0, 23)
    if hour is None:
        raise LedgerValidationError(f"Hour must be an integer from 0 to 23: {value!r}", FailureKind.INVALID_HOUR)
    return hour


def _duration(value: Any) -> int:
    minutes = _bounded_int(value, 5, 240)
    if minutes is None:
        raise LedgerValidationError(
            f"Duration must be an integer from 5 to 240 minutes: {value!r}",
            FailureKind.INVALID_DURATION,
        )
    return minutes


def _transaction_type(value: Union[TransactionType, str]) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise LedgerValidationError(f"Unknown transaction type: {value!r}", FailureKind.INVALID_TYPE)


def _status(value: Union[ObligationStatus, str]) -> ObligationStatus:
    status = ObligationStatus.parse(value)
    if status is None:
        raise LedgerValidationError(f"Unknown obligation status: {value!r}", FailureKind.INVALID_STATUS)
    return status


def _require_fund(doc: LedgerDocument, fund_id: Optional[str]) -> Fund:
    fund = doc.get_fund(fund_id)
    if fund is None:
        raise RecordNotFound("fund", fund_id)
    return fund


def _require_obligation(doc: LedgerDocument, obligation_id: Optional[str]) -> Obligation:
    obligation = doc.get_obligation(obligation_id)
    if obligation is None:
        raise RecordNotFound("obligation", obligation_id)
    return obligation


def _reconcile_status(doc: LedgerDocument, obligation: Obligation) -> None:
    """pending/covered from current coverage; paid stays paid."""
    if obligation.status == ObligationStatus.PAID:
        return
    coverage = derivations.obligation_coverage(doc, obligation.id)
    obligation.status = ObligationStatus.COVERED if coverage.remaining <= 0 else ObligationStatus.PENDING


# =============================================================================
# SERVICE
# =============================================================================

class LedgerService:
    """
    Validated mutations against one LedgerStore.

    Usage:
        service = LedgerService(LedgerStore(InMemoryStorage()))
        result = service.add_transaction("income", "Nómina", 1000, date="2024-01-05")
        if not result.success:
            print(result.failure, result.message)
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def document(self) -> LedgerDocument:
        return self._store.document

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def calendar_times(self) -> CalendarTimes:
        return self.document.settings.calendar_times

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        event_type: AuditEventType,
        entity_type: str,
        step: Step,
    ) -> MutationResult:
        """
        Run one validated step on a copy, persist it, then audit.

        The copy replaces the store's document only after a successful
        write. Storage errors from the save propagate; domain errors do not.
        """
        working = self._store.document.model_copy(deep=True)
        try:
            result = step(working)
        except LedgerError as e:
            return self._reject(operation, e)

        self._store.save(working)
        logger.info("ledger_mutation", operation=operation, record_id=result.record_id)
        if self._audit_logger:
            self._audit_logger.log_mutation(event_type, entity_type, operation, result)
        return result

    def _reject(self, operation: str, error: LedgerError) -> MutationResult:
        logger.info(
            "ledger_mutation_rejected",
            operation=operation,
            failure=error.kind.value,
            reason=error.message,
        )
        if self._audit_logger:
            self._audit_logger.log_rejection(
                operation=operation,
                failure=error.kind.value,
                message=error.message,
                details={k: str(v) for k, v in error.details.items()},
            )
        return MutationResult(
            operation=operation,
            success=False,
            failure=error.kind,
            message=error.message,
            requires_confirmation=isinstance(error, OverAllocationWarning),
            details=error.details,
        )

    # -------------------------------------------------------------------------
    # Additions
    # -------------------------------------------------------------------------

    def add_transaction(
        self,
        kind: Union[TransactionType, str],
        name: Any,
        amount: Any,
        date: Any = None,
        category: Optional[str] = None,
        note: str = "",
        event_hour: Any = None,
    ) -> MutationResult:
        """
        Record income or expense.

        Category defaults to "Ingreso" for income and "Importante" for
        expense; the event hour defaults to the document's transaction hour.
        """
        def step(doc: LedgerDocument) -> MutationResult:
            tx_type = _transaction_type(kind)
            tx_amount = _amount(amount)
            tx_name = _name(name)
            tx_date = _date(date)
            hour = _hour(event_hour, doc.settings.calendar_times.transaction_hour)
            default_category = INCOME_CATEGORY if tx_type == TransactionType.INCOME else EXPENSE_CATEGORY

            tx = Transaction(
                id=new_id("tx"),
                date=tx_date,
                type=tx_type,
                name=tx_name,
                amount=tx_amount,
                category=clamp_text(category) or default_category,
                note=clamp_text(note),
                event_hour=hour,
            )
            doc.transactions.append(tx)
            label = "Income" if tx_type == TransactionType.INCOME else "Expense"
            return MutationResult.ok(
                "add_transaction",
                tx.id,
                f"{label} added: {tx.name} {format_money(tx.signed_amount)}",
                amount=tx.amount,
                date=tx.date.isoformat(),
            )

        return self._execute("add_transaction", AuditEventType.TRANSACTION_ADDED, "transaction", step)

    def add_fund(self, name: Any) -> MutationResult:
        """Create an empty fund. Names are unique ignoring case."""
        def step(doc: LedgerDocument) -> MutationResult:
            fund_name = _name(name, "Fund name")
            if doc.find_fund_by_name(fund_name):
                raise LedgerValidationError(
                    f"A fund named '{fund_name}' already exists",
                    FailureKind.DUPLICATE_NAME,
                    name=fund_name,
                )
            fund = Fund(id=new_id("f"), name=fund_name, balance=Decimal("0"))
            doc.funds.append(fund)
            return MutationResult.ok("add_fund", fund.id, f"Fund created: {fund.name}")

        return self._execute("add_fund", AuditEventType.FUND_ADDED, "fund", step)

    def add_obligation(
        self,
        name: Any,
        amount: Any,
        due_date: Any,
        note: str = "",
        event_hour: Any = None,
    ) -> MutationResult:
        def step(doc: LedgerDocument) -> MutationResult:
            obl_amount = _amount(amount)
            obl_name = _name(name)
            obl_date = _date(due_date)
            hour = _hour(event_hour, doc.settings.calendar_times.obligation_hour)

            obligation = Obligation(
                id=new_id("obl"),
                name=obl_name,
                due_date=obl_date,
                amount=obl_amount,
                status=ObligationStatus.PENDING,
                note=clamp_text(note),
                event_hour=hour,
            )
            doc.obligations.append(obligation)
            return MutationResult.ok(
                "add_obligation",
                obligation.id,
                f"Obligation created: {obligation.name} ({format_money(-obl_amount)}) due {obl_date.isoformat()}",
            )

        return self._execute("add_obligation", AuditEventType.OBLIGATION_ADDED, "obligation", step)

    # -------------------------------------------------------------------------
    # Money movement
    # -------------------------------------------------------------------------

    def allocate_money(
        self,
        amount: Any,
        fund_id: Optional[str] = None,
        obligation_id: Optional[str] = None,
        date: Any = None,
        note: str = "",
        event_hour: Any = None,
        confirm_over_allocation: bool = False,
    ) -> MutationResult:
        """
        Earmark available money for exactly one fund or obligation.

        Allocating more than the available balance as of the allocation
        date is allowed, but only with ``confirm_over_allocation=True``.
        Without it the result has ``requires_confirmation`` set and nothing
        changes.
        """
        def step(doc: LedgerDocument) -> MutationResult:
            alloc_amount = _amount(amount)
            if bool(fund_id) == bool(obligation_id):
                raise LedgerValidationError(
                    "Allocation needs exactly one target: a fund or an obligation",
                    FailureKind.INVALID_TARGET,
                )
            fund = _require_fund(doc, fund_id) if fund_id else None
            obligation = _require_obligation(doc, obligation_id) if obligation_id else None
            alloc_date = _date(date)
            hour = _hour(event_hour, doc.settings.calendar_times.allocation_hour)

            available = derivations.available_balance(doc, alloc_date)
            if alloc_amount > available and not confirm_over_allocation:
                raise OverAllocationWarning(
                    f"Allocation of {format_money(alloc_amount)} exceeds the available "
                    f"balance of {format_money(available)} on {alloc_date.isoformat()}",
                    available=available,
                    amount=alloc_amount,
                )

            allocation = Allocation(
                id=new_id("al"),
                date=alloc_date,
                amount=alloc_amount,
                direction=AllocationDirection.TO_FUND if fund else AllocationDirection.TO_OBLIGATION,
                to_fund_id=fund.id if fund else None,
                to_obligation_id=obligation.id if obligation else None,
                note=clamp_text(note),
                event_hour=hour,
            )
            doc.allocations.append(allocation)

            if fund:
                fund.balance += alloc_amount
                return MutationResult.ok(
                    "allocate_money",
                    allocation.id,
                    f"Allocated to fund {fund.name}: +{format_money(alloc_amount)}",
                    fund_id=fund.id,
                    balance=fund.balance,
                )

            _reconcile_status(doc, obligation)
            coverage = derivations.obligation_coverage(doc, obligation.id)
            return MutationResult.ok(
                "allocate_money",
                allocation.id,
                f"Allocated to obligation {obligation.name}: +{format_money(alloc_amount)}",
                obligation_id=obligation.id,
                status=obligation.status.value,
                remaining=coverage.remaining,
            )

        return self._execute("allocate_money", AuditEventType.MONEY_ALLOCATED, "allocation", step)

    def release_money(
        self,
        fund_id: str,
        amount: Any,
        date: Any = None,
        note: str = "",
        event_hour: Any = None,
    ) -> MutationResult:
        """Move money out of a fund back into the available balance."""
        def step(doc: LedgerDocument) -> MutationResult:
            release_amount = _amount(amount)
            fund = _require_fund(doc, fund_id)
            release_date = _date(date)
            hour = _hour(event_hour, doc.settings.calendar_times.allocation_hour)
            if fund.balance < release_amount:
                raise InvariantViolation(
                    f"Fund '{fund.name}' only holds {format_money(fund.balance)}",
                    FailureKind.INSUFFICIENT_FUND_BALANCE,
                    fund_id=fund.id,
                )

            allocation = Allocation(
                id=new_id("al"),
                date=release_date,
                amount=release_amount,
                direction=AllocationDirection.RELEASE,
                to_fund_id=fund.id,
                note=clamp_text(note),
                event_hour=hour,
            )
            fund.balance -= release_amount
            doc.allocations.append(allocation)
            return MutationResult.ok(
                "release_money",
                allocation.id,
                f"Released from fund {fund.name}: {format_money(release_amount)}",
                fund_id=fund.id,
                balance=fund.balance,
            )

        return self._execute("release_money", AuditEventType.MONEY_RELEASED, "allocation", step)

    def _is_settled(self, doc: LedgerDocument, obligation: Obligation, paid: Decimal, remaining_before: Decimal) -> bool:
        if self._settings.payment_policy == PaymentPolicy.CUMULATIVE:
            return derivations.payments_for(doc, obligation.id) + paid >= remaining_before
        return paid >= obligation.amount or remaining_before - paid <= 0

    def register_payment(
        self,
        obligation_id: str,
        amount: Any,
        fund_id: Optional[str] = None,
        date: Any = None,
        event_hour: Any = None,
    ) -> MutationResult:
        """
        Record a payment against an obligation.

        Appends a tagged expense transaction and, when ``fund_id`` is given,
        draws the amount from that fund. Whether the obligation becomes paid
        depends on the configured payment policy; a paid obligation stays
        paid. Payments never create allocations, so coverage is unchanged.
        """
        def step(doc: LedgerDocument) -> MutationResult:
            paid = _amount(amount, "Paid amount")
            obligation = _require_obligation(doc, obligation_id)
            fund = _require_fund(doc, fund_id) if fund_id else None
            pay_date = _date(date)
            hour = _hour(event_hour, doc.settings.calendar_times.payment_hour)
            if fund and fund.balance < paid:
                raise InvariantViolation(
                    f"Fund '{fund.name}' does not have enough balance "
                    f"({format_money(fund.balance)} < {format_money(paid)})",
                    FailureKind.INSUFFICIENT_FUND_BALANCE,
                    fund_id=fund.id,
                )

            remaining_before = derivations.obligation_coverage(doc, obligation.id).remaining
            settled = self._is_settled(doc, obligation, paid, remaining_before)

            tx = Transaction(
                id=new_id("tx"),
                date=pay_date,
                type=TransactionType.EXPENSE,
                name=clamp_text(f"Pago: {obligation.name}"),
                amount=paid,
                category=PAYMENT_CATEGORY,
                note=PAYMENT_EVENT_TAG,
                event_hour=hour,
                obligation_id=obligation.id,
                fund_id=fund.id if fund else None,
            )
            if fund:
                fund.balance -= paid
            doc.transactions.append(tx)
            if obligation.status != ObligationStatus.PAID:
                obligation.status = ObligationStatus.PAID if settled else ObligationStatus.PENDING

            return MutationResult.ok(
                "register_payment",
                tx.id,
                f"Payment registered: {obligation.name} ({format_money(-paid)})",
                obligation_id=obligation.id,
                status=obligation.status.value,
                policy=self._settings.payment_policy.value,
            )

        return self._execute("register_payment", AuditEventType.PAYMENT_REGISTERED, "transaction", step)

    def adjust_fund_balance(
        self,
        fund_id: str,
        delta: Any,
        reason: Any,
        date: Any = None,
    ) -> MutationResult:
        """Manual correction of a fund balance, logged as a FundAdjustment."""
        def step(doc: LedgerDocument) -> MutationResult:
            fund = _require_fund(doc, fund_id)
            change = to_decimal(delta)
            if change is None or change == 0:
                raise LedgerValidationError(
                    "Adjustment must be a non-zero number",
                    FailureKind.INVALID_ADJUSTMENT,
                    value=str(delta),
                )
            if fund.balance + change < 0:
                raise InvariantViolation(
                    f"Adjustment would leave fund '{fund.name}' negative",
                    FailureKind.NEGATIVE_BALANCE_REJECTED,
                    fund_id=fund.id,
                    balance=fund.balance,
                )
            why = clamp_text(reason)
            if not why:
                raise LedgerValidationError("Adjustment reason cannot be empty", FailureKind.INVALID_ADJUSTMENT)
            adj_date = _date(date)

            adjustment = FundAdjustment(
                id=new_id("fadj"),
                date=adj_date,
                fund_id=fund.id,
                amount=change,
                reason=why,
            )
            fund.balance += change
            doc.fund_adjustments.append(adjustment)
            return MutationResult.ok(
                "adjust_fund_balance",
                adjustment.id,
                f"Adjustment applied: {fund.name} {format_money(change)} -> {format_money(fund.balance)}",
                fund_id=fund.id,
                balance=fund.balance,
            )

        return self._execute("adjust_fund_balance", AuditEventType.FUND_ADJUSTED, "fund", step)

    # -------------------------------------------------------------------------
    # Settings and overrides
    # -------------------------------------------------------------------------

    def change_obligation_status(
        self,
        obligation_id: str,
        status: Union[ObligationStatus, str],
    ) -> MutationResult:
        """Manual override; bypasses coverage reconciliation."""
        def step(doc: LedgerDocument) -> MutationResult:
            obligation = _require_obligation(doc, obligation_id)
            new_status = _status(status)
            previous = obligation.status
            obligation.status = new_status
            return MutationResult.ok(
                "change_obligation_status",
                obligation.id,
                f"Status of {obligation.name}: {previous.value} -> {new_status.value}",
                previous=previous.value,
                status=new_status.value,
            )

        return self._execute(
            "change_obligation_status",
            AuditEventType.OBLIGATION_STATUS_CHANGED,
            "obligation",
            step,
        )

    def update_calendar_times(
        self,
        obligation_hour: Any = None,
        transaction_hour: Any = None,
        allocation_hour: Any = None,
        payment_hour: Any = None,
        duration_minutes: Any = None,
    ) -> MutationResult:
        """Overwrite the given default event hours and duration; None keeps a value."""
        def step(doc: LedgerDocument) -> MutationResult:
            current = doc.settings.calendar_times
            updates = {
                "obligation_hour": _hour(obligation_hour, current.obligation_hour),
                "transaction_hour": _hour(transaction_hour, current.transaction_hour),
                "allocation_hour": _hour(allocation_hour, current.allocation_hour),
                "payment_hour": _hour(payment_hour, current.payment_hour),
                "duration_minutes": (
                    current.duration_minutes if duration_minutes is None else _duration(duration_minutes)
                ),
            }
            doc.settings.calendar_times = current.model_copy(update=updates)
            return MutationResult.ok("update_calendar_times", None, "Calendar times updated", **updates)

        return self._execute("update_calendar_times", AuditEventType.CALENDAR_TIMES_UPDATED, "settings", step)

    # -------------------------------------------------------------------------
    # Deletions
    # -------------------------------------------------------------------------

    def delete_transaction(self, transaction_id: str) -> MutationResult:
        """
        Remove a transaction.

        Deleting a payment does not refund its fund nor reopen the obligation.
        """
        def step(doc: LedgerDocument) -> MutationResult:
            tx = doc.get_transaction(transaction_id)
            if tx is None:
                raise RecordNotFound("transaction", transaction_id)
            doc.transactions.remove(tx)
            return MutationResult.ok("delete_transaction", tx.id, f"Transaction deleted: {tx.name}")

        return self._execute("delete_transaction", AuditEventType.RECORD_DELETED, "transaction", step)

    def delete_allocation(self, allocation_id: str) -> MutationResult:
        """
        Remove an allocation and undo its effect on funds and status.

        toFund: the fund gives the money back (never below 0).
        release: the money returns to the fund.
        toObligation: status is recomputed unless the obligation is paid.
        """
        def step(doc: LedgerDocument) -> MutationResult:
            allocation = doc.get_allocation(allocation_id)
            if allocation is None:
                raise RecordNotFound("allocation", allocation_id)

            fund = doc.get_fund(allocation.to_fund_id)
            obligation = doc.get_obligation(allocation.to_obligation_id)
            doc.allocations.remove(allocation)

            if allocation.direction == AllocationDirection.TO_FUND and fund:
                fund.balance = max(Decimal("0"), fund.balance - allocation.amount)
            elif allocation.direction == AllocationDirection.RELEASE and fund:
                fund.balance += allocation.amount
            elif allocation.direction == AllocationDirection.TO_OBLIGATION and obligation:
                _reconcile_status(doc, obligation)

            return MutationResult.ok(
                "delete_allocation",
                allocation.id,
                f"Allocation deleted: {format_money(allocation.amount)} ({allocation.direction.value})",
            )

        return self._execute("delete_allocation", AuditEventType.RECORD_DELETED, "allocation", step)

    def delete_obligation(self, obligation_id: str) -> MutationResult:
        """Remove an obligation together with the allocations made to it."""
        def step(doc: LedgerDocument) -> MutationResult:
            obligation = _require_obligation(doc, obligation_id)
            linked = [
                a for a in doc.allocations
                if a.direction == AllocationDirection.TO_OBLIGATION and a.to_obligation_id == obligation.id
            ]
            doc.obligations.remove(obligation)
            linked_ids = {a.id for a in linked}
            doc.allocations = [a for a in doc.allocations if a.id not in linked_ids]
            return MutationResult.ok(
                "delete_obligation",
                obligation.id,
                f"Obligation deleted: {obligation.name} ({len(linked)} allocations removed)",
                removed_allocations=[a.id for a in linked],
            )

        return self._execute("delete_obligation", AuditEventType.RECORD_DELETED, "obligation", step)

    def delete_fund(self, fund_id: str) -> MutationResult:
        """Remove an empty fund that no allocation refers to."""
        def step(doc: LedgerDocument) -> MutationResult:
            fund = _require_fund(doc, fund_id)
            epsilon = Decimal(str(self._settings.balance_epsilon))
            if abs(fund.balance) > epsilon:
                raise InvariantViolation(
                    f"Fund '{fund.name}' still holds {format_money(fund.balance)}",
                    FailureKind.NON_ZERO_BALANCE,
                    fund_id=fund.id,
                )
            if any(a.to_fund_id == fund.id for a in doc.allocations):
                raise InvariantViolation(
                    f"Fund '{fund.name}' is referenced by allocations",
                    FailureKind.FUND_IN_USE,
                    fund_id=fund.id,
                )
            doc.funds.remove(fund)
            return MutationResult.ok("delete_fund", fund.id, f"Fund deleted: {fund.name}")

        return self._execute("delete_fund", AuditEventType.RECORD_DELETED, "fund", step)
