"""
Main Orchestrator for FinCalendar

This module ties together all the components and defines the interactive
flows a UI drives:
1. Mutations (prompt → collect every input → one service call → report)
2. Read-only views (month, summaries, search, calendar events)
3. The main menu, and the entry point that tries a quick command first

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written until every input has been collected
- Any cancelled prompt abandons the flow with no state change
- Every mutation goes through LedgerService, which validates and audits

The UI itself (alerts, sheets, a terminal) lives behind the Prompter
interface, so the flows run the same against a real UI or a scripted one.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import structlog

from fincalendar.audit import AuditLogger
from fincalendar.calendar import month_projections
from fincalendar.commands import CommandExecutor, CommandResult
from fincalendar.config import Settings, get_settings
from fincalendar.ledger import LedgerService, LedgerStore, derivations
from fincalendar.models.ledger import (
    AllocationDirection,
    Fund,
    Obligation,
    ObligationStatus,
    TransactionType,
)
from fincalendar.models.results import FailureKind, MutationResult
from fincalendar.services.storage import JsonLinesAuditStorage, LocalFileStorage
from fincalendar.utils import DateLike, days_of_month, format_money, month_key, today


logger = structlog.get_logger(__name__)

T = TypeVar("T")

SEARCH_LIMIT = 15

_INPUT_FAILURES = {
    FailureKind.INVALID_AMOUNT,
    FailureKind.INVALID_NAME,
    FailureKind.DUPLICATE_NAME,
    FailureKind.INVALID_HOUR,
    FailureKind.INVALID_DURATION,
    FailureKind.INVALID_TARGET,
    FailureKind.INVALID_ADJUSTMENT,
    FailureKind.INVALID_STATUS,
    FailureKind.INVALID_DATE,
    FailureKind.INVALID_TYPE,
}


class Prompter(ABC):
    """
    Abstract interface to the user.

    Every ask_* returns None when the user cancels; confirm returns False.
    """

    @abstractmethod
    async def ask_amount(self, title: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
        """Ask for a number. Sign is kept; validation is the service's job."""
        pass

    @abstractmethod
    async def ask_text(self, title: str, default: str = "") -> Optional[str]:
        pass

    @abstractmethod
    async def ask_choice(
        self,
        title: str,
        options: Sequence[T],
        label: Callable[[T], str] = str,
    ) -> Optional[T]:
        """Let the user pick one of ``options``, shown through ``label``."""
        pass

    @abstractmethod
    async def confirm(self, title: str, message: str) -> bool:
        pass

    @abstractmethod
    async def notify(self, title: str, message: str) -> None:
        pass


def _month_start(value: DateLike) -> date:
    return days_of_month(month_key(value))[0]


def _as_hour(value: Optional[Decimal]) -> Any:
    """Integral answers become ints; anything else goes to the service as-is."""
    if value is not None and value == value.to_integral_value():
        return int(value)
    return value


class LedgerFlows:
    """
    One coroutine per user-facing action.

    Mutating flows return the MutationResult, or None when the user
    cancelled before anything was submitted.
    """

    def __init__(
        self,
        service: LedgerService,
        prompter: Prompter,
        month: Optional[DateLike] = None,
    ):
        self._service = service
        self._prompter = prompter
        self._month = month_key(month or today())

    @property
    def month(self) -> str:
        return self._month

    def previous_month(self) -> str:
        first = _month_start(self._month)
        self._month = month_key(date(first.year - (first.month == 1), (first.month - 2) % 12 + 1, 1))
        return self._month

    def next_month(self) -> str:
        first = _month_start(self._month)
        self._month = month_key(date(first.year + (first.month == 12), first.month % 12 + 1, 1))
        return self._month

    # -------------------------------------------------------------------------
    # Prompt helpers
    # -------------------------------------------------------------------------

    async def _pick_day(self, title: str) -> Optional[date]:
        return await self._prompter.ask_choice(title, days_of_month(self._month), lambda d: d.isoformat())

    async def _ask_hour(self, title: str, default: int) -> Any:
        value = await self._prompter.ask_amount(title, Decimal(default))
        return _as_hour(value)

    async def _pick_fund(self, title: str = "Choose fund") -> Optional[Fund]:
        return await self._prompter.ask_choice(
            title,
            list(self._service.document.funds),
            lambda f: f"{f.name} (balance: {format_money(f.balance)})",
        )

    def _obligation_label(self, obligation: Obligation) -> str:
        doc = self._service.document
        coverage = derivations.obligation_coverage(doc, obligation.id)
        level = derivations.coverage_level(doc, obligation)
        return (
            f"{level.icon} {obligation.due_date.isoformat()} - {obligation.name} "
            f"({format_money(-obligation.amount)}) covered: {format_money(coverage.covered)}"
        )

    async def _pick_obligation(self, title: str) -> Optional[Obligation]:
        """Obligations due this month, or all of them when the month has none."""
        doc = self._service.document
        options = derivations.obligations_in_month(doc, self._month) or list(doc.obligations)
        return await self._prompter.ask_choice(title, options, self._obligation_label)

    async def _report(self, result: MutationResult) -> MutationResult:
        if result.success:
            await self._prompter.notify("Done", result.message)
        elif result.failure in _INPUT_FAILURES:
            await self._prompter.notify("Invalid input", result.message)
        else:
            await self._prompter.notify("Not allowed", result.message)
        return result

    # -------------------------------------------------------------------------
    # Additions
    # -------------------------------------------------------------------------

    async def add_income(self) -> Optional[MutationResult]:
        return await self._add_transaction(TransactionType.INCOME)

    async def add_expense(self) -> Optional[MutationResult]:
        return await self._add_transaction(TransactionType.EXPENSE)

    async def _add_transaction(self, kind: TransactionType) -> Optional[MutationResult]:
        label = "income" if kind == TransactionType.INCOME else "expense"
        day = await self._pick_day(f"Date of the {label}")
        if day is None:
            return None
        name = await self._prompter.ask_text("Concept")
        if name is None:
            return None
        amount = await self._prompter.ask_amount("Amount")
        if amount is None:
            return None
        hour = await self._ask_hour("Event hour for sync", self._service.calendar_times.transaction_hour)
        if hour is None:
            return None

        return await self._report(self._service.add_transaction(kind, name, amount, date=day, event_hour=hour))

    async def add_fund(self) -> Optional[MutationResult]:
        name = await self._prompter.ask_text("Fund name")
        if name is None:
            return None
        return await self._report(self._service.add_fund(name))

    async def add_obligation(self) -> Optional[MutationResult]:
        day = await self._pick_day("Due date")
        if day is None:
            return None
        name = await self._prompter.ask_text("Name")
        if name is None:
            return None
        amount = await self._prompter.ask_amount("Amount due")
        if amount is None:
            return None
        hour = await self._ask_hour("Reminder hour", self._service.calendar_times.obligation_hour)
        if hour is None:
            return None

        return await self._report(self._service.add_obligation(name, amount, day, event_hour=hour))

    # -------------------------------------------------------------------------
    # Money movement
    # -------------------------------------------------------------------------

    async def allocate(self) -> Optional[MutationResult]:
        """
        Earmark money for a fund or an obligation.

        An over-allocation is confirmed with the user before it is retried.
        """
        day = await self._pick_day("Allocation date")
        if day is None:
            return None
        amount = await self._prompter.ask_amount("How much are you setting aside?")
        if amount is None:
            return None
        destination = await self._prompter.ask_choice("Where does it go?", ["Fund", "Obligation"])
        if destination is None:
            return None

        fund_id = obligation_id = None
        if destination == "Fund":
            fund = await self._pick_fund()
            if fund is None:
                return None
            fund_id = fund.id
        else:
            obligation = await self._pick_obligation("Choose obligation")
            if obligation is None:
                return None
            obligation_id = obligation.id

        hour = await self._ask_hour("Allocation hour for sync", self._service.calendar_times.allocation_hour)
        if hour is None:
            return None

        def submit(confirmed: bool) -> MutationResult:
            return self._service.allocate_money(
                amount,
                fund_id=fund_id,
                obligation_id=obligation_id,
                date=day,
                event_hour=hour,
                confirm_over_allocation=confirmed,
            )

        result = submit(False)
        if result.requires_confirmation:
            if not await self._prompter.confirm("Allocation exceeds available", result.message):
                return None
            result = submit(True)
        return await self._report(result)

    async def release(self) -> Optional[MutationResult]:
        fund = await self._pick_fund("Release from which fund?")
        if fund is None:
            return None
        amount = await self._prompter.ask_amount("Amount to release", fund.balance)
        if amount is None:
            return None
        day = await self._pick_day("Release date")
        if day is None:
            return None
        return await self._report(self._service.release_money(fund.id, amount, date=day))

    async def register_payment(self) -> Optional[MutationResult]:
        obligation = await self._pick_obligation("Which obligation did you pay?")
        if obligation is None:
            return None
        coverage = derivations.obligation_coverage(self._service.document, obligation.id)
        suggested = coverage.remaining if coverage.remaining > 0 else obligation.amount
        amount = await self._prompter.ask_amount("Amount paid", suggested)
        if amount is None:
            return None
        use_fund = await self._prompter.ask_choice("Take it from a fund?", ["Yes", "No"])
        if use_fund is None:
            return None

        fund_id = None
        if use_fund == "Yes":
            fund = await self._pick_fund()
            if fund is None:
                return None
            fund_id = fund.id

        hour = await self._ask_hour("Payment hour for sync", self._service.calendar_times.payment_hour)
        if hour is None:
            return None

        return await self._report(
            self._service.register_payment(obligation.id, amount, fund_id=fund_id, event_hour=hour)
        )

    async def adjust_fund(self) -> Optional[MutationResult]:
        fund = await self._pick_fund()
        if fund is None:
            return None
        delta = await self._prompter.ask_amount("Balance adjustment (+ or -)", Decimal("0"))
        if delta is None:
            return None
        reason = await self._prompter.ask_text("Reason for the adjustment")
        if reason is None:
            return None
        return await self._report(self._service.adjust_fund_balance(fund.id, delta, reason))

    # -------------------------------------------------------------------------
    # Settings and overrides
    # -------------------------------------------------------------------------

    async def change_status(self) -> Optional[MutationResult]:
        obligation = await self._prompter.ask_choice(
            "Choose obligation",
            list(self._service.document.obligations),
            lambda o: f"{o.due_date.isoformat()} - {o.name} ({o.status.value})",
        )
        if obligation is None:
            return None
        status = await self._prompter.ask_choice("New status", list(ObligationStatus), lambda s: s.value)
        if status is None:
            return None
        return await self._report(self._service.change_obligation_status(obligation.id, status))

    async def configure_calendar_times(self) -> Optional[MutationResult]:
        times = self._service.calendar_times
        fields = {
            "Transaction hour": ("transaction_hour", times.transaction_hour),
            "Allocation hour": ("allocation_hour", times.allocation_hour),
            "Obligation hour": ("obligation_hour", times.obligation_hour),
            "Payment hour": ("payment_hour", times.payment_hour),
            "Event duration (min)": ("duration_minutes", times.duration_minutes),
        }
        choice = await self._prompter.ask_choice("Configure sync times", list(fields))
        if choice is None:
            return None
        field, current = fields[choice]
        value = await self._prompter.ask_amount(choice, Decimal(current))
        if value is None:
            return None
        return await self._report(self._service.update_calendar_times(**{field: _as_hour(value)}))

    # -------------------------------------------------------------------------
    # Deletions
    # -------------------------------------------------------------------------

    async def delete_records(self) -> Optional[MutationResult]:
        choice = await self._prompter.ask_choice(
            "Delete records",
            ["Transaction", "Allocation", "Obligation", "Fund"],
        )
        if choice is None:
            return None
        if choice == "Transaction":
            return await self._delete_transaction()
        if choice == "Allocation":
            return await self._delete_allocation()
        if choice == "Obligation":
            return await self._delete_obligation()
        return await self._delete_fund()

    async def _delete_transaction(self) -> Optional[MutationResult]:
        doc = self._service.document
        in_month = sorted(
            (t for t in doc.transactions if month_key(t.date) == self._month),
            key=lambda t: t.date,
        )
        tx = await self._prompter.ask_choice(
            "Choose transaction",
            in_month or list(doc.transactions),
            lambda t: f"{t.date.isoformat()} - {t.name} {format_money(t.signed_amount)}",
        )
        if tx is None:
            return None
        if not await self._prompter.confirm("Confirm", f"Delete transaction '{tx.name}'?"):
            return None
        return await self._report(self._service.delete_transaction(tx.id))

    async def _delete_allocation(self) -> Optional[MutationResult]:
        doc = self._service.document

        def label(allocation) -> str:
            if allocation.direction == AllocationDirection.TO_FUND:
                fund = doc.get_fund(allocation.to_fund_id)
                target = f"Fund {fund.name if fund else '?'}"
            elif allocation.direction == AllocationDirection.TO_OBLIGATION:
                obligation = doc.get_obligation(allocation.to_obligation_id)
                target = f"Obligation {obligation.name if obligation else '?'}"
            else:
                target = allocation.direction.value
            return f"{allocation.date.isoformat()} - {target} {format_money(-allocation.amount)}"

        in_month = sorted(
            (a for a in doc.allocations if month_key(a.date) == self._month),
            key=lambda a: a.date,
        )
        allocation = await self._prompter.ask_choice("Choose allocation", in_month or list(doc.allocations), label)
        if allocation is None:
            return None
        if not await self._prompter.confirm("Confirm", "Delete this allocation?"):
            return None
        return await self._report(self._service.delete_allocation(allocation.id))

    async def _delete_obligation(self) -> Optional[MutationResult]:
        obligation = await self._pick_obligation("Choose obligation")
        if obligation is None:
            return None
        linked = sum(
            1 for a in self._service.document.allocations
            if a.direction == AllocationDirection.TO_OBLIGATION and a.to_obligation_id == obligation.id
        )
        warning = f"\nIts {linked} linked allocations will be deleted too." if linked else ""
        if not await self._prompter.confirm("Confirm", f"Delete obligation '{obligation.name}'?{warning}"):
            return None
        return await self._report(self._service.delete_obligation(obligation.id))

    async def _delete_fund(self) -> Optional[MutationResult]:
        fund = await self._pick_fund()
        if fund is None:
            return None
        if not await self._prompter.confirm("Confirm", f"Delete fund '{fund.name}'?"):
            return None
        return await self._report(self._service.delete_fund(fund.id))

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    async def show_month(self) -> str:
        """Running available balance per active day, obligations and funds."""
        doc = self._service.document
        current = today()
        lines = [f"Month: {self._month}", ""]

        for row in derivations.daily_balances(doc, self._month, include_days={current}):
            parts = []
            if row.activity.income:
                parts.append(f"+{format_money(row.activity.income)}")
            if row.activity.expense:
                parts.append(format_money(-row.activity.expense))
            if row.activity.allocations_out:
                parts.append(f"Allocated: {format_money(-row.activity.allocations_out)}")
            if row.activity.allocations_in:
                parts.append(f"Released: +{format_money(row.activity.allocations_in)}")
            marker = "⭐ " if row.day == current else ""
            lines.append(
                f"{marker}{row.day.isoformat()}: {' | '.join(parts)} -> Available: {format_money(row.available)}"
            )

        lines.extend(["", "Obligations:"])
        obligations = derivations.obligations_in_month(doc, self._month)
        if not obligations:
            lines.append("- (none)")
        for obligation in obligations:
            coverage = derivations.obligation_coverage(doc, obligation.id)
            lines.append(
                f"{self._obligation_label(obligation)} | remaining: {format_money(coverage.remaining)}"
            )

        lines.extend(["", "Funds:"])
        lines.extend(f"• {f.name}: {format_money(f.balance)}" for f in doc.funds)

        message = "\n".join(lines)
        await self._prompter.notify(f"Calendar {self._month}", message)
        return message

    async def show_month_summary(self) -> str:
        summary = derivations.month_summary(self._service.document, self._month)
        totals = summary.totals
        message = "\n".join([
            f"Income: {format_money(totals.income)}",
            f"Expenses: {format_money(-totals.expense)}",
            f"Net: {format_money(summary.net)}",
            f"Allocated: {format_money(-totals.allocated)}",
            f"Obligation coverage: {summary.coverage_rate:.1f}%",
            f"Paid: {summary.paid_rate:.1f}%",
            f"Approx. savings rate: {summary.savings_rate:.1f}%",
        ])
        await self._prompter.notify(f"Summary {self._month}", message)
        return message

    async def show_expense_summary(self) -> str:
        rows = derivations.expense_summary_by_category(self._service.document, self._month)
        total = sum((row.amount for row in rows), Decimal("0"))
        lines = [f"Expenses {self._month}", f"Total expenses: {format_money(-total)}", ""]
        if not rows:
            lines.append("(no expenses this month)")
        lines.extend(
            f"• {row.category}: {format_money(-row.amount)} ({row.share:.1f}%)"
            for row in rows
        )
        message = "\n".join(lines)
        await self._prompter.notify("Expenses by category", message)
        return message

    async def show_funds(self) -> str:
        funds = self._service.document.funds
        message = "\n".join(f"• {f.name}: {format_money(f.balance)}" for f in funds) or "(empty)"
        await self._prompter.notify("Funds", message)
        return message

    async def quick_search(self) -> Optional[str]:
        text = await self._prompter.ask_text("Search")
        if not text:
            return None
        result = derivations.search(self._service.document, text)
        lines = [f"Matching transactions: {len(result.transactions)}"]
        lines.extend(
            f"• {t.date.isoformat()} {t.name} {format_money(t.signed_amount)}"
            for t in result.transactions[:SEARCH_LIMIT]
        )
        lines.extend(["", f"Matching obligations: {len(result.obligations)}"])
        lines.extend(
            f"• {o.due_date.isoformat()} {o.name} {format_money(-o.amount)} ({o.status.value})"
            for o in result.obligations[:SEARCH_LIMIT]
        )
        message = "\n".join(lines)
        await self._prompter.notify("Search", message)
        return message

    async def show_calendar_events(self) -> str:
        """The events a sync of this month would write."""
        events = month_projections(self._service.document, self._month)
        calendar = self._service.settings.calendar_name
        message = "\n".join(f"{e.start:%Y-%m-%d %H:%M} {e.title}" for e in events) or "(no events this month)"
        await self._prompter.notify(f"{calendar} {self._month}", message)
        return message

    # -------------------------------------------------------------------------
    # Main menu
    # -------------------------------------------------------------------------

    async def _go_previous(self) -> str:
        return self.previous_month()

    async def _go_next(self) -> str:
        return self.next_month()

    def menu(self) -> dict[str, Callable[[], Awaitable[Any]]]:
        """Menu labels mapped to the flow each one runs, in display order."""
        return {
            "View month": self.show_month,
            "Month summary": self.show_month_summary,
            "Expenses by category": self.show_expense_summary,
            "Search": self.quick_search,
            "Add income": self.add_income,
            "Add expense": self.add_expense,
            "Add obligation": self.add_obligation,
            "Change obligation status": self.change_status,
            "Funds": self.show_funds,
            "Add fund": self.add_fund,
            "Adjust fund balance": self.adjust_fund,
            "Set money aside": self.allocate,
            "Release money": self.release,
            "Register payment": self.register_payment,
            "Calendar events": self.show_calendar_events,
            "Calendar times": self.configure_calendar_times,
            "Delete records": self.delete_records,
            "Previous month": self._go_previous,
            "Next month": self._go_next,
        }

    async def run_menu(self) -> None:
        """Offer the main menu until the user cancels it."""
        menu = self.menu()
        while True:
            choice = await self._prompter.ask_choice(f"FinCalendar {self._month}", list(menu))
            if choice is None:
                logger.info("ledger_menu_closed", month=self._month)
                return
            await menu[choice]()


def create_ledger_service(settings: Optional[Settings] = None) -> LedgerService:
    """
    Factory function wiring file storage, audit trail, store and service.

    Args:
        settings: Root settings; the cached ones when omitted.
    """
    settings = settings or get_settings()
    storage_settings = settings.storage
    ledger_settings = settings.ledger

    audit_logger = AuditLogger(JsonLinesAuditStorage(storage_settings.audit_path))
    store = LedgerStore(
        LocalFileStorage(storage_settings.data_path),
        audit_logger=audit_logger,
        default_currency=ledger_settings.default_currency,
    )
    logger.info("ledger_service_created", data_path=str(storage_settings.data_path))
    return LedgerService(store, audit_logger=audit_logger, settings=ledger_settings)


async def run(
    service: LedgerService,
    prompter: Prompter,
    command: Any = None,
) -> Optional[CommandResult]:
    """
    Run a quick command when one is given and understood, otherwise the menu.

    Returns the command's result, or None when the menu ran.
    """
    if command is not None:
        result = CommandExecutor(service).run(command)
        if result is not None and result.handled:
            await prompter.notify(result.action, result.message)
            return result
        logger.info("quick_command_fell_through", command=str(command))

    await LedgerFlows(service, prompter).run_menu()
    return None
