"""
Quick Command Execution

DESIGN DECISION: Shortcut automation gets a deterministic, prompt-free path.
A command is a small JSON object (or a bare action word) such as
``{"action": "expense", "amount": 120, "name": "Café"}``. It is parsed
into a QuickCommand, routed by action, and every mutation still goes
through LedgerService, so a shortcut can never bypass validation.

Unknown actions are not errors: they come back unhandled, and
``orchestrator.run`` opens the interactive menu instead.
"""

import json
from datetime import date
from typing import Any, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from fincalendar.calendar import month_projections
from fincalendar.ledger import LedgerService, derivations
from fincalendar.models.ledger import TransactionType
from fincalendar.models.results import MutationResult
from fincalendar.utils import clamp_text, month_key, parse_iso_date, today


logger = structlog.get_logger(__name__)

QUICK_TRANSACTION_NAME = "Movimiento rápido"

_TRANSACTION_ACTIONS = {
    "add-expense": TransactionType.EXPENSE,
    "expense": TransactionType.EXPENSE,
    "add-income": TransactionType.INCOME,
    "income": TransactionType.INCOME,
}


class QuickCommand(BaseModel):
    """A parsed shortcut command. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    action: str = Field(..., min_length=1)
    name: Optional[Any] = None
    concept: Optional[Any] = None
    amount: Optional[Any] = None
    date: Optional[Any] = None
    hour: Optional[Any] = None
    category: Optional[Any] = None
    note: Optional[Any] = None

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: Any) -> str:
        return str(v).strip().lower()


class CommandResult(BaseModel):
    """What a quick command did, for the caller to show."""

    action: str
    success: bool
    message: str = ""
    mutation: Optional[MutationResult] = None
    data: Optional[Any] = None
    calendar: Optional[str] = None
    handled: bool = True


def parse_command(raw: Any) -> Optional[QuickCommand]:
    """
    Turn shortcut input into a QuickCommand.

    Accepts a mapping, a JSON object string, or a bare action word.
    Returns None when there is nothing to run.
    """
    if raw is None:
        return None

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if text.startswith("{"):
            try:
                parsed = json.loads(text)
            except ValueError:
                return QuickCommand(action=text)
            return parse_command(parsed) if isinstance(parsed, Mapping) else None
        return QuickCommand(action=text)

    if isinstance(raw, Mapping):
        if not raw.get("action") or not str(raw["action"]).strip():
            return None
        return QuickCommand(**{str(k): v for k, v in raw.items()})

    return None


def _quick_date(value: Any) -> date:
    """A YYYY-MM-DD string is used as-is; anything else means today."""
    if isinstance(value, str):
        parsed = parse_iso_date(value)
        if parsed:
            return parsed
    return today()


class CommandExecutor:
    """
    Executes quick commands against a LedgerService.

    GUARANTEES:
    - Never prompts
    - Mutations only through the service
    - Month views use the month of ``today`` unless one is given
    """

    def __init__(self, service: LedgerService, month: Optional[Any] = None):
        self._service = service
        self._month = month

    @property
    def month(self) -> str:
        return month_key(self._month or today())

    def execute(self, command: QuickCommand) -> CommandResult:
        """Route a command to its handler."""
        action = command.action
        logger.info("quick_command", action=action)

        if action in _TRANSACTION_ACTIONS:
            return self._quick_transaction(command, _TRANSACTION_ACTIONS[action])
        if action == "summary":
            return self._summary(command)
        if action in ("expense-summary", "gastos"):
            return self._expense_summary(command)
        if action == "sync":
            return self._sync(command)

        return CommandResult(
            action=action,
            success=False,
            message=f"Unknown action: {action}",
            handled=False,
        )

    def run(self, raw: Any) -> Optional[CommandResult]:
        """Parse and execute. None when the input holds no command."""
        command = parse_command(raw)
        if command is None:
            return None
        return self.execute(command)

    def _quick_transaction(self, command: QuickCommand, kind: TransactionType) -> CommandResult:
        name = clamp_text(command.name or command.concept or QUICK_TRANSACTION_NAME) or QUICK_TRANSACTION_NAME
        hour = command.hour if isinstance(command.hour, int) and not isinstance(command.hour, bool) else None

        result = self._service.add_transaction(
            kind,
            name,
            command.amount,
            date=_quick_date(command.date),
            category=clamp_text(command.category) or None,
            note=clamp_text(command.note),
            event_hour=hour,
        )
        return CommandResult(
            action=command.action,
            success=result.success,
            message=result.message,
            mutation=result,
        )

    def _summary(self, command: QuickCommand) -> CommandResult:
        summary = derivations.month_summary(self._service.document, self.month)
        return CommandResult(
            action=command.action,
            success=True,
            message=f"Summary {summary.month_key}: net {summary.net}",
            data=summary,
        )

    def _expense_summary(self, command: QuickCommand) -> CommandResult:
        rows = derivations.expense_summary_by_category(self._service.document, self.month)
        return CommandResult(
            action=command.action,
            success=True,
            message=f"{len(rows)} expense categories in {self.month}",
            data=rows,
        )

    def _sync(self, command: QuickCommand) -> CommandResult:
        """Projections for the month, addressed to the configured calendar."""
        events = month_projections(self._service.document, self.month)
        calendar = self._service.settings.calendar_name
        return CommandResult(
            action=command.action,
            success=True,
            message=f"{len(events)} calendar events for {self.month} in '{calendar}'",
            data=events,
            calendar=calendar,
        )
