"""
Schema Normalizer

Turns whatever was on disk into a structurally complete LedgerDocument.

DESIGN DECISION: "Fail open, lose the least essential data".
- Missing or wrongly typed settings fall back to their defaults.
- A record list that is present but not a list is replaced by an empty
  list. Its contents are dropped, not coerced.
- A record is repaired when the repair loses nothing (fresh id, empty note,
  clamped name). A record that cannot be made valid (no usable amount,
  date, type or direction) is dropped, and the drop is logged.
- Unknown keys are kept, at every level.

normalize() never raises and is idempotent.
"""

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from fincalendar.models.ledger import (
    Allocation,
    AllocationDirection,
    CalendarTimes,
    DocumentSettings,
    Fund,
    FundAdjustment,
    LedgerDocument,
    Obligation,
    ObligationStatus,
    Transaction,
    TransactionType,
    default_document,
    default_funds,
)
from fincalendar.utils import (
    clamp_text,
    new_id,
    parse_iso_date,
    to_decimal,
    to_positive_amount,
)


logger = structlog.get_logger(__name__)

_DOCUMENT_KEYS = (
    "settings",
    "funds",
    "obligations",
    "transactions",
    "allocations",
    "fundAdjustments",
)

_CALENDAR_DEFAULTS = CalendarTimes()
_HOUR_FIELDS = ("obligationHour", "transactionHour", "allocationHour", "paymentHour")


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _split(raw: Mapping, aliases: tuple[str, ...]) -> tuple[dict, dict]:
    """
    Separate known fields from extras.

    Known fields are looked up by their camelCase alias; the snake_case
    spelling is accepted too, the alias wins when both are present.
    """
    snake = {to_snake(alias): alias for alias in aliases}
    known: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in raw.items():
        if key in aliases:
            known[key] = value
        elif key in snake:
            known.setdefault(snake[key], value)
        else:
            extra[key] = value
    return known, extra


def _record_id(value: Any, prefix: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    generated = new_id(prefix)
    logger.info("ledger_record_id_generated", prefix=prefix, record_id=generated)
    return generated


def _hour(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if 0 <= value <= 23 else None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _reference(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _drop(collection: str, raw: Any, reason: str) -> None:
    record_id = raw.get("id") if isinstance(raw, Mapping) else None
    logger.warning(
        "ledger_record_dropped",
        collection=collection,
        record_id=record_id,
        reason=reason,
    )


def _build(model: type[BaseModel], collection: str, raw: Mapping, data: dict) -> Optional[Any]:
    """Validate the repaired record; drop it if it still does not fit."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        _drop(collection, raw, f"schema: {e.errors()[0].get('msg', 'invalid')}")
        return None


# =============================================================================
# SETTINGS
# =============================================================================

def _normalize_calendar_times(raw: Any) -> CalendarTimes:
    if not isinstance(raw, Mapping):
        return CalendarTimes()
    known, extra = _split(raw, _HOUR_FIELDS + ("durationMinutes",))
    data: dict[str, Any] = dict(extra)
    for alias in _HOUR_FIELDS:
        hour = _hour(known.get(alias))
        data[alias] = hour if hour is not None else getattr(_CALENDAR_DEFAULTS, to_snake(alias))
    duration = known.get("durationMinutes")
    if isinstance(duration, bool) or not isinstance(duration, int) or not 5 <= duration <= 240:
        duration = _CALENDAR_DEFAULTS.duration_minutes
    data["durationMinutes"] = duration
    return CalendarTimes.model_validate(data)


def _normalize_settings(raw: Any) -> DocumentSettings:
    if not isinstance(raw, Mapping):
        return DocumentSettings()
    known, extra = _split(raw, ("currency", "startBalance", "calendarTimes"))
    currency = _text(known.get("currency")) or DocumentSettings().currency
    start_balance = to_decimal(known.get("startBalance"))
    return DocumentSettings.model_validate({
        **extra,
        "currency": currency,
        "startBalance": start_balance if start_balance is not None else Decimal("0"),
        "calendarTimes": _normalize_calendar_times(known.get("calendarTimes")),
    })


# =============================================================================
# RECORDS
# =============================================================================

def _normalize_fund(raw: Mapping) -> Optional[Fund]:
    known, extra = _split(raw, ("id", "name", "balance"))
    name = clamp_text(known.get("name"))
    if not name:
        _drop("funds", raw, "missing name")
        return None
    balance = to_decimal(known.get("balance"))
    if balance is None:
        balance = Decimal("0")
    elif balance < 0:
        logger.warning("ledger_fund_balance_clamped", fund=name, balance=str(balance))
        balance = Decimal("0")
    return _build(Fund, "funds", raw, {
        **extra,
        "id": _record_id(known.get("id"), "f"),
        "name": name,
        "balance": balance,
    })


def _normalize_obligation(raw: Mapping) -> Optional[Obligation]:
    known, extra = _split(
        raw, ("id", "name", "dueDate", "amount", "status", "note", "eventHour")
    )
    due_date = parse_iso_date(known.get("dueDate"))
    amount = to_positive_amount(known.get("amount"))
    if due_date is None:
        _drop("obligations", raw, "invalid due date")
        return None
    if amount is None:
        _drop("obligations", raw, "invalid amount")
        return None
    status = ObligationStatus.parse(known.get("status"))
    if status is None:
        logger.info("ledger_obligation_status_reset", status=known.get("status"))
        status = ObligationStatus.PENDING
    return _build(Obligation, "obligations", raw, {
        **extra,
        "id": _record_id(known.get("id"), "obl"),
        "name": clamp_text(known.get("name")),
        "dueDate": due_date,
        "amount": amount,
        "status": status,
        "note": _text(known.get("note")),
        "eventHour": _hour(known.get("eventHour")),
    })


def _normalize_transaction(raw: Mapping) -> Optional[Transaction]:
    known, extra = _split(raw, (
        "id", "date", "type", "name", "amount", "category", "note",
        "eventHour", "obligationId", "fundId",
    ))
    day = parse_iso_date(known.get("date"))
    amount = to_positive_amount(known.get("amount"))
    kind = known.get("type")
    if day is None:
        _drop("transactions", raw, "invalid date")
        return None
    if amount is None:
        _drop("transactions", raw, "invalid amount")
        return None
    if kind not in {t.value for t in TransactionType}:
        _drop("transactions", raw, f"unknown type {kind!r}")
        return None
    return _build(Transaction, "transactions", raw, {
        **extra,
        "id": _record_id(known.get("id"), "tx"),
        "date": day,
        "type": kind,
        "name": clamp_text(known.get("name")),
        "amount": amount,
        "category": _text(known.get("category")),
        "note": _text(known.get("note")),
        "eventHour": _hour(known.get("eventHour")),
        "obligationId": _reference(known.get("obligationId")),
        "fundId": _reference(known.get("fundId")),
    })


def _normalize_allocation(raw: Mapping) -> Optional[Allocation]:
    known, extra = _split(raw, (
        "id", "date", "amount", "direction", "toFundId", "toObligationId",
        "note", "eventHour",
    ))
    day = parse_iso_date(known.get("date"))
    amount = to_positive_amount(known.get("amount"))
    direction = known.get("direction")
    if day is None:
        _drop("allocations", raw, "invalid date")
        return None
    if amount is None:
        _drop("allocations", raw, "invalid amount")
        return None
    if direction not in {d.value for d in AllocationDirection}:
        _drop("allocations", raw, f"unknown direction {direction!r}")
        return None
    return _build(Allocation, "allocations", raw, {
        **extra,
        "id": _record_id(known.get("id"), "al"),
        "date": day,
        "amount": amount,
        "direction": direction,
        "toFundId": _reference(known.get("toFundId")),
        "toObligationId": _reference(known.get("toObligationId")),
        "note": _text(known.get("note")),
        "eventHour": _hour(known.get("eventHour")),
    })


def _normalize_adjustment(raw: Mapping) -> Optional[FundAdjustment]:
    known, extra = _split(raw, ("id", "date", "fundId", "amount", "reason"))
    day = parse_iso_date(known.get("date"))
    amount = to_decimal(known.get("amount"))
    fund_id = _reference(known.get("fundId"))
    if day is None or amount is None or amount == 0 or fund_id is None:
        _drop("fundAdjustments", raw, "invalid date, amount or fund")
        return None
    return _build(FundAdjustment, "fundAdjustments", raw, {
        **extra,
        "id": _record_id(known.get("id"), "fadj"),
        "date": day,
        "fundId": fund_id,
        "amount": amount,
        "reason": _text(known.get("reason")),
    })


def _normalize_list(
    collection: str,
    raw: Any,
    normalize_record: Callable[[Mapping], Optional[Any]],
) -> list:
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning(
                "ledger_collection_replaced",
                collection=collection,
                found_type=type(raw).__name__,
            )
        return []
    records = []
    for item in raw:
        if not isinstance(item, Mapping):
            _drop(collection, item, "not an object")
            continue
        record = normalize_record(item)
        if record is not None:
            records.append(record)
    return records


# =============================================================================
# PUBLIC API
# =============================================================================

def normalize(raw: Any) -> LedgerDocument:
    """
    Produce a complete, valid LedgerDocument from a possibly partial one.

    Accepts a parsed JSON value, None, or an existing LedgerDocument.
    Never raises.
    """
    if isinstance(raw, LedgerDocument):
        raw = to_document_dict(raw)
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("ledger_document_replaced", found_type=type(raw).__name__)
        return default_document()

    known, extra = _split(raw, _DOCUMENT_KEYS)

    if known.get("funds") is None:
        funds = default_funds()
    else:
        funds = _normalize_list("funds", known["funds"], _normalize_fund)

    return LedgerDocument.model_validate({
        **extra,
        "settings": _normalize_settings(known.get("settings")),
        "funds": funds,
        "obligations": _normalize_list("obligations", known.get("obligations"), _normalize_obligation),
        "transactions": _normalize_list("transactions", known.get("transactions"), _normalize_transaction),
        "allocations": _normalize_list("allocations", known.get("allocations"), _normalize_allocation),
        "fundAdjustments": _normalize_list("fundAdjustments", known.get("fundAdjustments"), _normalize_adjustment),
    })


def to_document_dict(doc: LedgerDocument) -> dict:
    """The JSON-ready camelCase form of a document."""
    return doc.model_dump(mode="json", by_alias=True)


def serialize(doc: LedgerDocument) -> bytes:
    """Normalize and encode a document as UTF-8 JSON."""
    payload = to_document_dict(normalize(doc))
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
