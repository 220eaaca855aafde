"""
Tests for FinCalendar

Test strategy:
1. Unit tests for individual components (models, normalizer, derivations)
2. Integration tests for the service and flows (with in-memory storage)
3. No file system access outside tmp_path
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from fincalendar.models.ledger import (
    Allocation,
    AllocationDirection,
    CalendarTimes,
    Fund,
    FundAdjustment,
    LedgerDocument,
    Obligation,
    ObligationStatus,
    Transaction,
    TransactionType,
    default_document,
)
from fincalendar.models.results import (
    CoverageLevel,
    DailyActivity,
    FailureKind,
    MutationResult,
    SearchResult,
)
from fincalendar.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerModels:
    """Tests for ledger record models."""

    def test_fund_creation(self):
        """Test Fund model creation."""
        fund = Fund(id="f1", name="Ahorro", balance=Decimal("300"))
        assert fund.name == "Ahorro"
        assert fund.balance == Decimal("300")

    def test_fund_strips_whitespace(self):
        """Test that whitespace is stripped from fund names."""
        fund = Fund(id="f1", name="  Ahorro  ")
        assert fund.name == "Ahorro"

    def test_fund_rejects_negative_balance(self):
        """Test that a negative fund balance is rejected."""
        with pytest.raises(ValueError):
            Fund(id="f1", name="Ahorro", balance=Decimal("-1"))

    def test_fund_rejects_long_name(self):
        """Test the 80 character limit on fund names."""
        with pytest.raises(ValueError):
            Fund(id="f1", name="x" * 81)

    def test_obligation_defaults(self):
        """Test Obligation defaults to pending with no event hour."""
        obligation = Obligation(id="o1", name="Renta", due_date=date(2024, 1, 10), amount=500)
        assert obligation.status == ObligationStatus.PENDING
        assert obligation.event_hour is None
        assert obligation.note == ""

    def test_obligation_rejects_zero_amount(self):
        """Test that obligations need a positive amount."""
        with pytest.raises(ValueError):
            Obligation(id="o1", name="Renta", due_date=date(2024, 1, 10), amount=0)

    def test_event_hour_bounds(self):
        """Test event hours must be 0-23."""
        with pytest.raises(ValueError):
            Obligation(
                id="o1", name="Renta", due_date=date(2024, 1, 10), amount=500, event_hour=24
            )

    def test_transaction_signed_amount(self):
        """Test that the sign comes from the transaction type."""
        income = Transaction(id="t1", date=date(2024, 1, 5), type="income", name="Nómina", amount=1000)
        expense = Transaction(id="t2", date=date(2024, 1, 5), type="expense", name="Gas", amount=80)
        assert income.signed_amount == Decimal("1000")
        assert expense.signed_amount == Decimal("-80")

    def test_transaction_payment_flag(self):
        """Test that the payment tag marks a payment transaction."""
        tx = Transaction(
            id="t1", date=date(2024, 1, 5), type=TransactionType.EXPENSE,
            name="Pago: Renta", amount=500, note="PAYMENT_EVENT",
        )
        assert tx.is_payment is True

    def test_allocation_to_fund_requires_fund(self):
        """Test that a toFund allocation must reference a fund."""
        with pytest.raises(ValueError, match="must reference a fund only"):
            Allocation(id="a1", date=date(2024, 1, 6), amount=100, direction="toFund")

    def test_allocation_rejects_two_targets(self):
        """Test that an allocation cannot point at a fund and an obligation."""
        with pytest.raises(ValueError):
            Allocation(
                id="a1", date=date(2024, 1, 6), amount=100,
                direction=AllocationDirection.TO_OBLIGATION,
                to_fund_id="f1", to_obligation_id="o1",
            )

    def test_release_cannot_reference_obligation(self):
        """Test that release allocations never carry an obligation."""
        with pytest.raises(ValueError, match="release"):
            Allocation(
                id="a1", date=date(2024, 1, 6), amount=100,
                direction="release", to_obligation_id="o1",
            )

    def test_release_without_fund_is_accepted(self):
        """Test that legacy releases with no fund still load."""
        allocation = Allocation(id="a1", date=date(2024, 1, 6), amount=100, direction="release")
        assert allocation.to_fund_id is None

    def test_adjustment_rejects_zero(self):
        """Test that a fund adjustment cannot be zero."""
        with pytest.raises(ValueError, match="cannot be zero"):
            FundAdjustment(id="x", date=date(2024, 1, 6), fund_id="f1", amount=0)

    def test_money_serializes_as_json_number(self):
        """Test that integral amounts are written as ints, others as floats."""
        fund = Fund(id="f1", name="Ahorro", balance=Decimal("300.00"))
        dumped = fund.model_dump(mode="json", by_alias=True)
        assert dumped["balance"] == 300
        assert isinstance(dumped["balance"], int)

        fund = Fund(id="f1", name="Ahorro", balance=Decimal("12.5"))
        assert fund.model_dump(mode="json")["balance"] == 12.5

    def test_camel_case_aliases(self):
        """Test that the document is written with camelCase keys."""
        obligation = Obligation(id="o1", name="Renta", due_date=date(2024, 1, 10), amount=500)
        dumped = obligation.model_dump(mode="json", by_alias=True)
        assert dumped["dueDate"] == "2024-01-10"
        assert "eventHour" in dumped

    def test_unknown_fields_are_kept(self):
        """Test that extra keys survive a dump."""
        fund = Fund.model_validate({"id": "f1", "name": "Ahorro", "color": "green"})
        assert fund.model_dump(by_alias=True)["color"] == "green"


class TestDocument:
    """Tests for the whole-document model."""

    def test_default_document(self):
        """Test the seeded default funds and empty collections."""
        doc = default_document()
        assert [f.id for f in doc.funds] == ["f_ahorro", "f_tarjetas", "f_varios"]
        assert all(f.balance == 0 for f in doc.funds)
        assert doc.obligations == []
        assert doc.settings.currency == "MXN"
        assert doc.settings.start_balance == 0

    def test_default_calendar_times(self):
        """Test default hours 8/9/10/11 and duration 30."""
        times = CalendarTimes()
        assert (times.obligation_hour, times.transaction_hour, times.allocation_hour, times.payment_hour) == (8, 9, 10, 11)
        assert times.duration_minutes == 30

    def test_find_fund_by_name_ignores_case(self):
        """Test case-insensitive fund lookup."""
        doc = LedgerDocument()
        assert doc.find_fund_by_name("ahorro").id == "f_ahorro"
        assert doc.find_fund_by_name("  TARJETAS ").id == "f_tarjetas"
        assert doc.find_fund_by_name("Viajes") is None

    def test_lookup_by_id(self):
        """Test record lookups by id."""
        doc = LedgerDocument()
        assert doc.get_fund("f_varios").name == "Gastos varios"
        assert doc.get_fund(None) is None
        assert doc.get_obligation("missing") is None


class TestEnums:
    """Tests for the closed enums."""

    def test_status_parse_canonical(self):
        """Test canonical status values."""
        assert ObligationStatus.parse("covered") == ObligationStatus.COVERED

    @pytest.mark.parametrize("legacy,expected", [
        ("pendiente", ObligationStatus.PENDING),
        ("cubierta", ObligationStatus.COVERED),
        ("Pagada", ObligationStatus.PAID),
    ])
    def test_status_parse_legacy(self, legacy, expected):
        """Test that legacy Spanish values are accepted."""
        assert ObligationStatus.parse(legacy) == expected

    def test_status_parse_unknown(self):
        """Test that unknown values parse to None."""
        assert ObligationStatus.parse("done") is None
        assert ObligationStatus.parse(3) is None

    def test_direction_outflow(self):
        """Test which directions leave the available balance."""
        assert AllocationDirection.TO_FUND.is_outflow is True
        assert AllocationDirection.TO_OBLIGATION.is_outflow is True
        assert AllocationDirection.RELEASE.is_outflow is False

    def test_coverage_icons(self):
        """Test the traffic-light icons."""
        assert CoverageLevel.PAID.icon == "✅"
        assert CoverageLevel.UNCOVERED.icon == "🔴"


class TestResultModels:
    """Tests for derivation and mutation result models."""

    def test_mutation_result_ok(self):
        """Test the success constructor."""
        result = MutationResult.ok("add_fund", "f1", "Fund created: Viajes", balance=Decimal("0"))
        assert result.success is True
        assert result.failure is None
        assert result.details == {"balance": Decimal("0")}

    def test_failed_mutation_result(self):
        """Test a failed result carrying its reason."""
        result = MutationResult(
            operation="adjust_fund_balance",
            success=False,
            failure=FailureKind.NEGATIVE_BALANCE_REJECTED,
            message="Adjustment would leave fund 'Ahorro' negative",
        )
        assert result.failure.value == "negative_balance_rejected"
        assert result.requires_confirmation is False

    def test_daily_activity(self):
        """Test activity flag and net."""
        assert DailyActivity().has_activity is False
        activity = DailyActivity(income=Decimal("100"), allocations_out=Decimal("30"))
        assert activity.has_activity is True
        assert activity.net == Decimal("70")

    def test_search_result_count(self):
        """Test total match count."""
        assert SearchResult(query="x").total_matches == 0


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.FUND_ADDED,
            description="Fund created",
        )
        assert event.event_type == AuditEventType.FUND_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.PAYMENT_REGISTERED,
            description="Payment registered",
            details={"obligation_id": "o1", "amount": "500"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "payment_registered"
        assert log_dict["details"]["obligation_id"] == "o1"

    def test_audit_event_to_json_line(self):
        """Test that a JSON line round-trips through json."""
        event = AuditEventBuilder.mutation(
            AuditEventType.MONEY_ALLOCATED, "allocation", "al_1", "Allocated",
            details={"amount": Decimal("12.5")},
        )
        line = event.to_json_line()
        assert "\n" not in line
        parsed = json.loads(line)
        assert parsed["entity_id"] == "al_1"
        assert parsed["details"]["amount"] == "12.5"

    def test_audit_event_builder_mutation(self):
        """Test AuditEventBuilder.mutation."""
        event = AuditEventBuilder.mutation(
            AuditEventType.FUND_ADDED, "fund", "f1", "Fund created: Viajes"
        )
        assert event.event_type == AuditEventType.FUND_ADDED
        assert event.entity_type == "fund"
        assert event.entity_id == "f1"
        assert event.details == {}

    def test_audit_event_builder_operation_rejected(self):
        """Test AuditEventBuilder.operation_rejected."""
        event = AuditEventBuilder.operation_rejected(
            "adjust_fund_balance", "negative_balance_rejected", "would go negative"
        )
        assert event.event_type == AuditEventType.OPERATION_REJECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "negative_balance_rejected"
        assert event.details["operation"] == "adjust_fund_balance"

    def test_corrupt_document_archived_event(self):
        """Test the archive event names the backup."""
        event = AuditEventBuilder.corrupt_document_archived("data.corrupt.1.json", "bad json")
        assert event.details["backup"] == "data.corrupt.1.json"
        assert event.severity == AuditSeverity.WARNING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
