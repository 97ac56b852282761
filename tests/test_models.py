"""
Tests for the Household Ledger models

Test strategy:
1. Unit tests for the primitives (money, competency) and pydantic records
2. Service tests against the in-memory storage
3. No real Google API calls in tests (the Sheets adapter uses a fake client)
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from household_ledger.models import (
    JOINT,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Competency,
    InstallmentGroup,
    PaymentMethod,
    Person,
    RecurringDefinition,
    SavingsGoal,
    Transaction,
    TransactionType,
    format_money,
    halve,
    individual,
    is_joint,
    percent_of,
    split_evenly,
    to_money,
)


class TestMoney:
    """Tests for two-place decimal arithmetic."""

    def test_to_money_quantizes_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money("10.004") == Decimal("10.00")
        assert to_money(7) == Decimal("7.00")

    def test_to_money_rejects_float(self):
        with pytest.raises(TypeError):
            to_money(0.1)

    def test_to_money_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_money("abc")
        with pytest.raises(ValueError):
            to_money("NaN")

    def test_to_money_rejects_amounts_too_large_for_cents(self):
        with pytest.raises(ValueError, match="Not a monetary amount"):
            to_money("1e30")
        with pytest.raises(ValueError):
            to_money(Decimal("9" * 29))

    def test_percent_of(self):
        assert percent_of(Decimal("1000.00"), Decimal("10")) == Decimal("100.00")
        assert percent_of(Decimal("100.00"), Decimal("33.33")) == Decimal("33.33")

    def test_split_evenly_absorbs_remainder(self):
        assert split_evenly(Decimal("100.00"), 3) == Decimal("33.33")
        assert split_evenly(Decimal("100.00"), 6) == Decimal("16.67")

    def test_split_evenly_rejects_zero_parts(self):
        with pytest.raises(ValueError):
            split_evenly(Decimal("10.00"), 0)

    def test_halve_rounds_half_up(self):
        assert halve(Decimal("0.05")) == Decimal("0.03")

    def test_format_money_never_uses_exponent(self):
        assert format_money(Decimal("1E+3")) == "1000.00"

    def test_money_field_rejects_float(self):
        with pytest.raises(ValueError):
            SavingsGoal(name="Trip", target_amount=1500.5, owner=JOINT)

    def test_money_field_rejects_oversized_amount(self):
        with pytest.raises(ValidationError):
            SavingsGoal(name="Trip", target_amount="1e30", owner=JOINT)


class TestCompetency:
    """Tests for the accounting-month primitive."""

    def test_parse_and_format(self):
        competency = Competency.parse("3/2024")
        assert competency.month == 3
        assert competency.year == 2024
        assert str(competency) == "03/2024"

    def test_invalid_text(self):
        with pytest.raises(ValueError):
            Competency.parse("2024-03")
        with pytest.raises(ValueError):
            Competency.parse("13/2024")

    def test_ordering_is_chronological(self):
        months = [Competency.parse(t) for t in ("01/2025", "12/2024", "02/2024")]
        assert [str(c) for c in sorted(months)] == ["02/2024", "12/2024", "01/2025"]

    def test_leap_year_bounds(self):
        february = Competency.parse("02/2024")
        assert february.days_in_month == 29
        assert february.last_day == date(2024, 2, 29)
        assert february.day(31) == date(2024, 2, 29)

    def test_shift_crosses_years(self):
        assert str(Competency.parse("11/2024").shift(3)) == "02/2025"
        assert str(Competency.parse("01/2024").shift(-1)) == "12/2023"

    def test_field_accepts_text_and_serializes_to_text(self):
        transaction = Transaction(
            date=date(2024, 3, 1),
            type=TransactionType.EXPENSE,
            payment_method=PaymentMethod.CASH,
            person=JOINT,
            category="Casa",
            value="10",
            competency="04/2024",
        )
        assert transaction.competency == Competency(month=4, year=2024)
        dumped = json.loads(transaction.model_dump_json())
        assert dumped["competency"] == "04/2024"
        assert dumped["value"] == "10.00"

    def test_hashable(self):
        assert len({Competency.parse("03/2024"), Competency(month=3, year=2024)}) == 1


class TestLabels:
    """Tests for display-label parsing."""

    def test_label_match_ignores_accents_and_case(self):
        assert PaymentMethod.from_label("credito") == PaymentMethod.CREDIT
        assert PaymentMethod.from_label("DÉBITO") == PaymentMethod.DEBIT
        assert TransactionType.from_label("receita") == TransactionType.INCOME

    def test_falls_back_to_member_name(self):
        assert PaymentMethod.from_label("cash") == PaymentMethod.CASH
        assert TransactionType.from_label("EXPENSE") == TransactionType.EXPENSE

    def test_unknown_label(self):
        with pytest.raises(ValueError, match="Invalid PaymentMethod"):
            PaymentMethod.from_label("Boleto")


class TestPeople:
    """Tests for person references."""

    def test_joint_is_a_variant_not_a_name(self):
        assert is_joint(JOINT)
        assert not is_joint(individual(uuid4()))

    def test_person_cannot_split_with_itself(self):
        person = Person(name="Kaio")
        with pytest.raises(ValueError, match="cannot split"):
            Person(id=person.id, name="Kaio", split_with={person.id})

    def test_person_ref_round_trips_through_json(self):
        person_id = uuid4()
        transaction = Transaction(
            date=date(2024, 3, 1),
            type=TransactionType.INCOME,
            payment_method=PaymentMethod.PIX,
            person=individual(person_id),
            category="Salário",
            value="10",
            competency="03/2024",
        )
        restored = Transaction.model_validate_json(transaction.model_dump_json())
        assert restored.person == individual(person_id)


class TestRecords:
    """Tests for record-level invariants."""

    def test_installment_number_cannot_exceed_total(self):
        with pytest.raises(ValueError, match="exceeds group size"):
            InstallmentGroup(parent_purchase_id=uuid4(), installment_number=4, total_installments=3)

    def test_transaction_without_group_has_one_installment(self):
        transaction = Transaction(
            date=date(2024, 3, 1),
            type=TransactionType.EXPENSE,
            payment_method=PaymentMethod.PIX,
            person=JOINT,
            category="Casa",
            value="10",
            competency="03/2024",
        )
        assert transaction.total_installments == 1
        assert transaction.parent_purchase_id is None

    def test_recurring_end_before_start(self):
        with pytest.raises(ValueError, match="End date cannot be before start date"):
            RecurringDefinition(
                description="Aluguel",
                type=TransactionType.EXPENSE,
                payment_method=PaymentMethod.PIX,
                person=JOINT,
                category="Casa",
                value="1500",
                start_date=date(2024, 5, 1),
                end_date=date(2024, 4, 1),
            )

    def test_goal_progress(self):
        goal = SavingsGoal(name="Trip", target_amount="200", current_amount="50", owner=JOINT)
        assert goal.progress == Decimal("0.25")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            description="Budget created",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_to_sheets_row(self):
        event = AuditEventBuilder.csv_row_skipped(
            line_number=4,
            error_message="Incomplete line",
            correlation_id=uuid4(),
        )
        row = event.to_sheets_row()
        assert len(row) == 10
        assert row[2] == "csv_row_skipped"
        assert json.loads(row[8]) == {"line_number": 4}
        assert row[9] == "Incomplete line"

    def test_import_with_failures_is_a_warning(self):
        event = AuditEventBuilder.csv_imported(
            total=10, succeeded=9, failed=1, skipped=0, correlation_id=uuid4()
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.details["failed"] == 1

    def test_person_deleted_variants(self):
        migrated = AuditEventBuilder.person_deleted(uuid4(), uuid4())
        purged = AuditEventBuilder.person_deleted(uuid4(), None)
        assert migrated.event_type == AuditEventType.PERSON_MIGRATED
        assert purged.event_type == AuditEventType.PERSON_DELETED
