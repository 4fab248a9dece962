"""Tests for payment, bank record, student and fee field rules."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from university_payments.clock import years_before
from university_payments.config import ValidationRules
from university_payments.schemas import PaymentNotificationCreate
from university_payments.validation import (
    validate_bank_record,
    validate_fee_structure,
    validate_payment,
    validate_student,
)

NOW = datetime(2024, 6, 15, 12, 0, 0)


def payment(**overrides):
    data = {
        "student_number": "S12345",
        "payment_reference": "REF001",
        "amount_paid": Decimal("5000.00"),
        "payment_date": NOW - timedelta(days=1),
    }
    data.update(overrides)
    return SimpleNamespace(**data)


class TestValidatePayment:
    """Tests for validate_payment."""

    def test_valid_payment(self):
        """A well-formed payment has no errors."""
        is_valid, errors = validate_payment(payment(), now=NOW)
        assert is_valid is True
        assert errors == []

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("-0.01")])
    def test_non_positive_amount(self, amount):
        """Amounts of zero or less are rejected."""
        is_valid, errors = validate_payment(payment(amount_paid=amount), now=NOW)
        assert is_valid is False
        assert "Amount paid must be greater than 0" in errors

    def test_amount_ceiling(self):
        """Amounts above the ceiling are rejected; the ceiling itself is allowed."""
        _, errors = validate_payment(payment(amount_paid=Decimal("1000000.01")), now=NOW)
        assert "Amount paid cannot exceed 1,000,000" in errors

        is_valid, _ = validate_payment(payment(amount_paid=Decimal("1000000")), now=NOW)
        assert is_valid is True

    def test_amount_decimal_places(self):
        """More than two decimal places is rejected."""
        _, errors = validate_payment(payment(amount_paid=Decimal("10.123")), now=NOW)
        assert "Amount paid cannot have more than 2 decimal places" in errors

    def test_float_amount_is_accepted(self):
        """Plain floats are checked through their decimal text."""
        is_valid, _ = validate_payment(payment(amount_paid=100.5), now=NOW)
        assert is_valid is True

    def test_future_date(self):
        """A payment dated after now is rejected."""
        _, errors = validate_payment(payment(payment_date=NOW + timedelta(seconds=1)), now=NOW)
        assert "Payment date cannot be in the future" in errors

    def test_date_equal_to_now_is_allowed(self):
        is_valid, _ = validate_payment(payment(payment_date=NOW), now=NOW)
        assert is_valid is True

    def test_lookback_window(self):
        """Payments older than the look-back window are rejected."""
        boundary = years_before(NOW, 10)
        _, errors = validate_payment(payment(payment_date=boundary), now=NOW)
        assert "Payment date cannot be more than 10 years ago" in errors

        is_valid, _ = validate_payment(payment(payment_date=boundary + timedelta(minutes=1)), now=NOW)
        assert is_valid is True

    def test_aware_date_is_compared_in_utc(self):
        """Timezone-aware dates are converted to UTC before comparison."""
        local = datetime(2024, 6, 15, 14, 30, tzinfo=timezone(timedelta(hours=3)))
        is_valid, _ = validate_payment(payment(payment_date=local), now=NOW)
        assert is_valid is True

    def test_missing_date(self):
        _, errors = validate_payment(payment(payment_date=None), now=NOW)
        assert errors == ["Payment date is required"]

    def test_notification_without_amount(self):
        """A notification that omits the amount reports it as required."""
        notification = PaymentNotificationCreate(
            student_number="S12345",
            payment_reference="REF001",
            payment_date=NOW - timedelta(days=1),
        )
        _, errors = validate_payment(notification, now=NOW)
        assert errors == ["Amount paid is required"]

    def test_short_reference(self):
        """Reference '123' is too short."""
        is_valid, errors = validate_payment(payment(payment_reference="123"), now=NOW)
        assert is_valid is False
        assert "Payment reference must be between 5 and 50 characters" in errors

    def test_reference_charset(self):
        """Lowercase and punctuation are not allowed in references."""
        _, errors = validate_payment(payment(payment_reference="ref-001!"), now=NOW)
        assert (
            "Payment reference can only contain uppercase letters, numbers, hyphens, and underscores"
            in errors
        )

    def test_reference_with_hyphen_and_underscore(self):
        is_valid, _ = validate_payment(payment(payment_reference="FB-2024_0001"), now=NOW)
        assert is_valid is True

    def test_empty_fields_report_only_required(self):
        """An empty field yields only its 'required' message."""
        _, errors = validate_payment(payment(student_number="", payment_reference=""), now=NOW)
        assert errors == ["Student number is required", "Payment reference is required"]

    def test_student_number_rules(self):
        _, errors = validate_payment(payment(student_number="s12"), now=NOW)
        assert errors == [
            "Student number must be between 5 and 20 characters",
            "Student number must contain only uppercase letters and numbers",
        ]

    def test_errors_accumulate_in_order(self):
        """Every failing check is reported, in field order."""
        bad = payment(
            student_number="",
            payment_reference="123",
            amount_paid=Decimal("0"),
            payment_date=NOW + timedelta(days=1),
        )
        is_valid, errors = validate_payment(bad, now=NOW)
        assert is_valid is False
        assert errors == [
            "Student number is required",
            "Payment reference must be between 5 and 50 characters",
            "Amount paid must be greater than 0",
            "Payment date cannot be in the future",
        ]

    def test_custom_rules(self):
        """Limits come from the rules object."""
        rules = ValidationRules(reference_min_length=10, lookback_years=5, max_amount=Decimal("500"))
        bad = payment(
            payment_reference="REF001",
            amount_paid=Decimal("600"),
            payment_date=years_before(NOW, 6),
        )
        _, errors = validate_payment(bad, rules, now=NOW)
        assert errors == [
            "Payment reference must be between 10 and 50 characters",
            "Amount paid cannot exceed 500",
            "Payment date cannot be more than 5 years ago",
        ]


class TestValidateBankRecord:
    """Tests for validate_bank_record."""

    def test_valid_record(self):
        record = SimpleNamespace(
            payment_reference="REF001",
            student_number="S12345",
            amount=Decimal("100.00"),
            payment_date=NOW,
            status="completed",
        )
        assert validate_bank_record(record, now=NOW) == (True, [])

    def test_unknown_status(self):
        record = SimpleNamespace(
            payment_reference="REF001",
            student_number="S12345",
            amount=Decimal("100.00"),
            payment_date=NOW,
            status="Reversed",
        )
        is_valid, errors = validate_bank_record(record, now=NOW)
        assert is_valid is False
        assert errors == ["Status must be one of: Pending, Completed, Failed, Cancelled"]

    def test_amount_messages(self):
        record = SimpleNamespace(
            payment_reference="REF001",
            student_number="S12345",
            amount=Decimal("-5"),
            payment_date=NOW,
            status=None,
        )
        _, errors = validate_bank_record(record, now=NOW)
        assert errors == ["Amount must be greater than 0"]


class TestValidateStudent:
    """Tests for validate_student."""

    def test_valid_student(self):
        student = SimpleNamespace(
            student_number="S12345", full_name="Mary-Jane O'Neil", program="Law", email="mj@uni.ac.ke"
        )
        assert validate_student(student) == (True, [])

    def test_invalid_fields(self):
        student = SimpleNamespace(student_number="S12345", full_name="J4ne", program="L", email="nope")
        _, errors = validate_student(student)
        assert errors == [
            "Full name can only contain letters, spaces, hyphens, and apostrophes",
            "Program must be between 2 and 100 characters",
            "Email must be a valid email address",
        ]


class TestValidateFeeStructure:
    """Tests for validate_fee_structure."""

    def fees(self, **overrides):
        data = {
            "program": "Law",
            "academic_year": "2024/2025",
            "semester": "Semester 1",
            "tuition_fee": Decimal("1000.00"),
            "registration_fee": Decimal("0"),
            "library_fee": Decimal("0"),
            "laboratory_fee": Decimal("0"),
            "other_fees": Decimal("0"),
        }
        data.update(overrides)
        return SimpleNamespace(**data)

    def test_valid(self):
        assert validate_fee_structure(self.fees()) == (True, [])

    def test_required_names(self):
        _, errors = validate_fee_structure(self.fees(program="", academic_year=" ", semester=None))
        assert errors == ["Program is required", "Academic year is required", "Semester is required"]

    def test_component_rules(self):
        _, errors = validate_fee_structure(
            self.fees(library_fee=Decimal("-5"), other_fees=Decimal("12.345"))
        )
        assert errors == [
            "Library fee cannot be negative",
            "Other fees cannot have more than 2 decimal places",
        ]

    def test_zero_total(self):
        _, errors = validate_fee_structure(self.fees(tuition_fee=Decimal("0")))
        assert errors == ["Total fees must be greater than 0"]

    def test_missing_component_is_skipped(self):
        assert validate_fee_structure(self.fees(laboratory_fee=None)) == (True, [])


class TestYearsBefore:
    def test_leap_day(self):
        """29 February falls back to the 28th in non-leap years."""
        assert years_before(datetime(2024, 2, 29, 8, 0), 1) == datetime(2023, 2, 28, 8, 0)
