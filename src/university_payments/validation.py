"""Field rules for payment notifications, bank records, students and fees.

Every check runs and every failure contributes its own message; callers get
the full list in one pass. An empty field yields only its "required" message.
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from .clock import as_naive_utc, utcnow, years_before
from .config import ValidationRules

STUDENT_NUMBER_PATTERN = re.compile(r"^[A-Z0-9]+$")
PAYMENT_REFERENCE_PATTERN = re.compile(r"^[A-Z0-9\-_]+$")
FULL_NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-']+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

BANK_STATUSES = ("Pending", "Completed", "Failed", "Cancelled")

FEE_COMPONENTS = (
    ("tuition_fee", "Tuition fee"),
    ("registration_fee", "Registration fee"),
    ("library_fee", "Library fee"),
    ("laboratory_fee", "Laboratory fee"),
    ("other_fees", "Other fees"),
)


def validate_payment(
    payment: Any,
    rules: Optional[ValidationRules] = None,
    now: Optional[datetime] = None,
) -> Tuple[bool, List[str]]:
    """Check an incoming payment notification.

    Args:
        payment: Object exposing ``student_number``, ``payment_reference``,
            ``amount_paid`` and ``payment_date``.
        rules: Limits to apply. Defaults to the canonical rule set.
        now: Reference time (naive UTC). Defaults to the current time.

    Returns:
        Tuple of (is_valid, error messages in check order).
    """
    rules = rules or ValidationRules()
    now = now or utcnow()

    errors: List[str] = []
    errors.extend(_check_student_number(payment.student_number, rules))
    errors.extend(_check_payment_reference(payment.payment_reference, rules))
    errors.extend(_check_amount(payment.amount_paid, rules, label="Amount paid"))
    errors.extend(_check_payment_date(payment.payment_date, rules, now, label="Payment date"))
    return not errors, errors


def validate_bank_record(
    record: Any,
    rules: Optional[ValidationRules] = None,
    now: Optional[datetime] = None,
) -> Tuple[bool, List[str]]:
    """Check a bank statement row before it is reconciled."""
    rules = rules or ValidationRules()
    now = now or utcnow()

    errors: List[str] = []
    errors.extend(_check_payment_reference(record.payment_reference, rules))
    errors.extend(_check_student_number(record.student_number, rules))
    errors.extend(_check_amount(record.amount, rules, label="Amount"))
    errors.extend(_check_payment_date(record.payment_date, rules, now, label="Transaction date"))

    status = getattr(record, "status", None)
    if status and status.lower() not in (s.lower() for s in BANK_STATUSES):
        errors.append(f"Status must be one of: {', '.join(BANK_STATUSES)}")
    return not errors, errors


def validate_student(student: Any, rules: Optional[ValidationRules] = None) -> Tuple[bool, List[str]]:
    """Check the fields of a student before it is created."""
    rules = rules or ValidationRules()
    errors: List[str] = []
    errors.extend(_check_student_number(student.student_number, rules))

    full_name = (student.full_name or "").strip()
    if not full_name:
        errors.append("Full name is required")
    else:
        if not 2 <= len(full_name) <= 100:
            errors.append("Full name must be between 2 and 100 characters")
        if not FULL_NAME_PATTERN.match(full_name):
            errors.append("Full name can only contain letters, spaces, hyphens, and apostrophes")

    program = (student.program or "").strip()
    if not program:
        errors.append("Program is required")
    elif not 2 <= len(program) <= 100:
        errors.append("Program must be between 2 and 100 characters")

    email = getattr(student, "email", "") or ""
    if email and not EMAIL_PATTERN.match(email):
        errors.append("Email must be a valid email address")

    return not errors, errors


def validate_fee_structure(fee: Any, rules: Optional[ValidationRules] = None) -> Tuple[bool, List[str]]:
    """Check a fee structure before it is stored."""
    rules = rules or ValidationRules()
    errors: List[str] = []

    for field, label in (("program", "Program"), ("academic_year", "Academic year"), ("semester", "Semester")):
        if not (getattr(fee, field) or "").strip():
            errors.append(f"{label} is required")

    total = Decimal("0")
    for field, label in FEE_COMPONENTS:
        amount = getattr(fee, field)
        if amount is None:
            continue
        if amount < 0:
            errors.append(f"{label} cannot be negative")
        if amount.as_tuple().exponent < -rules.max_decimal_places:
            errors.append(f"{label} cannot have more than {rules.max_decimal_places} decimal places")
        total += amount

    if total <= 0:
        errors.append("Total fees must be greater than 0")
    return not errors, errors


def _check_student_number(value: Optional[str], rules: ValidationRules) -> List[str]:
    if not value:
        return ["Student number is required"]
    errors = []
    if not rules.student_number_min_length <= len(value) <= rules.student_number_max_length:
        errors.append(
            f"Student number must be between {rules.student_number_min_length} "
            f"and {rules.student_number_max_length} characters"
        )
    if not STUDENT_NUMBER_PATTERN.match(value):
        errors.append("Student number must contain only uppercase letters and numbers")
    return errors


def _check_payment_reference(value: Optional[str], rules: ValidationRules) -> List[str]:
    if not value:
        return ["Payment reference is required"]
    errors = []
    if not rules.reference_min_length <= len(value) <= rules.reference_max_length:
        errors.append(
            f"Payment reference must be between {rules.reference_min_length} "
            f"and {rules.reference_max_length} characters"
        )
    if not PAYMENT_REFERENCE_PATTERN.match(value):
        errors.append(
            "Payment reference can only contain uppercase letters, numbers, hyphens, and underscores"
        )
    return errors


def _check_amount(value: Any, rules: ValidationRules, label: str) -> List[str]:
    if value is None:
        return [f"{label} is required"]
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return [f"{label} must be a valid number"]
    if not amount.is_finite():
        return [f"{label} must be a valid number"]

    errors = []
    if amount <= 0:
        errors.append(f"{label} must be greater than 0")
    if amount > rules.max_amount:
        errors.append(f"{label} cannot exceed {rules.max_amount:,}")
    if amount.as_tuple().exponent < -rules.max_decimal_places:
        errors.append(f"{label} cannot have more than {rules.max_decimal_places} decimal places")
    return errors


def _check_payment_date(
    value: Optional[datetime],
    rules: ValidationRules,
    now: datetime,
    label: str,
) -> List[str]:
    if value is None:
        return [f"{label} is required"]
    value = as_naive_utc(value)
    errors = []
    if value > now:
        errors.append(f"{label} cannot be in the future")
    if value <= years_before(now, rules.lookback_years):
        errors.append(f"{label} cannot be more than {rules.lookback_years} years ago")
    return errors
