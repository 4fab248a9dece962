"""Fee structures and per-student balances.

A student owes the active fee structures of their program. Payments are
applied to those fees earliest due date first; anything left over is a
credit.
"""

import enum
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .clock import utcnow
from .config import ValidationRules
from .database import FeeStructure, FeeStructureRepository, PaymentRepository
from .errors import FeeStructureNotFoundError, ValidationFailedError
from .schemas import FeeBalance, FeeStructureCreate, FeeStructureUpdate, StudentBalanceSummary
from .students import StudentService
from .validation import validate_fee_structure

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class BalanceStatus(str, enum.Enum):
    PAID = "Paid"
    PARTIAL = "Partial"
    OUTSTANDING = "Outstanding"
    OVERDUE = "Overdue"
    NO_FEES = "No Fees"


class FeeService:
    """Administration of program fee structures."""

    def __init__(self, session: AsyncSession, rules: Optional[ValidationRules] = None):
        self.session = session
        self.rules = rules or ValidationRules()
        self.fee_repo = FeeStructureRepository(session)

    async def create_fee_structure(self, data: FeeStructureCreate) -> FeeStructure:
        """Store fees for a program and semester.

        Raises:
            ValidationFailedError: If any field rule fails.
            DuplicateFeeStructureError: If the program already has fees for the term.
        """
        is_valid, errors = validate_fee_structure(data, self.rules)
        if not is_valid:
            raise ValidationFailedError(errors)

        fields = data.model_dump()
        for name in ("program", "academic_year", "semester"):
            fields[name] = fields[name].strip()
        return await self.fee_repo.create(**fields)

    async def get_fee_structure(self, fee_structure_id: int) -> FeeStructure:
        fee_structure = await self.fee_repo.get_by_id(fee_structure_id)
        if fee_structure is None:
            raise FeeStructureNotFoundError(fee_structure_id)
        return fee_structure

    async def list_fee_structures(
        self,
        program: Optional[str] = None,
        active_only: bool = False,
    ) -> List[FeeStructure]:
        return await self.fee_repo.list_all(program=program, active_only=active_only)

    async def update_fee_structure(self, fee_structure_id: int, data: FeeStructureUpdate) -> FeeStructure:
        """Apply the fields set on ``data``, re-checking the merged fees."""
        fee_structure = await self.get_fee_structure(fee_structure_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        merged = FeeStructureCreate(
            program=fee_structure.program,
            academic_year=fee_structure.academic_year,
            semester=fee_structure.semester,
            tuition_fee=changes.get("tuition_fee", fee_structure.tuition_fee),
            registration_fee=changes.get("registration_fee", fee_structure.registration_fee),
            library_fee=changes.get("library_fee", fee_structure.library_fee),
            laboratory_fee=changes.get("laboratory_fee", fee_structure.laboratory_fee),
            other_fees=changes.get("other_fees", fee_structure.other_fees),
            due_date=changes.get("due_date", fee_structure.due_date),
        )
        is_valid, errors = validate_fee_structure(merged, self.rules)
        if not is_valid:
            raise ValidationFailedError(errors)

        logger.info(f"Fee structure {fee_structure_id} updated: {sorted(changes)}")
        return await self.fee_repo.update(fee_structure, **changes)


class BalanceService:
    """Balances computed from fee structures and stored payments."""

    def __init__(self, session: AsyncSession, rules: Optional[ValidationRules] = None):
        self.session = session
        self.fee_repo = FeeStructureRepository(session)
        self.payment_repo = PaymentRepository(session)
        self.student_service = StudentService(session, rules)

    async def get_balance_summary(
        self,
        student_number: str,
        now: Optional[datetime] = None,
    ) -> StudentBalanceSummary:
        """Fees, payments and what remains owed for a student.

        Args:
            student_number: Student to summarize.
            now: Reference time for overdue checks. Defaults to the current UTC time.

        Returns:
            StudentBalanceSummary with one FeeBalance per active fee structure.

        Raises:
            StudentNotFoundError: If the student does not exist.
        """
        now = now or utcnow()
        student = await self.student_service.require_student(student_number)
        fee_structures = await self.fee_repo.list_for_program(student.program)
        total_paid = await self.payment_repo.sum_by_student(student_number)

        balances: List[FeeBalance] = []
        remaining = total_paid
        for fee in sorted(fee_structures, key=lambda f: (f.due_date, f.id)):
            total = fee.total_amount.quantize(CENTS)
            applied = min(remaining, total)
            remaining -= applied
            outstanding = total - applied
            balances.append(FeeBalance(
                fee_structure_id=fee.id,
                academic_year=fee.academic_year,
                semester=fee.semester,
                total_amount=total,
                amount_paid=applied,
                outstanding_balance=outstanding,
                due_date=fee.due_date,
                status=_fee_status(applied, outstanding, fee.due_date, now).value,
            ))

        total_fees = sum((b.total_amount for b in balances), Decimal("0.00"))
        outstanding = sum((b.outstanding_balance for b in balances), Decimal("0.00"))
        unpaid = [b for b in balances if b.outstanding_balance > 0]

        if not balances:
            status = BalanceStatus.NO_FEES
        elif outstanding <= 0:
            status = BalanceStatus.PAID
        elif any(b.status == BalanceStatus.OVERDUE.value for b in unpaid):
            status = BalanceStatus.OVERDUE
        elif total_paid <= 0:
            status = BalanceStatus.OUTSTANDING
        else:
            status = BalanceStatus.PARTIAL

        logger.info(
            f"Balance for {student_number}: fees={total_fees}, paid={total_paid}, "
            f"outstanding={outstanding}, status={status.value}"
        )

        return StudentBalanceSummary(
            student_number=student.student_number,
            student_name=student.full_name,
            program=student.program,
            total_fees=total_fees.quantize(CENTS),
            total_paid=total_paid.quantize(CENTS),
            outstanding_balance=outstanding.quantize(CENTS),
            credit_balance=remaining.quantize(CENTS),
            next_payment_due=min((b.due_date for b in unpaid), default=None),
            payment_status=status.value,
            balances=balances,
        )

    async def get_outstanding_balance(self, student_number: str) -> Decimal:
        summary = await self.get_balance_summary(student_number)
        return summary.outstanding_balance


def _fee_status(applied: Decimal, outstanding: Decimal, due_date: datetime, now: datetime) -> BalanceStatus:
    if outstanding <= 0:
        return BalanceStatus.PAID
    if due_date < now:
        return BalanceStatus.OVERDUE
    if applied <= 0:
        return BalanceStatus.OUTSTANDING
    return BalanceStatus.PARTIAL
