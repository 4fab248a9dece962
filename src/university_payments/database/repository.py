"""Repository layer for student, payment and fee structure persistence."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Iterable

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import FeeStructure, PaymentNotification, Student
from ..errors import (
    DuplicateFeeStructureError,
    DuplicatePaymentReferenceError,
    DuplicateStudentError,
    PaymentStorageError,
)

logger = logging.getLogger(__name__)


class PaymentRepository:
    """Repository for payment notification storage and queries."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def _scalars(self, statement) -> List[PaymentNotification]:
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Payment query failed: {e}")
            raise PaymentStorageError(str(e), e) from e
        return list(result.scalars().all())

    async def exists_by_reference(self, payment_reference: str) -> bool:
        """Check whether a payment with this reference is already stored."""
        try:
            result = await self.session.execute(
                select(PaymentNotification.id)
                .where(PaymentNotification.payment_reference == payment_reference)
                .limit(1)
            )
        except SQLAlchemyError as e:
            logger.error(f"Reference lookup failed for {payment_reference}: {e}")
            raise PaymentStorageError(str(e), e) from e
        return result.first() is not None

    async def create(
        self,
        student_number: str,
        payment_reference: str,
        amount_paid: Decimal,
        payment_date: datetime,
        payment_method: str = "M-Pesa",
        transaction_id: Optional[str] = None,
        receipt_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PaymentNotification:
        """Insert a new payment notification.

        The insert runs inside a SAVEPOINT so a constraint violation leaves
        the surrounding session usable.

        Args:
            student_number: Student the payment is made against.
            payment_reference: Bank-supplied unique reference.
            amount_paid: Amount paid.
            payment_date: When the bank recorded the payment.
            payment_method: Payment channel.
            transaction_id: Optional bank transaction identifier.
            receipt_number: Optional receipt number.
            notes: Optional free text.

        Returns:
            Created PaymentNotification instance with ``date_received`` set.

        Raises:
            DuplicatePaymentReferenceError: If the reference is already stored.
            PaymentStorageError: On any other database failure.
        """
        payment = PaymentNotification(
            student_number=student_number,
            payment_reference=payment_reference,
            amount_paid=amount_paid,
            payment_date=payment_date,
            payment_method=payment_method,
            transaction_id=transaction_id,
            receipt_number=receipt_number,
            notes=notes,
        )

        try:
            async with self.session.begin_nested():
                self.session.add(payment)
                await self.session.flush()
        except IntegrityError as e:
            logger.warning(f"Unique index rejected payment reference {payment_reference}")
            raise DuplicatePaymentReferenceError(payment_reference) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to store payment {payment_reference}: {e}")
            raise PaymentStorageError(str(e), e) from e

        logger.info(f"Created payment {payment.id} with reference {payment_reference}")
        return payment

    async def get_by_id(self, payment_id: int) -> Optional[PaymentNotification]:
        """Get a payment by its ID.

        Args:
            payment_id: Payment ID.

        Returns:
            PaymentNotification instance if found, None otherwise.
        """
        payments = await self._scalars(
            select(PaymentNotification).where(PaymentNotification.id == payment_id)
        )
        return payments[0] if payments else None

    async def get_by_reference(self, payment_reference: str) -> Optional[PaymentNotification]:
        payments = await self._scalars(
            select(PaymentNotification).where(
                PaymentNotification.payment_reference == payment_reference
            )
        )
        return payments[0] if payments else None

    async def list_all(self, limit: int = 100, offset: int = 0) -> List[PaymentNotification]:
        """List payments, most recently received first."""
        return await self._scalars(
            select(PaymentNotification)
            .order_by(PaymentNotification.date_received.desc(), PaymentNotification.id.desc())
            .limit(limit)
            .offset(offset)
        )

    async def list_by_student(self, student_number: str) -> List[PaymentNotification]:
        """List a student's payments, newest payment date first."""
        return await self._scalars(
            select(PaymentNotification)
            .where(PaymentNotification.student_number == student_number)
            .order_by(PaymentNotification.payment_date.desc(), PaymentNotification.id.desc())
        )

    async def list_by_date_range(
        self,
        start: datetime,
        end: datetime,
    ) -> List[PaymentNotification]:
        """List payments whose payment date falls within ``[start, end]``.

        Args:
            start: Inclusive lower bound.
            end: Inclusive upper bound.

        Returns:
            Payments ordered by payment date.
        """
        return await self._scalars(
            select(PaymentNotification)
            .where(PaymentNotification.payment_date >= start)
            .where(PaymentNotification.payment_date <= end)
            .order_by(PaymentNotification.payment_date, PaymentNotification.id)
        )

    async def list_by_references(self, references: Iterable[str]) -> Dict[str, PaymentNotification]:
        """Fetch stored payments keyed by reference for the given references."""
        refs = list(set(references))
        if not refs:
            return {}
        payments = await self._scalars(
            select(PaymentNotification).where(PaymentNotification.payment_reference.in_(refs))
        )
        return {p.payment_reference: p for p in payments}

    async def sum_by_student(self, student_number: str) -> Decimal:
        """Total amount paid by a student. Zero when there are no payments."""
        summary = await self.summarize_by_student(student_number)
        return summary["total_amount"]

    async def summarize_by_student(self, student_number: str) -> Dict[str, Any]:
        """Aggregate count, total and latest payment date for a student.

        Returns:
            Dict with ``total_payments``, ``total_amount`` and ``last_payment_date``.
        """
        try:
            result = await self.session.execute(
                select(
                    func.count(PaymentNotification.id),
                    func.sum(PaymentNotification.amount_paid),
                    func.max(PaymentNotification.payment_date),
                ).where(PaymentNotification.student_number == student_number)
            )
        except SQLAlchemyError as e:
            logger.error(f"Payment summary failed for {student_number}: {e}")
            raise PaymentStorageError(str(e), e) from e

        count, total, last_date = result.one()
        return {
            "total_payments": count or 0,
            "total_amount": Decimal(str(total)).quantize(Decimal("0.01")) if total is not None else Decimal("0.00"),
            "last_payment_date": last_date,
        }


class StudentRepository:
    """Repository for Student CRUD operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _scalars(self, statement) -> List[Student]:
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Student query failed: {e}")
            raise PaymentStorageError(str(e), e) from e
        return list(result.scalars().all())

    async def get_by_student_number(self, student_number: str) -> Optional[Student]:
        """Get a student by student number.

        Args:
            student_number: Student business key.

        Returns:
            Student instance if found, None otherwise.
        """
        students = await self._scalars(
            select(Student).where(Student.student_number == student_number)
        )
        return students[0] if students else None

    async def create(self, **fields: Any) -> Student:
        """Insert a student.

        Raises:
            DuplicateStudentError: If the student number is already taken.
            PaymentStorageError: On any other database failure.
        """
        student = Student(**fields)
        try:
            async with self.session.begin_nested():
                self.session.add(student)
                await self.session.flush()
        except IntegrityError as e:
            raise DuplicateStudentError(fields.get("student_number", "")) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to store student: {e}")
            raise PaymentStorageError(str(e), e) from e

        logger.info(f"Created student {student.student_number}")
        return student

    async def update(self, student: Student, **fields: Any) -> Student:
        """Apply field changes to a student and flush."""
        for name, value in fields.items():
            setattr(student, name, value)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update student {student.student_number}: {e}")
            raise PaymentStorageError(str(e), e) from e
        return student

    async def list_all(self, active_only: bool = False, limit: int = 100, offset: int = 0) -> List[Student]:
        statement = select(Student)
        if active_only:
            statement = statement.where(Student.is_active.is_(True))
        return await self._scalars(
            statement.order_by(Student.full_name, Student.student_number).limit(limit).offset(offset)
        )

    async def search(self, term: str, limit: int = 100) -> List[Student]:
        """Case-insensitive substring search over number, name and program."""
        pattern = f"%{term}%"
        return await self._scalars(
            select(Student)
            .where(
                or_(
                    Student.student_number.ilike(pattern),
                    Student.full_name.ilike(pattern),
                    Student.program.ilike(pattern),
                )
            )
            .order_by(Student.full_name, Student.student_number)
            .limit(limit)
        )


class FeeStructureRepository:
    """Repository for program fee structures."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _scalars(self, statement) -> List[FeeStructure]:
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Fee structure query failed: {e}")
            raise PaymentStorageError(str(e), e) from e
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> FeeStructure:
        """Insert a fee structure.

        Raises:
            DuplicateFeeStructureError: If the program already has fees for the term.
            PaymentStorageError: On any other database failure.
        """
        fee_structure = FeeStructure(**fields)
        try:
            async with self.session.begin_nested():
                self.session.add(fee_structure)
                await self.session.flush()
        except IntegrityError as e:
            raise DuplicateFeeStructureError(
                fields.get("program", ""), fields.get("academic_year", ""), fields.get("semester", "")
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to store fee structure: {e}")
            raise PaymentStorageError(str(e), e) from e

        logger.info(
            f"Created fee structure {fee_structure.id} for {fee_structure.program} "
            f"{fee_structure.academic_year} {fee_structure.semester}"
        )
        return fee_structure

    async def get_by_id(self, fee_structure_id: int) -> Optional[FeeStructure]:
        fee_structures = await self._scalars(
            select(FeeStructure).where(FeeStructure.id == fee_structure_id)
        )
        return fee_structures[0] if fee_structures else None

    async def update(self, fee_structure: FeeStructure, **fields: Any) -> FeeStructure:
        for name, value in fields.items():
            setattr(fee_structure, name, value)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update fee structure {fee_structure.id}: {e}")
            raise PaymentStorageError(str(e), e) from e
        return fee_structure

    async def list_all(self, program: Optional[str] = None, active_only: bool = False) -> List[FeeStructure]:
        statement = select(FeeStructure)
        if program is not None:
            statement = statement.where(FeeStructure.program == program)
        if active_only:
            statement = statement.where(FeeStructure.is_active.is_(True))
        return await self._scalars(
            statement.order_by(FeeStructure.program, FeeStructure.due_date, FeeStructure.id)
        )

    async def list_for_program(self, program: str) -> List[FeeStructure]:
        """Active fee structures charged to a program, earliest due first."""
        return await self.list_all(program=program, active_only=True)
