"""Payment service: validation, processing, batches and queries."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings
from .database import PaymentNotification, PaymentRepository
from .errors import (
    BatchTooLargeError,
    DuplicatePaymentReferenceError,
    PaymentNotFoundError,
    PaymentStorageError,
    ValidationFailedError,
)
from .messaging import (
    LoggingMessagePublisher,
    MessagePublisher,
    PaymentFailedMessage,
    PaymentProcessedMessage,
    PaymentValidationMessage,
)
from .schemas import (
    BatchProcessingResult,
    PaymentFailure,
    PaymentNotificationCreate,
    PaymentRecord,
    PaymentSummary,
    ProcessingResult,
)
from .students import StudentService
from .validation import validate_payment

logger = logging.getLogger(__name__)

STUDENT_NOT_FOUND_MESSAGE = "Payment received but student not found."


class PaymentService:
    """Service class for payment notifications with persistence."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        publisher: Optional[MessagePublisher] = None,
    ):
        """Initialize the service with a database session.

        Args:
            session: AsyncSession instance for database operations.
            settings: Validation rules and processing policy.
            publisher: Sink for payment events. Defaults to logging them.
        """
        self.session = session
        self.settings = settings or Settings()
        self.rules = self.settings.validation
        self.publisher = publisher or LoggingMessagePublisher()
        self.payment_repo = PaymentRepository(session)
        self.student_service = StudentService(session, self.rules)

    def validate_payment(
        self,
        payment: PaymentNotificationCreate,
        now: Optional[datetime] = None,
    ) -> Tuple[bool, List[str]]:
        """Run the field rules against a payment without touching storage."""
        return validate_payment(payment, self.rules, now)

    async def process_payment(self, payment: PaymentNotificationCreate) -> ProcessingResult:
        """Validate, deduplicate and store a single payment notification.

        Expected business outcomes (invalid fields, duplicate reference,
        unknown student) come back as an unsuccessful result.

        Args:
            payment: Incoming notification.

        Returns:
            ProcessingResult describing the outcome.

        Raises:
            PaymentStorageError: If the database fails.
        """
        reference = payment.payment_reference

        is_valid, errors = self.validate_payment(payment)
        if not is_valid:
            message = f"Payment validation failed: {'; '.join(errors)}"
            logger.info(f"Payment {reference} failed validation: {errors}")
            await self._publish_validation(payment, errors, message)
            return ProcessingResult(success=False, message=message, errors=errors)

        if await self.payment_repo.exists_by_reference(reference):
            return await self._duplicate_result(payment)

        student = await self.student_service.get_student(payment.student_number)
        if student is None:
            logger.warning(f"Payment {reference} references unknown student {payment.student_number}")
            await self._publish_failed(payment, STUDENT_NOT_FOUND_MESSAGE)
            return ProcessingResult(
                success=False,
                message=STUDENT_NOT_FOUND_MESSAGE,
                student_exists=False,
                errors=[STUDENT_NOT_FOUND_MESSAGE],
            )

        warnings: List[str] = []
        if not student.is_active:
            if self.settings.reject_inactive_students:
                message = f"Student {student.student_number} is not currently enrolled. Payment rejected."
                await self._publish_failed(payment, message)
                return ProcessingResult(
                    success=False,
                    message=message,
                    student_exists=True,
                    student_is_active=False,
                    errors=[message],
                )
            warnings.append(f"Student {student.student_number} is not currently enrolled.")

        try:
            stored = await self.payment_repo.create(
                student_number=payment.student_number,
                payment_reference=reference,
                amount_paid=Decimal(str(payment.amount_paid)),
                payment_date=payment.payment_date,
                payment_method=payment.payment_method,
                transaction_id=payment.transaction_id,
                receipt_number=payment.receipt_number,
                notes=payment.notes,
            )
        except DuplicatePaymentReferenceError:
            # Another request stored the same reference after our existence check
            return await self._duplicate_result(payment)

        if student.is_active:
            message = "Payment processed successfully. Student is currently enrolled."
        else:
            message = "Payment processed successfully. Student is not currently enrolled."

        await self._publish(
            PaymentProcessedMessage(
                payment_reference=reference,
                student_number=payment.student_number,
                amount=stored.amount_paid,
                payment_date=stored.payment_date,
                message=message,
                student_exists=True,
                student_is_active=student.is_active,
            )
        )

        return ProcessingResult(
            success=True,
            message=message,
            student_exists=True,
            student_is_active=student.is_active,
            processed_payment=PaymentRecord.model_validate(stored),
            warnings=warnings,
        )

    async def process_batch(self, payments: Sequence[PaymentNotificationCreate]) -> BatchProcessingResult:
        """Process each payment independently, preserving input order.

        Args:
            payments: Notifications to process.

        Returns:
            BatchProcessingResult where ``results[i]`` belongs to ``payments[i]``.

        Raises:
            BatchTooLargeError: If more than ``max_batch_size`` payments are given.
        """
        limit = self.settings.max_batch_size
        if len(payments) > limit:
            raise BatchTooLargeError(len(payments), limit)

        batch = BatchProcessingResult(total_processed=len(payments))
        for payment in payments:
            try:
                result = await self.process_payment(payment)
            except PaymentStorageError as e:
                logger.error(f"Storage failure while processing {payment.payment_reference}: {e.detail}")
                result = ProcessingResult(success=False, message=e.message, errors=[e.message])

            batch.results.append(result)
            if result.success:
                batch.successful += 1
                batch.successful_payments.append(result.processed_payment)
            else:
                batch.failed += 1
                batch.failed_payments.append(
                    PaymentFailure(payment=payment, error_message=result.message)
                )
                batch.errors.append(f"Payment {payment.payment_reference}: {result.message}")

        logger.info(
            f"Batch processed: {batch.successful} succeeded, {batch.failed} failed "
            f"of {batch.total_processed}"
        )
        return batch

    async def get_payment_summary(self, student_number: str) -> PaymentSummary:
        """Totals for a student's payments. Zeroes when there are none."""
        student = await self.student_service.get_student(student_number)
        stats = await self.payment_repo.summarize_by_student(student_number)

        count = stats["total_payments"]
        total = stats["total_amount"]
        average = (total / count).quantize(Decimal("0.01")) if count else Decimal("0.00")

        return PaymentSummary(
            student_number=student_number,
            student_name=student.full_name if student else "Unknown",
            total_amount=total,
            total_payments=count,
            last_payment_date=stats["last_payment_date"],
            average_amount=average,
            student_is_active=student.is_active if student else False,
        )

    async def get_payment(self, payment_id: int) -> PaymentNotification:
        payment = await self.payment_repo.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def get_payment_by_reference(self, payment_reference: str) -> PaymentNotification:
        payment = await self.payment_repo.get_by_reference(payment_reference)
        if payment is None:
            raise PaymentNotFoundError(payment_reference)
        return payment

    async def list_payments(self, limit: int = 100, offset: int = 0) -> List[PaymentNotification]:
        return await self.payment_repo.list_all(limit=limit, offset=offset)

    async def get_payments_by_student(self, student_number: str) -> List[PaymentNotification]:
        return await self.payment_repo.list_by_student(student_number)

    async def get_payments_by_date_range(self, start: datetime, end: datetime) -> List[PaymentNotification]:
        """Payments dated within ``[start, end]``.

        Raises:
            ValidationFailedError: If ``start`` is after ``end``.
        """
        if start > end:
            raise ValidationFailedError(["Start date must be before end date"])
        return await self.payment_repo.list_by_date_range(start, end)

    async def get_total_paid_by_student(self, student_number: str) -> Decimal:
        return await self.payment_repo.sum_by_student(student_number)

    async def is_reference_available(self, payment_reference: str) -> bool:
        return not await self.payment_repo.exists_by_reference(payment_reference)

    async def _duplicate_result(self, payment: PaymentNotificationCreate) -> ProcessingResult:
        message = f"Payment reference {payment.payment_reference} already exists"
        logger.warning(message)
        await self._publish_failed(payment, message)
        return ProcessingResult(success=False, message=message, errors=[message])

    async def _publish_failed(self, payment: PaymentNotificationCreate, reason: str) -> None:
        await self._publish(
            PaymentFailedMessage(
                payment_reference=payment.payment_reference,
                student_number=payment.student_number,
                amount=payment.amount_paid,
                payment_date=payment.payment_date,
                message=reason,
                error_reason=reason,
            )
        )

    async def _publish_validation(
        self,
        payment: PaymentNotificationCreate,
        errors: List[str],
        message: str,
    ) -> None:
        await self._publish(
            PaymentValidationMessage(
                payment_reference=payment.payment_reference,
                student_number=payment.student_number,
                amount=payment.amount_paid,
                payment_date=payment.payment_date,
                message=message,
                validation_errors=errors,
            )
        )

    async def _publish(self, message) -> None:
        try:
            if isinstance(message, PaymentProcessedMessage):
                await self.publisher.publish_payment_processed(message)
            elif isinstance(message, PaymentFailedMessage):
                await self.publisher.publish_payment_failed(message)
            else:
                await self.publisher.publish_payment_validation(message)
        except Exception as e:
            logger.warning(
                f"Failed to publish {message.message_type} message for "
                f"{message.payment_reference}: {e}"
            )
