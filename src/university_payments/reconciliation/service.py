"""Service layer for reconciliation operations."""

import uuid
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..config import ValidationRules
from ..database import PaymentRepository
from ..errors import PaymentStorageError, ReconciliationError, ValidationFailedError
from ..schemas import PaymentRecord
from ..validation import validate_bank_record
from .models import (
    BankPaymentData,
    ReconciliationResult,
    ReconciliationStatus,
)
from .reconciler import Reconciler, statement_window
from .report import ReportGenerator

logger = logging.getLogger(__name__)

REPORT_FORMATS = ("json", "csv", "text", "detailed_text")


class ReconciliationService:
    """Service for reconciling bank statements against stored payments."""

    def __init__(
        self,
        session: AsyncSession,
        rules: Optional[ValidationRules] = None,
        reconciler: Optional[Reconciler] = None,
    ):
        """Initialize the reconciliation service.

        Args:
            session: Async database session.
            rules: Field rules used to check bank records.
            reconciler: Optional engine instance. A default one is created if not provided.
        """
        self.session = session
        self.rules = rules or ValidationRules()
        self.payment_repo = PaymentRepository(session)
        self.reconciler = reconciler or Reconciler()

    def check_bank_records(self, bank_records: Sequence[BankPaymentData]) -> List[str]:
        """Field errors for the bank records, prefixed with each record's reference."""
        errors: List[str] = []
        for record in bank_records:
            _, record_errors = validate_bank_record(record, self.rules)
            errors.extend(
                f"Bank record {record.payment_reference or '?'}: {message}"
                for message in record_errors
            )
        return errors

    async def reconcile(
        self,
        bank_records: Sequence[BankPaymentData],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        validate: bool = False,
    ) -> ReconciliationResult:
        """Compare bank records with stored payments.

        Args:
            bank_records: Bank statement rows.
            start: Start of the missing-payment window. Defaults to the
                earliest bank payment day.
            end: End of the missing-payment window. Defaults to the end of
                the latest bank payment day.
            validate: If True, reject the statement when any record breaks
                the field rules.

        Returns:
            ReconciliationResult with results.

        Raises:
            ValidationFailedError: If ``validate`` is set and a record is invalid,
                or if ``start`` is after ``end``.
            ReconciliationError: If stored payments cannot be read.
        """
        if start is not None and end is not None and start > end:
            raise ValidationFailedError(["start_time must be before end_time"])

        if validate:
            errors = self.check_bank_records(bank_records)
            if errors:
                raise ValidationFailedError(errors, "Bank statement contains invalid records.")

        window = statement_window(bank_records, start, end)
        result = ReconciliationResult(
            id=str(uuid.uuid4()),
            status=ReconciliationStatus.IN_PROGRESS,
            start_time=window[0] if window else None,
            end_time=window[1] if window else None,
            total_bank_records=len(bank_records),
        )

        logger.info(f"Starting reconciliation {result.id} for {len(bank_records)} bank records")

        try:
            stored = await self.payment_repo.list_by_references(
                r.payment_reference for r in bank_records
            )
            in_window = await self.payment_repo.list_by_date_range(*window) if window else []
        except PaymentStorageError as e:
            logger.error(f"Reconciliation {result.id} failed: {e.detail}")
            raise ReconciliationError(str(e)) from e

        matched, unmatched, missing, discrepancies = self.reconciler.reconcile(
            bank_records=bank_records,
            stored_by_reference={
                ref: PaymentRecord.model_validate(p) for ref, p in stored.items()
            },
            window_payments=[PaymentRecord.model_validate(p) for p in in_window],
        )

        result.matched_records = matched
        result.matched_count = len(matched)
        result.total_reconciled = sum(1 for m in matched if m.reconciled)
        result.unmatched_bank_records = unmatched
        result.missing_payments = missing
        result.discrepancy_records = discrepancies
        result.status = ReconciliationStatus.COMPLETED
        result.completed_at = utcnow()

        logger.info(
            f"Reconciliation {result.id} completed: "
            f"{result.matched_count} matched, "
            f"{len(result.unmatched_bank_records)} unmatched, "
            f"{len(result.missing_payments)} missing, "
            f"{result.total_discrepancies} discrepancies"
        )
        return result

    def generate_report(
        self,
        result: ReconciliationResult,
        format: str = "json",
        include_details: bool = True,
    ) -> str:
        """Generate a formatted report from reconciliation results.

        Args:
            result: ReconciliationResult to format.
            format: Output format ('json', 'csv', 'text', 'detailed_text').
            include_details: Include detailed records (for JSON format).

        Returns:
            Formatted report string.
        """
        generator = ReportGenerator(result)

        if format == "json":
            return generator.to_json(include_details=include_details)
        elif format == "csv":
            return generator.to_csv(record_type="all")
        elif format == "text":
            return generator.to_summary_text()
        elif format == "detailed_text":
            return generator.to_detailed_text()
        else:
            raise ValueError(f"Unsupported report format: {format}")
