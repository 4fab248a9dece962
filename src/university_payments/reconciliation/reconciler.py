"""Reconciliation logic for comparing bank records with stored payments."""

import logging
from datetime import datetime, time, timedelta
from typing import List, Dict, Tuple, Set, Optional, Sequence

from ..clock import utcnow
from ..schemas import PaymentRecord
from .models import (
    BankPaymentData,
    MatchedRecord,
    DiscrepancyRecord,
    DiscrepancyType,
)

logger = logging.getLogger(__name__)


def statement_window(
    bank_records: Sequence[BankPaymentData],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Optional[Tuple[datetime, datetime]]:
    """Work out which stored payments the statement is expected to cover.

    An explicit bound wins. A missing bound falls back to the whole day of the
    earliest or latest bank payment date. With no bank records and no explicit
    bounds there is no window.
    """
    if bank_records:
        dates = [r.payment_date for r in bank_records]
        if start is None:
            start = datetime.combine(min(dates).date(), time.min)
        if end is None:
            end = datetime.combine(max(dates).date(), time.min) + timedelta(days=1) - timedelta(microseconds=1)

    if start is None or end is None:
        return None
    return start, end


class Reconciler:
    """Reconciliation engine matching bank records to stored payments by reference.

    The engine is pure: callers fetch the stored payments and pass them in.
    """

    def __init__(self, compare_dates: bool = True):
        """Initialize the reconciler.

        Args:
            compare_dates: If True, report payments whose calendar day differs.
        """
        self.compare_dates = compare_dates

    def _compare(
        self,
        stored: PaymentRecord,
        bank: BankPaymentData,
    ) -> List[DiscrepancyRecord]:
        """Compare a matched pair for discrepancies.

        Args:
            stored: Payment stored in the system.
            bank: Bank statement record with the same reference.

        Returns:
            List of DiscrepancyRecord for any found discrepancies.
        """
        discrepancies: List[DiscrepancyRecord] = []
        now = utcnow()
        ref = bank.payment_reference

        if stored.amount_paid != bank.amount:
            discrepancies.append(DiscrepancyRecord(
                payment_reference=ref,
                discrepancy_type=DiscrepancyType.AMOUNT_MISMATCH,
                field_name="amount",
                system_value=str(stored.amount_paid),
                bank_value=str(bank.amount),
                description=f"Amount mismatch for {ref}: DB={stored.amount_paid}, Bank={bank.amount}",
                detected_at=now,
            ))

        if stored.student_number != bank.student_number:
            discrepancies.append(DiscrepancyRecord(
                payment_reference=ref,
                discrepancy_type=DiscrepancyType.STUDENT_NUMBER_MISMATCH,
                field_name="student_number",
                system_value=stored.student_number,
                bank_value=bank.student_number,
                description=(
                    f"Student number mismatch for {ref}: "
                    f"DB={stored.student_number}, Bank={bank.student_number}"
                ),
                detected_at=now,
            ))

        if self.compare_dates and stored.payment_date.date() != bank.payment_date.date():
            discrepancies.append(DiscrepancyRecord(
                payment_reference=ref,
                discrepancy_type=DiscrepancyType.DATE_MISMATCH,
                field_name="payment_date",
                system_value=stored.payment_date.date().isoformat(),
                bank_value=bank.payment_date.date().isoformat(),
                description=(
                    f"Payment date mismatch for {ref}: "
                    f"DB={stored.payment_date.date().isoformat()}, "
                    f"Bank={bank.payment_date.date().isoformat()}"
                ),
                detected_at=now,
            ))

        return discrepancies

    def reconcile(
        self,
        bank_records: Sequence[BankPaymentData],
        stored_by_reference: Dict[str, PaymentRecord],
        window_payments: Sequence[PaymentRecord] = (),
    ) -> Tuple[List[MatchedRecord], List[BankPaymentData], List[PaymentRecord], List[DiscrepancyRecord]]:
        """Reconcile bank records against stored payments.

        Every bank record is classified exactly once, as matched or unmatched.
        A reference repeated within the bank data is counted again and also
        reported as a duplicate.

        Args:
            bank_records: Bank statement rows, in statement order.
            stored_by_reference: Stored payments for the bank references.
            window_payments: Stored payments within the statement window.

        Returns:
            Tuple of (matched, unmatched bank records, missing payments, discrepancies).
        """
        matched: List[MatchedRecord] = []
        unmatched: List[BankPaymentData] = []
        missing: List[PaymentRecord] = []
        discrepancies: List[DiscrepancyRecord] = []

        seen: Set[str] = set()

        logger.info(
            f"Starting reconciliation: {len(bank_records)} bank records, "
            f"{len(window_payments)} stored payments in window"
        )

        for bank in bank_records:
            ref = bank.payment_reference
            stored = stored_by_reference.get(ref)
            duplicate = ref in seen
            seen.add(ref)

            if duplicate:
                discrepancies.append(DiscrepancyRecord(
                    payment_reference=ref,
                    discrepancy_type=DiscrepancyType.DUPLICATE_BANK_RECORD,
                    bank_value=str(bank.amount),
                    description=f"Payment reference {ref} appears more than once in bank data",
                ))

            if stored is None:
                unmatched.append(bank)
                if not duplicate:
                    discrepancies.append(DiscrepancyRecord(
                        payment_reference=ref,
                        discrepancy_type=DiscrepancyType.MISSING_IN_SYSTEM,
                        bank_value=str(bank.amount),
                        description=f"Payment reference {ref} not found in system",
                    ))
                continue

            found = [] if duplicate else self._compare(stored, bank)
            discrepancies.extend(found)
            matched.append(MatchedRecord(
                payment_reference=ref,
                payment_id=stored.id,
                amount=bank.amount,
                student_number=bank.student_number,
                reconciled=not duplicate and not found,
            ))

        for payment in window_payments:
            if payment.payment_reference not in seen:
                missing.append(payment)
                discrepancies.append(DiscrepancyRecord(
                    payment_reference=payment.payment_reference,
                    discrepancy_type=DiscrepancyType.MISSING_IN_BANK,
                    system_value=str(payment.amount_paid),
                    description=f"Payment reference {payment.payment_reference} not found in bank data",
                ))

        # A duplicated reference is not reconciled on any of its records
        duplicated = {
            d.payment_reference for d in discrepancies
            if d.discrepancy_type == DiscrepancyType.DUPLICATE_BANK_RECORD
        }
        for record in matched:
            if record.payment_reference in duplicated:
                record.reconciled = False

        logger.info(
            f"Reconciliation complete: {len(matched)} matched, "
            f"{len(unmatched)} unmatched, {len(missing)} missing, "
            f"{len(discrepancies)} discrepancies"
        )

        return matched, unmatched, missing, discrepancies
