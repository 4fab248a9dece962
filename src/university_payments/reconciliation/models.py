"""Models for bank statement reconciliation."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field, field_validator

from ..clock import as_naive_utc, utcnow
from ..schemas import PaymentRecord


class DiscrepancyType(str, enum.Enum):
    """Types of discrepancies that can be found during reconciliation."""
    AMOUNT_MISMATCH = "amount_mismatch"
    STUDENT_NUMBER_MISMATCH = "student_number_mismatch"
    DATE_MISMATCH = "date_mismatch"
    DUPLICATE_BANK_RECORD = "duplicate_bank_record"
    MISSING_IN_SYSTEM = "missing_in_system"
    MISSING_IN_BANK = "missing_in_bank"


class ReconciliationStatus(str, enum.Enum):
    """Status of a reconciliation run."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class BankPaymentData(BaseModel):
    """A payment as reported on the bank statement."""
    payment_reference: str = Field(..., description="Bank-supplied payment reference")
    amount: Decimal = Field(..., description="Amount the bank recorded")
    payment_date: datetime = Field(..., description="When the bank recorded the payment")
    student_number: str = Field(..., description="Student number quoted on the payment")
    bank_transaction_id: Optional[str] = Field(None, description="Bank transaction ID")
    status: Optional[str] = Field(None, description="Pending, Completed, Failed or Cancelled")

    @field_validator("payment_date")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)


class MatchedRecord(BaseModel):
    """A bank record whose reference exists in the system."""
    payment_reference: str = Field(..., description="Shared payment reference")
    payment_id: int = Field(..., description="Stored payment ID")
    amount: Decimal = Field(..., description="Bank amount")
    student_number: str = Field(..., description="Bank student number")
    reconciled: bool = Field(..., description="True when no discrepancy was found")


class DiscrepancyRecord(BaseModel):
    """A single difference between the bank statement and stored payments."""
    payment_reference: str = Field(..., description="Payment reference concerned")
    discrepancy_type: DiscrepancyType = Field(..., description="Type of discrepancy")
    field_name: Optional[str] = Field(None, description="Name of the field with the discrepancy")
    system_value: Any = Field(None, description="Value stored in the system")
    bank_value: Any = Field(None, description="Value reported by the bank")
    description: str = Field(..., description="Human-readable description")
    detected_at: datetime = Field(default_factory=utcnow)


class ReconciliationResult(BaseModel):
    """Complete reconciliation result with all findings."""
    id: str = Field(..., description="Result ID")
    status: ReconciliationStatus = Field(default=ReconciliationStatus.PENDING)
    start_time: Optional[datetime] = Field(None, description="Start of the missing-payment window")
    end_time: Optional[datetime] = Field(None, description="End of the missing-payment window")
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(None, description="Time when reconciliation completed")

    # Statistics
    total_bank_records: int = Field(default=0)
    matched_count: int = Field(default=0)
    total_reconciled: int = Field(default=0)

    # Detailed records
    matched_records: List[MatchedRecord] = Field(default_factory=list)
    unmatched_bank_records: List[BankPaymentData] = Field(default_factory=list)
    missing_payments: List[PaymentRecord] = Field(default_factory=list)
    discrepancy_records: List[DiscrepancyRecord] = Field(default_factory=list)

    error_message: Optional[str] = Field(None, description="Error message if reconciliation failed")

    @property
    def discrepancies(self) -> List[str]:
        return [r.description for r in self.discrepancy_records]

    @property
    def total_discrepancies(self) -> int:
        return len(self.discrepancy_records)

    @property
    def reconciliation_successful(self) -> bool:
        return self.status == ReconciliationStatus.COMPLETED and not self.discrepancy_records

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return a summary of the result without detailed records."""
        return {
            "id": self.id,
            "status": self.status.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "statistics": {
                "total_bank_records": self.total_bank_records,
                "matched_count": self.matched_count,
                "unmatched_count": len(self.unmatched_bank_records),
                "missing_count": len(self.missing_payments),
                "total_discrepancies": self.total_discrepancies,
                "total_reconciled": self.total_reconciled,
                "match_rate": (
                    f"{(self.matched_count / self.total_bank_records * 100):.2f}%"
                    if self.total_bank_records > 0 else "N/A"
                ),
            },
            "reconciliation_successful": self.reconciliation_successful,
            "discrepancies": self.discrepancies,
            "error_message": self.error_message,
        }

    def to_full_dict(self) -> Dict[str, Any]:
        """Return the complete result including all records."""
        result = self.to_summary_dict()
        result["matched_records"] = [r.model_dump(mode="json") for r in self.matched_records]
        result["unmatched_bank_records"] = [r.model_dump(mode="json") for r in self.unmatched_bank_records]
        result["missing_payments"] = [r.model_dump(mode="json") for r in self.missing_payments]
        result["discrepancy_records"] = [r.model_dump(mode="json") for r in self.discrepancy_records]
        return result


class ReconciliationRequest(BaseModel):
    """Request model for reconciling a bank statement."""
    bank_records: List[BankPaymentData] = Field(..., description="Bank statement rows")
    start_time: Optional[datetime] = Field(None, description="Start of the missing-payment window")
    end_time: Optional[datetime] = Field(None, description="End of the missing-payment window")

    @field_validator("start_time", "end_time")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value is not None else None
