"""Request and result models for payments, students and fees."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .clock import as_naive_utc


class PaymentNotificationCreate(BaseModel):
    """An incoming payment notification from the bank.

    Field formats are loose here; the business rules live in
    :func:`university_payments.validation.validate_payment` so every failing
    rule can be reported at once.
    """
    student_number: str = Field(default="", description="Student the payment is for")
    payment_reference: str = Field(default="", description="Bank-supplied unique reference")
    amount_paid: Optional[Decimal] = Field(default=None, description="Amount paid")
    payment_date: Optional[datetime] = Field(default=None, description="When the bank recorded the payment")
    payment_method: str = Field(default="M-Pesa", description="Payment channel")
    transaction_id: Optional[str] = Field(default=None, description="Bank transaction ID")
    receipt_number: Optional[str] = Field(default=None, description="Receipt number")
    notes: Optional[str] = Field(default=None, description="Free text notes")

    @field_validator("payment_date")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value is not None else None


class PaymentRecord(BaseModel):
    """A stored payment notification."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_number: str
    payment_reference: str
    amount_paid: Decimal
    payment_date: datetime
    date_received: datetime
    payment_method: str
    transaction_id: Optional[str] = None
    receipt_number: Optional[str] = None
    notes: Optional[str] = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


class ProcessingResult(BaseModel):
    """Outcome of processing a single payment notification."""
    success: bool
    message: str
    student_exists: bool = False
    student_is_active: bool = False
    processed_payment: Optional[PaymentRecord] = None
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class PaymentFailure(BaseModel):
    payment: PaymentNotificationCreate
    error_message: str


class BatchProcessingResult(BaseModel):
    """Aggregate outcome of a batch. ``results[i]`` belongs to input ``i``."""
    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    results: List[ProcessingResult] = Field(default_factory=list)
    successful_payments: List[PaymentRecord] = Field(default_factory=list)
    failed_payments: List[PaymentFailure] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class PaymentSummary(BaseModel):
    """Per-student payment totals."""
    student_number: str
    student_name: str = "Unknown"
    total_amount: Decimal = Decimal("0.00")
    total_payments: int = 0
    last_payment_date: Optional[datetime] = None
    average_amount: Decimal = Decimal("0.00")
    student_is_active: bool = False


class StudentCreate(BaseModel):
    student_number: str = Field(..., description="Unique student number")
    full_name: str = Field(..., description="Student full name")
    program: str = Field(..., description="Enrolled program")
    is_active: bool = Field(default=True, description="Whether the student is currently enrolled")
    email: str = ""
    phone_number: str = ""
    address: str = ""
    date_of_birth: Optional[datetime] = None


class StudentUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""
    full_name: Optional[str] = None
    program: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[datetime] = None


class StudentStatusUpdate(BaseModel):
    is_active: bool


class StudentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_number: str
    full_name: str
    program: str
    is_active: bool
    email: str = ""
    phone_number: str = ""
    address: str = ""
    date_of_birth: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FeeStructureCreate(BaseModel):
    """Fees for one program and semester."""
    program: str = Field(..., description="Program the fees apply to")
    academic_year: str = Field(..., description="Academic year, e.g. 2024/2025")
    semester: str = Field(..., description="Semester name")
    tuition_fee: Decimal = Field(default=Decimal("0"), description="Tuition fee")
    registration_fee: Decimal = Field(default=Decimal("0"), description="Registration fee")
    library_fee: Decimal = Field(default=Decimal("0"), description="Library fee")
    laboratory_fee: Decimal = Field(default=Decimal("0"), description="Laboratory fee")
    other_fees: Decimal = Field(default=Decimal("0"), description="Other fees")
    due_date: datetime = Field(..., description="When the semester fees are due")
    is_active: bool = True
    description: str = ""

    @field_validator("due_date")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)


class FeeStructureUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""
    tuition_fee: Optional[Decimal] = None
    registration_fee: Optional[Decimal] = None
    library_fee: Optional[Decimal] = None
    laboratory_fee: Optional[Decimal] = None
    other_fees: Optional[Decimal] = None
    due_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value is not None else None


class FeeStructureRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    program: str
    academic_year: str
    semester: str
    tuition_fee: Decimal
    registration_fee: Decimal
    library_fee: Decimal
    laboratory_fee: Decimal
    other_fees: Decimal
    total_amount: Decimal
    due_date: datetime
    is_active: bool
    description: str = ""


class FeeBalance(BaseModel):
    """Payments applied to one fee structure, earliest due first."""
    fee_structure_id: int
    academic_year: str
    semester: str
    total_amount: Decimal
    amount_paid: Decimal
    outstanding_balance: Decimal
    due_date: datetime
    status: str


class StudentBalanceSummary(BaseModel):
    """What a student owes against the fees of their program."""
    student_number: str
    student_name: str
    program: str
    total_fees: Decimal = Decimal("0.00")
    total_paid: Decimal = Decimal("0.00")
    outstanding_balance: Decimal = Decimal("0.00")
    credit_balance: Decimal = Decimal("0.00")
    next_payment_due: Optional[datetime] = None
    payment_status: str
    balances: List[FeeBalance] = Field(default_factory=list)
