"""SQLAlchemy models for students, payment notifications and fee structures."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..clock import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Student(Base):
    """A student that payments can be made against."""
    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    program: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Contact details
    email: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    address: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    date_of_birth: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("ix_students_program", "program"),
        Index("ix_students_is_active", "is_active"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert student to dictionary representation."""
        return {
            "id": self.id,
            "student_number": self.student_number,
            "full_name": self.full_name,
            "program": self.program,
            "is_active": self.is_active,
            "email": self.email,
            "phone_number": self.phone_number,
            "address": self.address,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PaymentNotification(Base):
    """A payment reported by the bank. Rows are never updated after insert."""
    __tablename__ = "payment_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_number: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(50), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    date_received: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Channel details
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False, default="M-Pesa")
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    receipt_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_payment_notifications_reference", "payment_reference", unique=True),
        Index("ix_payment_notifications_student_number", "student_number"),
        Index("ix_payment_notifications_payment_date", "payment_date"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert payment to dictionary representation."""
        return {
            "id": self.id,
            "student_number": self.student_number,
            "payment_reference": self.payment_reference,
            "amount_paid": str(self.amount_paid),
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "date_received": self.date_received.isoformat() if self.date_received else None,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "receipt_number": self.receipt_number,
            "notes": self.notes,
        }


class FeeStructure(Base):
    """Fees charged to every student of a program for one semester."""
    __tablename__ = "fee_structures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    program: Mapped[str] = mapped_column(String(100), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)
    semester: Mapped[str] = mapped_column(String(50), nullable=False)

    tuition_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    library_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    laboratory_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    other_fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("ix_fee_structures_term", "program", "academic_year", "semester", unique=True),
    )

    @property
    def total_amount(self) -> Decimal:
        return (
            self.tuition_fee
            + self.registration_fee
            + self.library_fee
            + self.laboratory_fee
            + self.other_fees
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert fee structure to dictionary representation."""
        return {
            "id": self.id,
            "program": self.program,
            "academic_year": self.academic_year,
            "semester": self.semester,
            "tuition_fee": str(self.tuition_fee),
            "registration_fee": str(self.registration_fee),
            "library_fee": str(self.library_fee),
            "laboratory_fee": str(self.laboratory_fee),
            "other_fees": str(self.other_fees),
            "total_amount": str(self.total_amount),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_active": self.is_active,
            "description": self.description,
        }
