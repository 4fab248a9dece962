"""Database layer for students, payment notifications and fee structures."""

from .models import Base, FeeStructure, Student, PaymentNotification
from .repository import FeeStructureRepository, PaymentRepository, StudentRepository
from .session import (
    DatabaseManager,
    create_async_engine,
    create_tables,
    get_async_session_factory,
    get_db,
)

__all__ = [
    "Base",
    "Student",
    "PaymentNotification",
    "FeeStructure",
    "FeeStructureRepository",
    "PaymentRepository",
    "StudentRepository",
    "DatabaseManager",
    "create_async_engine",
    "create_tables",
    "get_async_session_factory",
    "get_db",
]
