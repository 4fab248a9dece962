"""Student record service."""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .config import ValidationRules
from .database import Student, StudentRepository
from .errors import DuplicateStudentError, StudentNotFoundError, ValidationFailedError
from .schemas import StudentCreate, StudentUpdate
from .validation import validate_student

logger = logging.getLogger(__name__)


class StudentService:
    """Lookups and administrative changes to student records."""

    def __init__(self, session: AsyncSession, rules: Optional[ValidationRules] = None):
        """Initialize the service with a database session.

        Args:
            session: AsyncSession instance for database operations.
            rules: Field rules used when creating students.
        """
        self.session = session
        self.rules = rules or ValidationRules()
        self.student_repo = StudentRepository(session)

    async def get_student(self, student_number: str) -> Optional[Student]:
        """Resolve a student number to its record, or None if unknown."""
        return await self.student_repo.get_by_student_number(student_number)

    async def require_student(self, student_number: str) -> Student:
        student = await self.get_student(student_number)
        if student is None:
            raise StudentNotFoundError(student_number)
        return student

    async def create_student(self, data: StudentCreate) -> Student:
        """Create a student after validating its fields.

        Raises:
            ValidationFailedError: If any field rule fails.
            DuplicateStudentError: If the student number is already taken.
        """
        is_valid, errors = validate_student(data, self.rules)
        if not is_valid:
            raise ValidationFailedError(errors)

        if await self.get_student(data.student_number) is not None:
            raise DuplicateStudentError(data.student_number)

        student = await self.student_repo.create(**data.model_dump())
        logger.info(f"Student {student.student_number} created")
        return student

    async def list_students(self, active_only: bool = False) -> List[Student]:
        return await self.student_repo.list_all(active_only=active_only)

    async def search_students(self, term: str) -> List[Student]:
        term = term.strip()
        if not term:
            return []
        return await self.student_repo.search(term)

    async def update_student(self, student_number: str, data: StudentUpdate) -> Student:
        """Apply the fields set on ``data`` to an existing student."""
        student = await self.require_student(student_number)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        merged = StudentCreate(
            student_number=student.student_number,
            full_name=changes.get("full_name", student.full_name),
            program=changes.get("program", student.program),
            email=changes.get("email", student.email),
        )
        is_valid, errors = validate_student(merged, self.rules)
        if not is_valid:
            raise ValidationFailedError(errors)

        return await self.student_repo.update(student, **changes)

    async def set_active(self, student_number: str, is_active: bool) -> Student:
        """Set a student's enrollment flag.

        Raises:
            StudentNotFoundError: If the student does not exist.
        """
        student = await self.require_student(student_number)
        if student.is_active != is_active:
            logger.info(
                f"Student {student_number} marked {'active' if is_active else 'inactive'}"
            )
        return await self.student_repo.update(student, is_active=is_active)
