"""Tests for the student service."""

import pytest

from university_payments.errors import (
    DuplicateStudentError,
    StudentNotFoundError,
    ValidationFailedError,
)
from university_payments.schemas import StudentCreate, StudentUpdate
from university_payments.students import StudentService


@pytest.fixture
def service(db_session):
    return StudentService(db_session)


class TestStudentLookup:
    """Tests for resolving student numbers."""

    async def test_get_existing_student(self, service, students):
        student = await service.get_student("S12345")
        assert student is not None
        assert student.full_name == "Jane Wanjiku"
        assert student.is_active is True

    async def test_get_unknown_student(self, service, students):
        assert await service.get_student("UNKNOWN1") is None

    async def test_require_unknown_student(self, service):
        with pytest.raises(StudentNotFoundError):
            await service.require_student("UNKNOWN1")


class TestStudentAdministration:
    """Tests for creating and changing students."""

    async def test_create_student(self, service):
        student = await service.create_student(
            StudentCreate(student_number="S20001", full_name="Amina Hassan", program="Nursing")
        )
        assert student.id is not None
        assert student.is_active is True
        assert student.created_at is not None

    async def test_create_duplicate(self, service, students):
        with pytest.raises(DuplicateStudentError):
            await service.create_student(
                StudentCreate(student_number="S12345", full_name="Someone Else", program="Law")
            )

    async def test_create_invalid(self, service):
        with pytest.raises(ValidationFailedError) as exc_info:
            await service.create_student(
                StudentCreate(student_number="bad", full_name="X", program="Law")
            )
        assert "Student number must contain only uppercase letters and numbers" in exc_info.value.errors
        assert "Full name must be between 2 and 100 characters" in exc_info.value.errors

    async def test_list_and_filter(self, service, students):
        everyone = await service.list_students()
        active = await service.list_students(active_only=True)
        assert {s.student_number for s in everyone} == {"S12345", "S54321"}
        assert [s.student_number for s in active] == ["S12345"]

    async def test_search(self, service, students):
        assert [s.student_number for s in await service.search_students("econ")] == ["S54321"]
        assert [s.student_number for s in await service.search_students("s123")] == ["S12345"]
        assert await service.search_students("   ") == []

    async def test_set_active(self, service, students):
        student = await service.set_active("S54321", True)
        assert student.is_active is True
        assert (await service.get_student("S54321")).is_active is True

    async def test_set_active_unknown(self, service):
        with pytest.raises(StudentNotFoundError):
            await service.set_active("UNKNOWN1", False)

    async def test_update_student(self, service, students):
        student = await service.update_student(
            "S12345", StudentUpdate(program="Software Engineering", email="jane@uni.ac.ke")
        )
        assert student.program == "Software Engineering"
        assert student.email == "jane@uni.ac.ke"
        assert student.full_name == "Jane Wanjiku"

    async def test_update_rejects_invalid_email(self, service, students):
        with pytest.raises(ValidationFailedError):
            await service.update_student("S12345", StudentUpdate(email="not-an-email"))
