"""Exception hierarchy for the payments service.

Expected business outcomes (invalid fields, duplicate reference, unknown
student) are returned as result objects by the services. The exceptions here
cover lookups that must find something, conflicts on admin actions and
infrastructure failures.
"""

from typing import Any, Dict, List, Optional


class PaymentsError(Exception):
    """Base class for all service errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_response(self) -> Dict[str, Any]:
        """Return the JSON error envelope."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "errors": self.errors,
            }
        }


class PaymentNotFoundError(PaymentsError):
    code = "PAYMENT_NOT_FOUND"
    status_code = 404

    def __init__(self, identifier: Any):
        if isinstance(identifier, int):
            message = f"Payment with ID {identifier} was not found."
        else:
            message = f"Payment with reference {identifier} was not found."
        super().__init__(message)


class StudentNotFoundError(PaymentsError):
    code = "STUDENT_NOT_FOUND"
    status_code = 404

    def __init__(self, student_number: str):
        super().__init__(f"Student with number {student_number} was not found.")
        self.student_number = student_number


class DuplicateStudentError(PaymentsError):
    code = "DUPLICATE_STUDENT"
    status_code = 409

    def __init__(self, student_number: str):
        super().__init__(f"Student with number {student_number} already exists.")
        self.student_number = student_number


class FeeStructureNotFoundError(PaymentsError):
    code = "FEE_STRUCTURE_NOT_FOUND"
    status_code = 404

    def __init__(self, fee_structure_id: int):
        super().__init__(f"Fee structure with ID {fee_structure_id} was not found.")


class DuplicateFeeStructureError(PaymentsError):
    code = "DUPLICATE_FEE_STRUCTURE"
    status_code = 409

    def __init__(self, program: str, academic_year: str, semester: str):
        super().__init__(f"Fees for {program} {academic_year} {semester} already exist.")


class DuplicatePaymentReferenceError(PaymentsError):
    """Raised by the repository when the unique reference index rejects an insert."""

    code = "DUPLICATE_PAYMENT"
    status_code = 409

    def __init__(self, payment_reference: str):
        super().__init__(f"Payment reference {payment_reference} already exists")
        self.payment_reference = payment_reference


class ValidationFailedError(PaymentsError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, errors: List[str], message: str = "Validation failed. Please check the provided data."):
        super().__init__(message, errors)


class BatchTooLargeError(PaymentsError):
    code = "BATCH_TOO_LARGE"
    status_code = 400

    def __init__(self, size: int, limit: int):
        super().__init__(f"Cannot process more than {limit} payments at once (got {size})")
        self.size = size
        self.limit = limit


class StatementParseError(PaymentsError):
    code = "STATEMENT_PARSE_ERROR"
    status_code = 400


class PaymentStorageError(PaymentsError):
    """Wraps failures raised by the database layer."""

    code = "DATABASE_ERROR"
    status_code = 500

    def __init__(self, detail: str = "", cause: Optional[BaseException] = None):
        super().__init__("Database operation failed.")
        # Driver text and SQL stay server side
        self.detail = detail
        self.__cause__ = cause


class ReconciliationError(PaymentsError):
    code = "RECONCILIATION_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(f"Reconciliation failed: {message}")
