"""HTTP API for student payments.

Run with ``uvicorn university_payments.api:create_app --factory``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .auth import Action, Resource, create_limiter, require_permission
from .clock import as_naive_utc
from .config import Settings, configure_logging
from .database import DatabaseManager
from .dependencies import get_balance_service, get_fee_service, get_payment_service, get_student_service
from .errors import PaymentsError
from .fees import BalanceService, FeeService
from .messaging import LoggingMessagePublisher, MessagePublisher
from .reconciliation.api import router as reconciliation_router
from .schemas import (
    BatchProcessingResult,
    FeeStructureCreate,
    FeeStructureRecord,
    FeeStructureUpdate,
    PaymentNotificationCreate,
    PaymentRecord,
    PaymentSummary,
    ProcessingResult,
    StudentBalanceSummary,
    StudentCreate,
    StudentRecord,
    StudentStatusUpdate,
    StudentUpdate,
    ValidationResult,
)
from .services import PaymentService
from .students import StudentService

logger = logging.getLogger(__name__)

payments_router = APIRouter(prefix="/payments", tags=["payments"])
students_router = APIRouter(prefix="/students", tags=["students"])
fees_router = APIRouter(prefix="/fees", tags=["fees"])

can_read_payments = require_permission(Resource.PAYMENTS, Action.READ)
can_create_payments = require_permission(Resource.PAYMENTS, Action.CREATE)
can_read_students = require_permission(Resource.STUDENTS, Action.READ)
can_create_students = require_permission(Resource.STUDENTS, Action.CREATE)
can_update_students = require_permission(Resource.STUDENTS, Action.UPDATE)
can_read_fees = require_permission(Resource.FEES, Action.READ)
can_create_fees = require_permission(Resource.FEES, Action.CREATE)
can_update_fees = require_permission(Resource.FEES, Action.UPDATE)


@payments_router.post("", response_model=ProcessingResult, status_code=201)
async def process_payment(
    body: PaymentNotificationCreate,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_create_payments),
):
    """
    Process a payment notification from the bank.

    Returns 201 with the stored payment on success and 400 with the
    processing result when the payment is rejected.
    """
    logger.info(f"Payment notification received with reference {body.payment_reference}")
    result = await service.process_payment(body)
    if not result.success:
        logger.warning(f"Payment processing failed: {result.message}")
        return JSONResponse(status_code=400, content=result.model_dump(mode="json"))
    return result


@payments_router.post("/validate", response_model=ValidationResult)
async def validate_payment(
    body: PaymentNotificationCreate,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    """Check a payment against the field rules without storing it."""
    is_valid, errors = service.validate_payment(body)
    return ValidationResult(is_valid=is_valid, errors=errors)


@payments_router.post("/batch", response_model=BatchProcessingResult)
async def process_batch(
    body: List[PaymentNotificationCreate],
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_create_payments),
):
    """Process several payment notifications independently, in order."""
    logger.info(f"Batch of {len(body)} payments received")
    return await service.process_batch(body)


@payments_router.get("", response_model=List[PaymentRecord])
async def list_payments(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    return await service.list_payments(limit=limit, offset=offset)


@payments_router.get("/range", response_model=List[PaymentRecord])
async def list_payments_by_date_range(
    start: datetime = Query(..., description="Inclusive start of the payment date range"),
    end: datetime = Query(..., description="Inclusive end of the payment date range"),
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    return await service.get_payments_by_date_range(as_naive_utc(start), as_naive_utc(end))


@payments_router.get("/reference/{payment_reference}", response_model=PaymentRecord)
async def get_payment_by_reference(
    payment_reference: str,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    return await service.get_payment_by_reference(payment_reference)


@payments_router.get("/validate-reference/{payment_reference}")
async def check_reference_available(
    payment_reference: str,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    """Report whether a payment reference is still unused."""
    available = await service.is_reference_available(payment_reference)
    return {"payment_reference": payment_reference, "is_available": available}


@payments_router.get("/student/{student_number}", response_model=List[PaymentRecord])
async def list_payments_by_student(
    student_number: str,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    return await service.get_payments_by_student(student_number)


@payments_router.get("/student/{student_number}/total")
async def get_total_paid_by_student(
    student_number: str,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    total: Decimal = await service.get_total_paid_by_student(student_number)
    return {"student_number": student_number, "total_amount": str(total)}


@payments_router.get("/student/{student_number}/summary", response_model=PaymentSummary)
async def get_payment_summary(
    student_number: str,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    return await service.get_payment_summary(student_number)


@payments_router.get("/{payment_id}", response_model=PaymentRecord)
async def get_payment(
    payment_id: int,
    service: PaymentService = Depends(get_payment_service),
    role: str = Depends(can_read_payments),
):
    return await service.get_payment(payment_id)


@students_router.post("", response_model=StudentRecord, status_code=201)
async def create_student(
    body: StudentCreate,
    service: StudentService = Depends(get_student_service),
    role: str = Depends(can_create_students),
):
    return await service.create_student(body)


@students_router.get("", response_model=List[StudentRecord])
async def list_students(
    active_only: bool = Query(default=False),
    service: StudentService = Depends(get_student_service),
    role: str = Depends(can_read_students),
):
    return await service.list_students(active_only=active_only)


@students_router.get("/search", response_model=List[StudentRecord])
async def search_students(
    q: str = Query(..., min_length=1, description="Student number, name or program fragment"),
    service: StudentService = Depends(get_student_service),
    role: str = Depends(can_read_students),
):
    return await service.search_students(q)


@students_router.get("/{student_number}", response_model=StudentRecord)
async def get_student(
    student_number: str,
    service: StudentService = Depends(get_student_service),
    role: str = Depends(can_read_students),
):
    return await service.require_student(student_number)


@students_router.put("/{student_number}", response_model=StudentRecord)
async def update_student(
    student_number: str,
    body: StudentUpdate,
    service: StudentService = Depends(get_student_service),
    role: str = Depends(can_update_students),
):
    return await service.update_student(student_number, body)


@students_router.patch("/{student_number}/status", response_model=StudentRecord)
async def set_student_status(
    student_number: str,
    body: StudentStatusUpdate,
    service: StudentService = Depends(get_student_service),
    role: str = Depends(can_update_students),
):
    return await service.set_active(student_number, body.is_active)


@students_router.get("/{student_number}/balance", response_model=StudentBalanceSummary)
async def get_student_balance(
    student_number: str,
    service: BalanceService = Depends(get_balance_service),
    role: str = Depends(can_read_fees),
):
    return await service.get_balance_summary(student_number)


@fees_router.post("", response_model=FeeStructureRecord, status_code=201)
async def create_fee_structure(
    body: FeeStructureCreate,
    service: FeeService = Depends(get_fee_service),
    role: str = Depends(can_create_fees),
):
    return await service.create_fee_structure(body)


@fees_router.get("", response_model=List[FeeStructureRecord])
async def list_fee_structures(
    program: Optional[str] = Query(default=None),
    active_only: bool = Query(default=False),
    service: FeeService = Depends(get_fee_service),
    role: str = Depends(can_read_fees),
):
    return await service.list_fee_structures(program=program, active_only=active_only)


@fees_router.get("/{fee_structure_id}", response_model=FeeStructureRecord)
async def get_fee_structure(
    fee_structure_id: int,
    service: FeeService = Depends(get_fee_service),
    role: str = Depends(can_read_fees),
):
    return await service.get_fee_structure(fee_structure_id)


@fees_router.put("/{fee_structure_id}", response_model=FeeStructureRecord)
async def update_fee_structure(
    fee_structure_id: int,
    body: FeeStructureUpdate,
    service: FeeService = Depends(get_fee_service),
    role: str = Depends(can_update_fees),
):
    return await service.update_fee_structure(fee_structure_id, body)


async def payments_error_handler(request: Request, exc: PaymentsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid value')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "REQUEST_VALIDATION_ERROR",
                "message": "The request could not be parsed.",
                "errors": errors,
            }
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
                "errors": [],
            }
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    publisher: Optional[MessagePublisher] = None,
    db: Optional[DatabaseManager] = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Application settings. Read from the environment if omitted.
        publisher: Sink for payment events. Defaults to logging them.
        db: Database manager to use. One is created from ``settings`` if
            omitted; a manager passed in is not shut down with the app.

    Returns:
        Configured FastAPI instance.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)
    owns_db = db is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not app.state.db.is_initialized:
            await app.state.db.initialize()
        yield
        if owns_db:
            await app.state.db.shutdown()

    app = FastAPI(title="University Payments API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db or DatabaseManager(settings.database_url, settings.database_echo)
    app.state.publisher = publisher or LoggingMessagePublisher()
    app.state.limiter = create_limiter(settings)

    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(PaymentsError, payments_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(payments_router)
    app.include_router(students_router)
    app.include_router(fees_router)
    app.include_router(reconciliation_router)

    @app.get("/health")
    async def health(request: Request):
        """Report service and database health."""
        try:
            async with request.app.state.db.session() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, RuntimeError) as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "service": "university-payments", "database": "unavailable"},
            )
        return {"status": "healthy", "service": "university-payments", "database": "ok"}

    return app
