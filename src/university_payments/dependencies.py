"""FastAPI dependencies that build request-scoped services."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db
from .fees import BalanceService, FeeService
from .reconciliation.service import ReconciliationService
from .services import PaymentService
from .students import StudentService


async def get_payment_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> PaymentService:
    return PaymentService(db, request.app.state.settings, request.app.state.publisher)


async def get_student_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> StudentService:
    return StudentService(db, request.app.state.settings.validation)


async def get_reconciliation_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ReconciliationService:
    return ReconciliationService(db, request.app.state.settings.validation)


async def get_fee_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> FeeService:
    return FeeService(db, request.app.state.settings.validation)


async def get_balance_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> BalanceService:
    return BalanceService(db, request.app.state.settings.validation)
