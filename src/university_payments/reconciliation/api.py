"""API endpoints for reconciliation operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from ..auth import Action, Resource, require_permission
from ..dependencies import get_reconciliation_service
from .models import ReconciliationRequest
from .service import REPORT_FORMATS, ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.post("")
async def reconcile_payments(
    body: ReconciliationRequest,
    validate: bool = Query(default=True, description="Reject statements with invalid records"),
    service: ReconciliationService = Depends(get_reconciliation_service),
    role: str = Depends(require_permission(Resource.PAYMENTS, Action.READ)),
):
    """
    Reconcile a bank statement against stored payments.

    Returns summary statistics and the list of discrepancy descriptions.
    """
    logger.info(f"Reconciliation of {len(body.bank_records)} bank records requested by {role}")
    result = await service.reconcile(
        body.bank_records,
        start=body.start_time,
        end=body.end_time,
        validate=validate,
    )
    return result.to_summary_dict()


@router.post("/report")
async def create_reconciliation_report(
    body: ReconciliationRequest,
    include_details: bool = Query(default=True, description="Include detailed records"),
    format: str = Query(default="json", description="Output format: json, csv, text, detailed_text"),
    validate: bool = Query(default=True, description="Reject statements with invalid records"),
    service: ReconciliationService = Depends(get_reconciliation_service),
    role: str = Depends(require_permission(Resource.PAYMENTS, Action.READ)),
):
    """
    Reconcile a bank statement and return a formatted report.

    The report lists:
    - Matched records (bank records whose reference is stored)
    - Unmatched bank records (not found in the system)
    - Missing payments (stored in the window, absent from the statement)
    - Discrepancy records (field mismatches and duplicates)
    """
    if format not in REPORT_FORMATS:
        raise HTTPException(
            status_code=400,
            detail=f"format must be one of: {', '.join(REPORT_FORMATS)}"
        )

    result = await service.reconcile(
        body.bank_records,
        start=body.start_time,
        end=body.end_time,
        validate=validate,
    )

    if format == "json":
        return result.to_full_dict() if include_details else result.to_summary_dict()

    output = service.generate_report(result, format=format, include_details=include_details)
    content_type = "text/csv" if format == "csv" else "text/plain"
    return PlainTextResponse(content=output, media_type=content_type)
