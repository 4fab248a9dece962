"""Reconciliation of bank statements against stored payments.

Features:
- Load bank statements from CSV or JSON
- Match bank records to stored payments by payment reference
- Report unmatched records, missing payments and field discrepancies
- Generate reports as JSON, CSV or text
"""

from .models import (
    BankPaymentData,
    DiscrepancyType,
    ReconciliationStatus,
    MatchedRecord,
    DiscrepancyRecord,
    ReconciliationResult,
    ReconciliationRequest,
)
from .statements import (
    StatementLoaderBase,
    CsvStatementLoader,
    JsonStatementLoader,
    get_statement_loader,
)
from .reconciler import Reconciler, statement_window
from .service import ReconciliationService
from .report import ReportGenerator

__all__ = [
    # Models
    "BankPaymentData",
    "DiscrepancyType",
    "ReconciliationStatus",
    "MatchedRecord",
    "DiscrepancyRecord",
    "ReconciliationResult",
    "ReconciliationRequest",
    # Statement loaders
    "StatementLoaderBase",
    "CsvStatementLoader",
    "JsonStatementLoader",
    "get_statement_loader",
    # Core Components
    "Reconciler",
    "statement_window",
    "ReconciliationService",
    "ReportGenerator",
]
