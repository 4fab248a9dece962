"""Bank statement loaders for reconciliation input."""

import csv
import io
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Dict, Any, Union, Optional

from pydantic import ValidationError

from ..errors import StatementParseError
from .models import BankPaymentData

logger = logging.getLogger(__name__)

STATEMENT_COLUMNS = (
    "payment_reference",
    "amount",
    "payment_date",
    "student_number",
    "bank_transaction_id",
    "status",
)


class StatementLoaderBase(ABC):
    """Base class for bank statement loaders."""

    @abstractmethod
    def parse(self, content: str) -> List[BankPaymentData]:
        """Parse statement text into bank records.

        Args:
            content: Raw statement text.

        Returns:
            List of BankPaymentData in statement order.

        Raises:
            StatementParseError: If the content is malformed.
        """
        raise NotImplementedError

    def load(self, path: Union[str, Path]) -> List[BankPaymentData]:
        """Read and parse a statement file."""
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8-sig")
        except OSError as e:
            raise StatementParseError(f"Cannot read statement file {path}: {e}") from e
        records = self.parse(content)
        logger.info(f"Loaded {len(records)} bank records from {path}")
        return records

    @staticmethod
    def _build(row: Dict[str, Any], position: int) -> BankPaymentData:
        cleaned = {
            key: (value.strip() if isinstance(value, str) else value)
            for key, value in row.items()
            if key in STATEMENT_COLUMNS
        }
        for optional in ("bank_transaction_id", "status"):
            if cleaned.get(optional) == "":
                cleaned[optional] = None
        try:
            return BankPaymentData(**cleaned)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise StatementParseError(f"Invalid bank record {position}: {problems}") from e


class CsvStatementLoader(StatementLoaderBase):
    """Loads CSV statements with a header row naming the record fields."""

    def parse(self, content: str) -> List[BankPaymentData]:
        reader = csv.DictReader(io.StringIO(content))
        if not reader.fieldnames:
            return []

        headers = [h.strip() for h in reader.fieldnames]
        required = {"payment_reference", "amount", "payment_date", "student_number"}
        absent = required - set(headers)
        if absent:
            raise StatementParseError(
                f"Statement is missing required columns: {', '.join(sorted(absent))}"
            )
        reader.fieldnames = headers

        records = []
        for position, row in enumerate(reader, start=1):
            if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                continue
            records.append(self._build(row, position))
        return records


class JsonStatementLoader(StatementLoaderBase):
    """Loads JSON statements: a list of records or ``{"payments": [...]}``."""

    def parse(self, content: str) -> List[BankPaymentData]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StatementParseError(f"Statement is not valid JSON: {e}") from e

        if isinstance(data, dict):
            data = data.get("payments", data.get("bank_records"))
        if not isinstance(data, list):
            raise StatementParseError("Statement must be a list of bank records")

        records = []
        for position, row in enumerate(data, start=1):
            if not isinstance(row, dict):
                raise StatementParseError(f"Invalid bank record {position}: expected an object")
            records.append(self._build(row, position))
        return records


_LOADERS = {
    "csv": CsvStatementLoader,
    "json": JsonStatementLoader,
}


def get_statement_loader(
    statement_format: Optional[str] = None,
    path: Optional[Union[str, Path]] = None,
) -> StatementLoaderBase:
    """Get a loader by format name, or by file extension when no format is given.

    Raises:
        ValueError: If the format is not supported.
    """
    fmt = statement_format
    if fmt is None and path is not None:
        fmt = Path(path).suffix.lstrip(".")
    fmt = (fmt or "csv").lower()

    loader_class = _LOADERS.get(fmt)
    if loader_class is None:
        raise ValueError(f"Unsupported statement format: {fmt}. Supported: {', '.join(_LOADERS)}")
    return loader_class()
