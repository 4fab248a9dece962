"""Report generation for reconciliation results."""

import json
import csv
import io

from .models import ReconciliationResult, DiscrepancyType


class ReportGenerator:
    """Generator for reconciliation reports in various formats."""

    def __init__(self, result: ReconciliationResult):
        """Initialize the report generator.

        Args:
            result: The reconciliation result to generate output from.
        """
        self.result = result

    def to_json(self, include_details: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the result.

        Args:
            include_details: If True, include all records. If False, only summary.
            indent: JSON indentation level.

        Returns:
            JSON string representation of the result.
        """
        if include_details:
            data = self.result.to_full_dict()
        else:
            data = self.result.to_summary_dict()
        return json.dumps(data, indent=indent, default=str)

    def to_csv(self, record_type: str = "all") -> str:
        """Generate CSV representation of specific record types.

        Args:
            record_type: Type of records to include ('matched', 'unmatched',
                        'missing', 'discrepancies', or 'all').

        Returns:
            CSV string with a shared header row.
        """
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([
            "type", "payment_reference", "student_number", "amount",
            "payment_date", "detail",
        ])

        if record_type in ("matched", "all"):
            for record in self.result.matched_records:
                writer.writerow([
                    "matched",
                    record.payment_reference,
                    record.student_number,
                    record.amount,
                    "",
                    "reconciled" if record.reconciled else "has discrepancies",
                ])

        if record_type in ("unmatched", "all"):
            for record in self.result.unmatched_bank_records:
                writer.writerow([
                    "unmatched",
                    record.payment_reference,
                    record.student_number,
                    record.amount,
                    record.payment_date.isoformat(),
                    record.bank_transaction_id or "",
                ])

        if record_type in ("missing", "all"):
            for payment in self.result.missing_payments:
                writer.writerow([
                    "missing",
                    payment.payment_reference,
                    payment.student_number,
                    payment.amount_paid,
                    payment.payment_date.isoformat(),
                    f"payment id {payment.id}",
                ])

        if record_type in ("discrepancies", "all"):
            for record in self.result.discrepancy_records:
                writer.writerow([
                    "discrepancy",
                    record.payment_reference,
                    "",
                    "",
                    "",
                    record.description,
                ])

        return output.getvalue()

    def to_summary_text(self) -> str:
        """Generate a human-readable text summary of the result."""
        summary = self.result.to_summary_dict()
        stats = summary["statistics"]

        lines = [
            "=" * 60,
            "RECONCILIATION REPORT SUMMARY",
            "=" * 60,
            f"Report ID: {summary['id']}",
            f"Status: {summary['status']}",
            f"Successful: {'yes' if summary['reconciliation_successful'] else 'no'}",
            "",
            "Window:",
            f"  Start: {summary['start_time'] or 'N/A'}",
            f"  End: {summary['end_time'] or 'N/A'}",
            "",
            "Statistics:",
            f"  Total Bank Records: {stats['total_bank_records']}",
            f"  Matched: {stats['matched_count']}",
            f"  Unmatched Bank Records: {stats['unmatched_count']}",
            f"  Missing From Bank Data: {stats['missing_count']}",
            f"  Discrepancies: {stats['total_discrepancies']}",
            f"  Reconciled: {stats['total_reconciled']}",
            f"  Match Rate: {stats['match_rate']}",
            "",
            f"Created At: {summary['created_at']}",
            f"Completed At: {summary['completed_at'] or 'N/A'}",
        ]

        if summary.get("error_message"):
            lines.extend([
                "",
                "Error:",
                f"  {summary['error_message']}",
            ])

        lines.append("=" * 60)

        return "\n".join(lines)

    def to_detailed_text(self) -> str:
        """Generate a detailed human-readable text report."""
        lines = [self.to_summary_text(), ""]

        if self.result.unmatched_bank_records:
            lines.extend([
                f"NOT FOUND IN SYSTEM ({len(self.result.unmatched_bank_records)})",
                "-" * 40,
            ])
            for r in self.result.unmatched_bank_records:
                lines.append(
                    f"  Reference: {r.payment_reference}, "
                    f"Student: {r.student_number}, "
                    f"Amount: {r.amount}, "
                    f"Date: {r.payment_date.date().isoformat()}"
                )
            lines.append("")

        if self.result.missing_payments:
            lines.extend([
                f"NOT FOUND IN BANK DATA ({len(self.result.missing_payments)})",
                "-" * 40,
            ])
            for p in self.result.missing_payments:
                lines.append(
                    f"  Reference: {p.payment_reference}, "
                    f"Student: {p.student_number}, "
                    f"Amount: {p.amount_paid}, "
                    f"Date: {p.payment_date.date().isoformat()}"
                )
            lines.append("")

        field_discrepancies = [
            r for r in self.result.discrepancy_records
            if r.discrepancy_type not in (DiscrepancyType.MISSING_IN_SYSTEM, DiscrepancyType.MISSING_IN_BANK)
        ]
        if field_discrepancies:
            lines.extend([
                "DISCREPANCY RECORDS",
                "-" * 40,
            ])
            for r in field_discrepancies:
                lines.extend([
                    f"\nReference: {r.payment_reference}",
                    f"  Type: {r.discrepancy_type.value}",
                    f"  {r.description}",
                ])
            lines.append("")

        if self.result.matched_records:
            lines.extend([
                "MATCHED RECORDS",
                "-" * 40,
                f"Total: {len(self.result.matched_records)} matched, "
                f"{self.result.total_reconciled} reconciled",
                "",
            ])

        return "\n".join(lines)
