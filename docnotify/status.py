"""Ledger and watermark status report."""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from docnotify.domain.models import ProcessedDocument, Watermark
from docnotify.persistence.database import get_session
from docnotify.persistence.repositories import DocumentLedger, WatermarkStore
from docnotify.utils.timestamps import format_display_timestamp


@dataclass
class StatusReport:
    watermark: Optional[Watermark] = None
    total: int = 0
    failed: int = 0
    recent: List[ProcessedDocument] = field(default_factory=list)


def collect_status(limit: int = 10, session_factory: Callable = get_session) -> StatusReport:
    """Read the watermark, ledger counts and the ``limit`` newest ledger rows."""
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got: {limit}")

    with session_factory() as session:
        ledger = DocumentLedger(session)
        return StatusReport(
            watermark=WatermarkStore(session).get_record(),
            total=ledger.count(),
            failed=ledger.count_failed(),
            recent=ledger.recent(limit),
        )


def format_status(report: StatusReport) -> str:
    lines = []
    if report.watermark is None:
        lines.append("Last successful query: never")
    else:
        lines.append(
            "Last successful query: "
            f"{format_display_timestamp(report.watermark.last_successful_query)}"
        )
        lines.append(f"Watermark updated at:  {format_display_timestamp(report.watermark.updated_at)}")

    lines.append(f"Processed documents:   {report.total}")
    lines.append(f"Failed documents:      {report.failed}")
    lines.append("")

    if not report.recent:
        lines.append("No processed documents yet")
        return "\n".join(lines)

    lines.append(f"Recent documents ({len(report.recent)}):")
    for row in report.recent:
        mark = "✗" if row.is_failed else "✓"
        processed = row.processed_at.strftime("%Y-%m-%d %H:%M")
        line = f"  {mark} {row.document_id}  {row.name}  {processed}"
        if row.error_message:
            line += f"  Error: {row.error_message}"
        lines.append(line)

    return "\n".join(lines)
