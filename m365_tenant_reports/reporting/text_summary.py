"""
Plain-text summaries — per report, and the combined tenant summary produced
by chaining several reports in one run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from ..reports.base import ReportResult
from .csv_export import report_filename

RULE = "=" * 72


def render_summary(result: ReportResult) -> str:
    lines = [result.title, "-" * len(result.title)]
    if result.failed:
        lines.append("Report failed:")
        lines.extend(f"  ! {e}" for e in result.metadata.get("errors", []))
        return "\n".join(lines)

    lines.extend(f"  {line}" for line in result.summary)
    gaps = result.metadata.get("permission_gaps", [])
    if gaps:
        lines.append(f"  Permission gaps: {', '.join(gaps)}")
    errors = result.metadata.get("errors", [])
    if errors:
        lines.append(f"  {len(errors)} error(s) during collection, see report output")
    return "\n".join(lines)


def export_summary(result: ReportResult, output_dir: Path, timestamp: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / report_filename(result, timestamp, "txt")
    path.write_text(render_summary(result) + "\n", encoding="utf-8")
    return path


def export_tenant_summary(
    results: list[ReportResult],
    output_dir: Path,
    timestamp: str,
    tenant_name: str = "Unknown Tenant",
) -> Path:
    """Concatenate the text summaries of several reports into one file."""
    output_dir.mkdir(parents=True, exist_ok=True)
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    sections = [
        RULE,
        f"M365 Tenant Summary — {tenant_name}",
        f"Generated: {generated}",
        RULE,
    ]
    for result in results:
        sections.append("")
        sections.append(render_summary(result))

    path = output_dir / f"tenant_summary_{timestamp}.txt"
    path.write_text("\n".join(sections) + "\n", encoding="utf-8")
    return path
