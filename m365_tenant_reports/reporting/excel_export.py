"""
Excel exporter — report rows in a workbook, plus a summary sheet.
"""

from __future__ import annotations

from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font

from ..reports.base import ReportResult
from .csv_export import report_filename

# Excel rejects sheet names over 31 characters
MAX_SHEET_TITLE = 31


def _cell_value(value):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def export_xlsx(result: ReportResult, columns: list[str], output_dir: Path, timestamp: str) -> Path:
    """Write the report as an .xlsx workbook and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / report_filename(result, timestamp, "xlsx")

    wb = Workbook()
    ws = wb.active
    ws.title = result.title[:MAX_SHEET_TITLE]

    ws.append(columns)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in result.rows:
        ws.append([_cell_value(row.get(col)) for col in columns])

    ws.freeze_panes = "A2"
    ws.auto_filter.ref = ws.dimensions

    summary = wb.create_sheet("Summary")
    summary.append([result.title])
    summary["A1"].font = Font(bold=True)
    for line in result.summary:
        summary.append([line])

    wb.save(path)
    return path
