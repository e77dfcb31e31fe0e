"""
CSV exporter — one flat file per report.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ..reports.base import ReportResult


def report_filename(result: ReportResult, timestamp: str, ext: str) -> str:
    return f"{result.report_name}_{timestamp}.{ext}"


def export_csv(result: ReportResult, columns: list[str], output_dir: Path, timestamp: str) -> Path:
    """
    Write the report rows as CSV (UTF-8 with BOM so Excel detects the encoding).

    Returns:
        Path to the created CSV file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / report_filename(result, timestamp, "csv")

    with open(path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        for row in result.rows:
            writer.writerow(row)

    return path
