"""
JSON exporter — report rows with run metadata.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from .. import __version__
from ..reports.base import ReportResult
from .csv_export import report_filename


def export_json(result: ReportResult, output_dir: Path, timestamp: str, tenant_name: str = "") -> Path:
    """Write the report to a JSON file and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = result.to_dict()
    payload["metadata"] = {
        "tool": "M365 Tenant Reports",
        "version": __version__,
        "tenant": tenant_name,
        "generated_utc": datetime.now(timezone.utc).isoformat(),
        "mode": "READ-ONLY",
        **result.metadata,
    }

    path = output_dir / report_filename(result, timestamp, "json")
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)
    return path
