"""
HTML report — self-contained single file with inline CSS, rendered via Jinja2.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .. import __version__
from ..reports.base import ReportResult
from .csv_export import report_filename

TEMPLATE_DIR = Path(__file__).parent / "templates"

# Cell values that get a highlight class
_HIGHLIGHTED = {
    "critical", "high", "medium", "warning", "ok", "migrated", "unknown", "error",
}


def column_label(column: str) -> str:
    return column.replace("_", " ").title()


def cell_class(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    key = value.strip().lower()
    return f"cell-{key}" if key in _HIGHLIGHTED else ""


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html", "j2")),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["column_label"] = column_label
    env.filters["cell_class"] = cell_class
    return env


def render_html(
    result: ReportResult,
    columns: list[str],
    description: str = "",
    tenant_name: str = "Unknown Tenant",
) -> str:
    template = _environment().get_template("report.html.j2")
    return template.render(
        title=result.title,
        description=description,
        tenant_name=tenant_name,
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        version=__version__,
        summary=result.summary,
        errors=result.metadata.get("errors", []),
        warnings=result.metadata.get("warnings", []),
        columns=columns,
        rows=result.rows,
    )


def export_html(
    result: ReportResult,
    columns: list[str],
    output_dir: Path,
    timestamp: str,
    description: str = "",
    tenant_name: str = "Unknown Tenant",
) -> Path:
    """
    Generate a self-contained HTML report.

    Returns the Path to the written file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    filepath = output_dir / report_filename(result, timestamp, "html")
    filepath.write_text(
        render_html(result, columns, description, tenant_name), encoding="utf-8"
    )
    return filepath
