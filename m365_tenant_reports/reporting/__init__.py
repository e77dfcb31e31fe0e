"""Reporting package — multi-format output generation."""

from .json_export import export_json
from .csv_export import export_csv
from .excel_export import export_xlsx
from .html_report import export_html
from .text_summary import export_summary, export_tenant_summary, render_summary

__all__ = [
    "export_json",
    "export_csv",
    "export_xlsx",
    "export_html",
    "export_summary",
    "export_tenant_summary",
    "render_summary",
]
