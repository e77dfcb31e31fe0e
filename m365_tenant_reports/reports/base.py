"""
Base report class — the Fetch and Transform steps shared by every report.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from ..config import ToolkitConfig
from ..graph.client import GraphClient, GraphAPIError

logger = logging.getLogger("m365_tenant_reports.reports")

# Cell placeholders for per-item failures
UNKNOWN = "Unknown"
ERROR = "Error"


def parse_graph_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a Graph ISO-8601 timestamp (or report date) to an aware datetime."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    if dt.year <= 1601:  # Graph's "never" sentinel
        return None
    return dt


def days_since(value: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if value is None:
        return None
    now = now or datetime.now(timezone.utc)
    return max((now - value).days, 0)


def percent(used, total) -> Any:
    """used/total as a percentage with two decimals, or UNKNOWN."""
    try:
        used_f = float(used)
        total_f = float(total)
    except (TypeError, ValueError):
        return UNKNOWN
    if total_f <= 0:
        return UNKNOWN
    return round(used_f / total_f * 100, 2)


def usage_status(pct, warning: float, critical: float) -> str:
    if not isinstance(pct, (int, float)):
        return UNKNOWN
    if pct >= critical:
        return "Critical"
    if pct >= warning:
        return "Warning"
    return "OK"


def bytes_to_gb(value) -> Any:
    try:
        return round(float(value) / (1024 ** 3), 2)
    except (TypeError, ValueError):
        return UNKNOWN


class ReportResult:
    """Fetched data, transformed rows, and run metadata for one report."""

    def __init__(self, report_name: str, title: str = ""):
        self.report_name = report_name
        self.title = title or report_name
        self.data: dict[str, Any] = {}
        self.rows: list[dict] = []
        self.summary: list[str] = []
        self.metadata: dict[str, Any] = {
            "report": report_name,
            "started_at": None,
            "completed_at": None,
            "duration_seconds": 0,
            "items_fetched": 0,
            "endpoints_queried": 0,
            "errors": [],
            "warnings": [],
            "permission_gaps": [],
        }

    @property
    def failed(self) -> bool:
        return bool(self.metadata.get("aborted"))

    def add_data(self, key: str, value: Any):
        self.data[key] = value
        if isinstance(value, list):
            self.metadata["items_fetched"] += len(value)
        elif isinstance(value, dict):
            self.metadata["items_fetched"] += 1

    def add_error(self, error: str):
        self.metadata["errors"].append(error)
        logger.error(f"[{self.report_name}] {error}")

    def add_warning(self, warning: str):
        self.metadata["warnings"].append(warning)
        logger.warning(f"[{self.report_name}] {warning}")

    def add_permission_gap(self, endpoint: str, message: str):
        self.metadata["permission_gaps"].append(endpoint)
        self.add_warning(f"Permission denied: {endpoint} — {message}")

    def to_dict(self) -> dict:
        return {
            "report": self.report_name,
            "title": self.title,
            "summary": self.summary,
            "rows": self.rows,
            "metadata": self.metadata,
        }


class BaseReport(ABC):
    """
    Abstract base class for all reports.

    Subclasses implement fetch() to pull data from Graph (or elsewhere),
    transform() to build flat rows, and summarize() for the text summary.
    """

    name: str = "base"
    title: str = "Base report"
    description: str = ""
    columns: list[str] = []

    def __init__(self, graph: GraphClient, config: ToolkitConfig):
        self.graph = graph
        self.config = config
        self.settings = config.reports

    async def execute(self) -> ReportResult:
        """Run fetch and transform with timing. Failures abort this report only."""
        result = ReportResult(self.name, self.title)
        result.metadata["started_at"] = time.time()
        logger.info(f"[{self.name}] Fetching...")

        try:
            await self.fetch(result)
            result.rows = self.transform(result)
            result.summary = self.summarize(result)
        except Exception as e:
            result.metadata["aborted"] = True
            result.add_error(f"Report failed: {type(e).__name__}: {e}")
            logger.exception(f"[{self.name}] Report failed")

        result.metadata["completed_at"] = time.time()
        result.metadata["duration_seconds"] = round(
            result.metadata["completed_at"] - result.metadata["started_at"], 2
        )
        logger.info(
            f"[{self.name}] Completed in {result.metadata['duration_seconds']}s — "
            f"{len(result.rows)} rows"
        )
        return result

    @abstractmethod
    async def fetch(self, result: ReportResult):
        """Pull source data into result via result.add_data(key, value)."""
        raise NotImplementedError

    @abstractmethod
    def transform(self, result: ReportResult) -> list[dict]:
        """Build flat rows keyed by self.columns."""
        raise NotImplementedError

    def summarize(self, result: ReportResult) -> list[str]:
        return [f"{len(result.rows)} rows"]

    async def safe_get(self, endpoint: str, result: ReportResult, **kwargs) -> dict:
        """GET that records failures on the result instead of raising."""
        try:
            data = await self.graph.get(endpoint, **kwargs)
            result.metadata["endpoints_queried"] += 1
            if data.get("_forbidden"):
                result.add_permission_gap(endpoint, data.get("_error_message", "Forbidden"))
            return data
        except GraphAPIError as e:
            result.add_error(f"Failed to query {endpoint}: {e}")
            return {"value": [], "_error": True}

    async def safe_get_all(self, endpoint: str, result: ReportResult, **kwargs) -> list:
        """Paginated GET that records failures on the result instead of raising."""
        try:
            data = await self.graph.get_all_pages(endpoint, **kwargs)
            result.metadata["endpoints_queried"] += 1
            return data
        except GraphAPIError as e:
            if e.status_code == 403:
                result.add_permission_gap(endpoint, str(e))
            else:
                result.add_error(f"Failed to paginate {endpoint}: {e}")
            return []

    async def safe_get_all_stream(self, endpoint: str, result: ReportResult, **kwargs):
        """Streaming variant of safe_get_all."""
        result.metadata["endpoints_queried"] += 1
        try:
            async for item in self.graph.get_all_pages_stream(endpoint, **kwargs):
                yield item
        except GraphAPIError as e:
            if e.status_code == 403:
                result.add_permission_gap(endpoint, str(e))
            else:
                result.add_error(f"Failed to stream {endpoint}: {e}")

    def shape_row(self, values: dict) -> dict:
        """Order a row by self.columns, filling gaps with UNKNOWN."""
        return {
            col: UNKNOWN if values.get(col) is None else values[col]
            for col in self.columns
        }
