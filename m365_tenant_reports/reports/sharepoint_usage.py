"""
SharePoint Storage Report
Site storage used against allocation, file counts, and activity.
"""

from __future__ import annotations

import logging
from collections import Counter

from .base import (
    BaseReport,
    ReportResult,
    bytes_to_gb,
    days_since,
    parse_graph_datetime,
    percent,
    usage_status,
)

logger = logging.getLogger("m365_tenant_reports.reports.sharepoint_usage")


class SharePointUsageReport(BaseReport):
    name = "sharepoint-usage"
    title = "SharePoint Storage"
    description = "Site storage against allocation, with inactive sites"
    columns = [
        "site_url", "owner_display_name", "owner_principal_name", "template",
        "file_count", "active_file_count", "storage_used_gb",
        "storage_allocated_gb", "percent_used", "status",
        "last_activity_date", "days_since_activity",
    ]

    async def fetch(self, result: ReportResult):
        period = self.settings.usage_period
        sites = await self.safe_get_all(
            f"reports/getSharePointSiteUsageDetail(period='{period}')",
            result,
            params={"$format": "application/json"},
            beta=True,
            skip_top=True,
        )
        result.add_data("sites", sites)

    def transform(self, result: ReportResult) -> list[dict]:
        warning = self.settings.site_warning_percent
        critical = self.settings.site_critical_percent
        rows = []
        for site in result.data.get("sites", []):
            if site.get("isDeleted"):
                continue
            pct = percent(site.get("storageUsedInBytes"), site.get("storageAllocatedInBytes"))
            last_activity = site.get("lastActivityDate")
            rows.append(self.shape_row({
                "site_url": site.get("siteUrl") or site.get("siteId"),
                "owner_display_name": site.get("ownerDisplayName"),
                "owner_principal_name": site.get("ownerPrincipalName"),
                "template": site.get("rootWebTemplate"),
                "file_count": site.get("fileCount"),
                "active_file_count": site.get("activeFileCount"),
                "storage_used_gb": bytes_to_gb(site.get("storageUsedInBytes")),
                "storage_allocated_gb": bytes_to_gb(site.get("storageAllocatedInBytes")),
                "percent_used": pct,
                "status": usage_status(pct, warning, critical),
                "last_activity_date": last_activity or "Never",
                "days_since_activity": days_since(parse_graph_datetime(last_activity)),
            }))
        rows.sort(
            key=lambda r: r["storage_used_gb"] if isinstance(r["storage_used_gb"], float) else -1.0,
            reverse=True,
        )
        return rows

    def summarize(self, result: ReportResult) -> list[str]:
        rows = result.rows
        statuses = Counter(r["status"] for r in rows)
        total = sum(r["storage_used_gb"] for r in rows if isinstance(r["storage_used_gb"], float))
        idle = sum(
            1 for r in rows
            if not isinstance(r["days_since_activity"], int)
            or r["days_since_activity"] >= self.settings.inactive_days
        )
        return [
            f"{len(rows)} sites using {total:.2f} GB: "
            f"{statuses.get('Critical', 0)} critical, {statuses.get('Warning', 0)} warning",
            f"{idle} sites without activity in {self.settings.inactive_days} days",
        ]
