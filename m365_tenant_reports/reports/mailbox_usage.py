"""
Mailbox Usage Report
Storage used against the prohibit-send quota for every mailbox.
"""

from __future__ import annotations

import logging
from collections import Counter

from .base import (
    BaseReport,
    ReportResult,
    UNKNOWN,
    bytes_to_gb,
    days_since,
    parse_graph_datetime,
    percent,
    usage_status,
)

logger = logging.getLogger("m365_tenant_reports.reports.mailbox_usage")


class MailboxUsageReport(BaseReport):
    name = "mailbox-usage"
    title = "Mailbox Usage"
    description = "Mailbox size against quota, with warning and critical flags"
    columns = [
        "user_principal_name", "display_name", "recipient_type", "item_count",
        "storage_used_gb", "prohibit_send_quota_gb", "percent_used", "status",
        "has_archive", "last_activity_date", "days_since_activity",
    ]

    async def fetch(self, result: ReportResult):
        period = self.settings.usage_period
        # The JSON rendition of usage reports is only served from /beta
        mailboxes = await self.safe_get_all(
            f"reports/getMailboxUsageDetail(period='{period}')",
            result,
            params={"$format": "application/json"},
            beta=True,
            skip_top=True,
        )
        result.add_data("mailboxes", mailboxes)

    def transform(self, result: ReportResult) -> list[dict]:
        warning = self.settings.mailbox_warning_percent
        critical = self.settings.mailbox_critical_percent
        rows = []
        for mb in result.data.get("mailboxes", []):
            if mb.get("isDeleted"):
                continue
            pct = percent(mb.get("storageUsedInBytes"), mb.get("prohibitSendQuotaInBytes"))
            last_activity = mb.get("lastActivityDate")
            rows.append(self.shape_row({
                "user_principal_name": mb.get("userPrincipalName"),
                "display_name": mb.get("displayName"),
                "recipient_type": mb.get("recipientType"),
                "item_count": mb.get("itemCount"),
                "storage_used_gb": bytes_to_gb(mb.get("storageUsedInBytes")),
                "prohibit_send_quota_gb": bytes_to_gb(mb.get("prohibitSendQuotaInBytes")),
                "percent_used": pct,
                "status": usage_status(pct, warning, critical),
                "has_archive": mb.get("hasArchive"),
                "last_activity_date": last_activity or "Never",
                "days_since_activity": days_since(parse_graph_datetime(last_activity)),
            }))

        rows.sort(
            key=lambda r: r["percent_used"] if isinstance(r["percent_used"], float) else -1.0,
            reverse=True,
        )
        return rows

    def summarize(self, result: ReportResult) -> list[str]:
        statuses = Counter(r["status"] for r in result.rows)
        sizes = [r["storage_used_gb"] for r in result.rows if isinstance(r["storage_used_gb"], float)]
        lines = [
            f"{len(result.rows)} mailboxes ({self.settings.usage_period}): "
            f"{statuses.get('Critical', 0)} critical, {statuses.get('Warning', 0)} warning, "
            f"{statuses.get(UNKNOWN, 0)} without quota data",
        ]
        if sizes:
            lines.append(f"Total storage {sum(sizes):.2f} GB, largest {max(sizes):.2f} GB")
        return lines
