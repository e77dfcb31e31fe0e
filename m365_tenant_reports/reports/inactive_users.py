"""
Inactive Users Report
Days since each user's last interactive or non-interactive sign-in.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .base import BaseReport, ReportResult, days_since, parse_graph_datetime

logger = logging.getLogger("m365_tenant_reports.reports.inactive_users")

NEVER_SIGNED_IN = "Never signed in"


class InactiveUsersReport(BaseReport):
    name = "inactive-users"
    title = "Inactive Users"
    description = "Users without a sign-in within the inactivity threshold"
    columns = [
        "user_principal_name", "display_name", "user_type", "account_enabled",
        "created", "last_interactive_sign_in", "last_non_interactive_sign_in",
        "last_activity", "days_inactive", "licensed", "status",
    ]

    async def fetch(self, result: ReportResult):
        users = []
        async for user in self.safe_get_all_stream(
            "users",
            result,
            params={
                "$select": "id,userPrincipalName,displayName,accountEnabled,"
                           "userType,createdDateTime,assignedLicenses,signInActivity",
            },
        ):
            users.append(user)
        result.add_data("users", users)

    def transform(self, result: ReportResult) -> list[dict]:
        now = datetime.now(timezone.utc)
        threshold = self.settings.inactive_days
        rows = []

        for user in result.data.get("users", []):
            if user.get("userType") == "Guest" and not self.settings.include_guests:
                continue
            if user.get("accountEnabled") is False and not self.settings.include_disabled:
                continue

            sign_in = user.get("signInActivity") or {}
            interactive = parse_graph_datetime(sign_in.get("lastSignInDateTime"))
            non_interactive = parse_graph_datetime(sign_in.get("lastNonInteractiveSignInDateTime"))
            seen = [dt for dt in (interactive, non_interactive) if dt]
            last_activity = max(seen) if seen else None

            if last_activity is None:
                status = NEVER_SIGNED_IN
                days = days_since(parse_graph_datetime(user.get("createdDateTime")), now)
            else:
                days = days_since(last_activity, now)
                status = "Inactive" if days >= threshold else "Active"

            rows.append(self.shape_row({
                "user_principal_name": user.get("userPrincipalName"),
                "display_name": user.get("displayName"),
                "user_type": user.get("userType") or "Member",
                "account_enabled": user.get("accountEnabled"),
                "created": user.get("createdDateTime"),
                "last_interactive_sign_in": sign_in.get("lastSignInDateTime") or "Never",
                "last_non_interactive_sign_in": sign_in.get("lastNonInteractiveSignInDateTime") or "Never",
                "last_activity": last_activity.isoformat() if last_activity else "Never",
                "days_inactive": days,
                "licensed": bool(user.get("assignedLicenses")),
                "status": status,
            }))

        rows.sort(key=lambda r: r["days_inactive"] if isinstance(r["days_inactive"], int) else -1, reverse=True)
        return rows

    def summarize(self, result: ReportResult) -> list[str]:
        rows = result.rows
        inactive = [r for r in rows if r["status"] == "Inactive"]
        never = [r for r in rows if r["status"] == NEVER_SIGNED_IN]
        licensed_idle = sum(1 for r in inactive + never if r["licensed"] is True)
        return [
            f"{len(rows)} users checked against {self.settings.inactive_days} days: "
            f"{len(inactive)} inactive, {len(never)} never signed in",
            f"{licensed_idle} inactive or never-used accounts still hold a licence",
        ]
