"""
Application Permission Audit
Enumerates third-party service principals with their application permissions
(app role assignments) and delegated OAuth2 grants, and scores each app with
the permission risk table.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, defaultdict

from ..scoring import score_permissions
from .base import BaseReport, ReportResult, UNKNOWN, ERROR

logger = logging.getLogger("m365_tenant_reports.reports.app_permissions")

# Tenants that own Microsoft first-party applications
MICROSOFT_OWNER_TENANTS = {
    "f8cdef31-a31e-4b4a-93e4-5f571e91255a",
    "72f988bf-86f1-41af-91ab-2d7cd011db47",
}

DEFAULT_ACCESS_ROLE_ID = "00000000-0000-0000-0000-000000000000"


class AppPermissionsReport(BaseReport):
    name = "app-permissions"
    title = "Application Permission Audit"
    description = "Service principals with granted permissions and a risk score"
    columns = [
        "display_name", "app_id", "publisher", "publisher_verified",
        "account_enabled", "application_permissions", "delegated_permissions",
        "admin_consented", "high_risk_permissions", "highest_tier",
        "base_score", "multiplier", "risk_score", "risk_level", "created",
    ]

    async def fetch(self, result: ReportResult):
        sps = await self._fetch_service_principals(result)
        result.add_data("service_principals", sps)

        assignments_per_sp = await asyncio.gather(*[
            self.safe_get_all(f"servicePrincipals/{sp['id']}/appRoleAssignments", result)
            for sp in sps
        ])
        assignments = {sp["id"]: a for sp, a in zip(sps, assignments_per_sp)}
        result.add_data("app_role_assignments", assignments)

        grants = await self.safe_get_all("oauth2PermissionGrants", result)
        result.add_data("oauth2_grants", grants)

        resource_ids = sorted({
            a.get("resourceId")
            for items in assignments.values()
            for a in items
            if a.get("resourceId")
        })
        result.add_data("resource_app_roles", await self._resolve_app_roles(resource_ids, result))

    async def _fetch_service_principals(self, result: ReportResult) -> list[dict]:
        sps = []
        cap = self.settings.max_service_principals
        async for sp in self.safe_get_all_stream(
            "servicePrincipals",
            result,
            params={
                "$select": "id,appId,displayName,servicePrincipalType,"
                           "accountEnabled,publisherName,verifiedPublisher,"
                           "appOwnerOrganizationId,createdDateTime",
            },
        ):
            if sp.get("servicePrincipalType") not in (None, "Application"):
                continue
            if (
                not self.settings.include_first_party_apps
                and sp.get("appOwnerOrganizationId") in MICROSOFT_OWNER_TENANTS
            ):
                continue
            if not sp.get("id"):
                continue
            sps.append(sp)
            if cap and len(sps) >= cap:
                result.add_warning(f"Stopped at max_service_principals={cap}")
                break
        return sps

    async def _resolve_app_roles(self, resource_ids: list[str], result: ReportResult) -> dict:
        """Map resource SP id -> {appRoleId: permission value}; None when the lookup failed."""
        lookups = await asyncio.gather(*[
            self.safe_get(
                f"servicePrincipals/{rid}",
                result,
                params={"$select": "id,displayName,appRoles"},
            )
            for rid in resource_ids
        ])
        roles = {}
        for rid, data in zip(resource_ids, lookups):
            if data.get("_error") or data.get("_forbidden") or data.get("_not_found"):
                roles[rid] = None
                continue
            roles[rid] = {
                r.get("id"): r.get("value")
                for r in data.get("appRoles", [])
                if r.get("id")
            }
        return roles

    def transform(self, result: ReportResult) -> list[dict]:
        sps = result.data.get("service_principals", [])
        assignments = result.data.get("app_role_assignments", {})
        resource_roles = result.data.get("resource_app_roles", {})

        grants_by_client = defaultdict(list)
        for g in result.data.get("oauth2_grants", []):
            grants_by_client[g.get("clientId")].append(g)

        rows = []
        for sp in sps:
            app_perms = [
                _role_name(a, resource_roles)
                for a in assignments.get(sp["id"], [])
                if a.get("appRoleId") != DEFAULT_ACCESS_ROLE_ID
            ]
            grants = grants_by_client.get(sp["id"], [])
            delegated = sorted({
                scope
                for g in grants
                for scope in (g.get("scope") or "").split()
            })

            verified = bool((sp.get("verifiedPublisher") or {}).get("verifiedPublisherId"))
            scorable = [p for p in app_perms + delegated if p not in (UNKNOWN, ERROR)]
            assessment = score_permissions(scorable, publisher_verified=verified)

            rows.append(self.shape_row({
                "display_name": sp.get("displayName"),
                "app_id": sp.get("appId"),
                "publisher": sp.get("publisherName") or UNKNOWN,
                "publisher_verified": verified,
                "account_enabled": sp.get("accountEnabled"),
                "application_permissions": "; ".join(sorted(app_perms)),
                "delegated_permissions": "; ".join(delegated),
                "admin_consented": any(g.get("consentType") == "AllPrincipals" for g in grants),
                "high_risk_permissions": "; ".join(assessment.high_risk_permissions),
                "highest_tier": assessment.highest_tier,
                "base_score": assessment.base_score,
                "multiplier": assessment.multiplier,
                "risk_score": assessment.score,
                "risk_level": assessment.risk_level,
                "created": sp.get("createdDateTime"),
            }))

        rows.sort(key=lambda r: r["risk_score"], reverse=True)
        return rows

    def summarize(self, result: ReportResult) -> list[str]:
        rows = result.rows
        levels = Counter(r["risk_level"] for r in rows)
        lines = [
            f"{len(rows)} applications audited: "
            f"{levels.get('Critical', 0)} Critical, {levels.get('High', 0)} High, "
            f"{levels.get('Medium', 0)} Medium, {levels.get('Low', 0)} Low risk",
            f"{sum(1 for r in rows if not r['publisher_verified'])} from unverified publishers",
        ]
        if rows and rows[0]["risk_score"] > 0:
            top = rows[0]
            lines.append(f"Highest risk: {top['display_name']} (score {top['risk_score']}, {top['risk_level']})")
        return lines


def _role_name(assignment: dict, resource_roles: dict) -> str:
    roles = resource_roles.get(assignment.get("resourceId"))
    if roles is None:
        return ERROR
    return roles.get(assignment.get("appRoleId")) or UNKNOWN
