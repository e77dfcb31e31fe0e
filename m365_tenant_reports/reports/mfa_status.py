"""
MFA Status Report
Per-user MFA registration, joined with directory role membership so admins
without MFA stand out. Registration details, users and role membership are
three independent queries fetched concurrently.
"""

from __future__ import annotations

import asyncio
import logging

from ..graph.client import GraphAPIError
from .base import BaseReport, ReportResult, UNKNOWN, ERROR

logger = logging.getLogger("m365_tenant_reports.reports.mfa_status")

NOT_CHECKED = "Not checked"


class MfaStatusReport(BaseReport):
    name = "mfa-status"
    title = "MFA Status"
    description = "MFA registration per user, admins without MFA flagged"
    columns = [
        "user_principal_name", "display_name", "user_type", "account_enabled",
        "is_admin", "admin_roles", "mfa_status", "mfa_registered", "mfa_capable",
        "passwordless_capable", "methods_registered", "default_method",
        "per_user_mfa_state", "admin_without_mfa",
    ]

    async def fetch(self, result: ReportResult):
        registrations, users, roles = await asyncio.gather(
            self.safe_get_all(
                "reports/authenticationMethods/userRegistrationDetails",
                result,
                skip_top=True,
            ),
            self.safe_get_all(
                "users",
                result,
                params={"$select": "id,userPrincipalName,displayName,accountEnabled,userType"},
            ),
            self._fetch_role_members(result),
        )
        result.add_data("registrations", registrations)
        result.add_data("users", users)
        result.add_data("directory_roles", roles)

        if self.settings.include_per_user_mfa_state:
            result.add_data("per_user_state", await self._fetch_per_user_state(users, result))

    async def _fetch_role_members(self, result: ReportResult) -> list[dict]:
        """Activated directory roles with their full member lists."""
        roles = await self.safe_get_all(
            "directoryRoles",
            result,
            params={"$select": "id,displayName"},
            skip_top=True,
        )
        roles = [r for r in roles if r.get("id")]
        # $expand=members stops at 20 members, so each role is paged on its own
        members = await asyncio.gather(*(
            self.safe_get_all(
                f"directoryRoles/{role['id']}/members",
                result,
                params={"$select": "id"},
                skip_top=True,
            )
            for role in roles
        ))
        return [
            {"id": role["id"], "displayName": role.get("displayName"), "members": m}
            for role, m in zip(roles, members)
        ]

    async def _fetch_per_user_state(self, users: list[dict], result: ReportResult) -> dict:
        """Legacy per-user MFA state (enforced/enabled/disabled), batched."""
        user_ids = [u["id"] for u in users if u.get("id")]
        try:
            responses = await self.graph.batch_get(
                [f"/users/{uid}/authentication/requirements" for uid in user_ids],
                beta=True,
            )
        except GraphAPIError as e:
            result.add_warning(f"Per-user MFA state unavailable for {len(user_ids)}/{len(user_ids)} users: {e}")
            return {uid: ERROR for uid in user_ids}

        states = {}
        failures = 0
        for uid, resp in zip(user_ids, responses):
            if resp.get("_error"):
                failures += 1
                states[uid] = ERROR
            else:
                states[uid] = resp.get("perUserMfaState") or UNKNOWN
        if failures:
            result.add_warning(f"Per-user MFA state unavailable for {failures}/{len(user_ids)} users")
        return states

    def transform(self, result: ReportResult) -> list[dict]:
        registrations = {r.get("id"): r for r in result.data.get("registrations", [])}
        per_user_state = result.data.get("per_user_state")

        admin_roles: dict[str, list[str]] = {}
        for role in result.data.get("directory_roles", []):
            for member in role.get("members", []):
                admin_roles.setdefault(member.get("id"), []).append(role.get("displayName"))

        rows = []
        for user in result.data.get("users", []):
            is_guest = user.get("userType") == "Guest"
            if is_guest and not self.settings.include_guests:
                continue
            if user.get("accountEnabled") is False and not self.settings.include_disabled:
                continue

            uid = user.get("id")
            reg = registrations.get(uid)
            roles = sorted(r for r in admin_roles.get(uid, []) if r)
            is_admin = bool(roles) or bool(reg and reg.get("isAdmin"))

            if reg is None:
                mfa_status = UNKNOWN
                registered = capable = passwordless = UNKNOWN
                methods = default_method = UNKNOWN
            else:
                registered = bool(reg.get("isMfaRegistered"))
                capable = bool(reg.get("isMfaCapable"))
                passwordless = bool(reg.get("isPasswordlessCapable"))
                mfa_status = "Registered" if registered else "Not registered"
                methods = "; ".join(reg.get("methodsRegistered") or []) or "None"
                default_method = reg.get("defaultMfaMethod") or "none"

            if per_user_state is None:
                state = NOT_CHECKED
            else:
                state = per_user_state.get(uid, UNKNOWN)

            rows.append(self.shape_row({
                "user_principal_name": user.get("userPrincipalName"),
                "display_name": user.get("displayName"),
                "user_type": user.get("userType") or "Member",
                "account_enabled": user.get("accountEnabled"),
                "is_admin": is_admin,
                "admin_roles": "; ".join(roles),
                "mfa_status": mfa_status,
                "mfa_registered": registered,
                "mfa_capable": capable,
                "passwordless_capable": passwordless,
                "methods_registered": methods,
                "default_method": default_method,
                "per_user_mfa_state": state,
                "admin_without_mfa": is_admin and mfa_status == "Not registered",
            }))

        rows.sort(key=lambda r: (not r["admin_without_mfa"], not r["is_admin"], str(r["user_principal_name"]).lower()))
        return rows

    def summarize(self, result: ReportResult) -> list[str]:
        rows = result.rows
        registered = sum(1 for r in rows if r["mfa_status"] == "Registered")
        not_registered = sum(1 for r in rows if r["mfa_status"] == "Not registered")
        unknown = sum(1 for r in rows if r["mfa_status"] == UNKNOWN)
        exposed_admins = [r["user_principal_name"] for r in rows if r["admin_without_mfa"]]
        coverage = f"{registered / len(rows) * 100:.1f}%" if rows else "n/a"
        lines = [
            f"{len(rows)} users: {registered} registered, {not_registered} not registered, "
            f"{unknown} unknown (coverage {coverage})",
            f"{len(exposed_admins)} admins without MFA",
        ]
        for upn in exposed_admins[:10]:
            lines.append(f"  - {upn}")
        return lines
