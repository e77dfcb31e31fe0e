"""
Phone-System Migration Report
Checks every DID in the legacy PBX database against Teams phone number
assignments, and resolves legacy call-forward targets to extensions.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Optional

from ..config import ToolkitConfig
from ..graph.client import GraphClient
from ..telephony import LegacyTelephonyDatabase, guess_extension, normalize_number
from .base import BaseReport, ReportResult, UNKNOWN

logger = logging.getLogger("m365_tenant_reports.reports.phone_migration")

MIGRATED = "Migrated"
OWNER_MISMATCH = "Owner mismatch"
NOT_IN_TEAMS = "Not in Teams"


class PhoneMigrationReport(BaseReport):
    name = "phone-migration"
    title = "Phone System Migration"
    description = "Legacy PBX DIDs compared with Teams number assignments"
    columns = [
        "did", "e164_number", "extension", "legacy_owner", "teams_assignee",
        "teams_display_name", "assignment_status", "number_type",
        "migration_status", "forward_target", "forward_extension", "forward_match",
    ]

    def __init__(
        self,
        graph: GraphClient,
        config: ToolkitConfig,
        legacy_source: Optional[LegacyTelephonyDatabase] = None,
    ):
        super().__init__(graph, config)
        self.telephony = config.telephony
        self.legacy_source = legacy_source or LegacyTelephonyDatabase(config.telephony)

    async def fetch(self, result: ReportResult):
        # A legacy database failure aborts the report: there is nothing to compare
        dids = await asyncio.to_thread(self.legacy_source.fetch_dids)
        result.add_data("legacy_dids", dids)

        assignments, users = await asyncio.gather(
            self.safe_get_all(
                "admin/teams/telephoneNumberManagement/numberAssignments",
                result,
                beta=True,
                skip_top=True,
            ),
            self.safe_get_all(
                "users",
                result,
                params={"$select": "id,displayName,userPrincipalName"},
            ),
        )
        result.add_data("number_assignments", assignments)
        result.add_data("users", users)

    def transform(self, result: ReportResult) -> list[dict]:
        cc = self.telephony.country_code
        users = {u["id"]: u for u in result.data.get("users", []) if u.get("id")}
        assignments = {}
        for a in result.data.get("number_assignments", []):
            number = normalize_number(a.get("telephoneNumber"), cc)
            if number:
                assignments[number] = a

        dids = result.data.get("legacy_dids", [])
        known_extensions = [d.extension for d in dids if d.extension]
        extension_by_number = {
            normalize_number(d.did, cc): d.extension for d in dids if d.extension
        }

        rows = []
        for d in dids:
            number = normalize_number(d.did, cc)
            assignment = assignments.get(number) if number else None
            user = None
            # A ported but unassigned number has not reached its owner yet
            if assignment and assignment.get("assignmentStatus") != "unassigned":
                user = users.get(assignment.get("assignmentTargetId"))

            assignee = display_name = None
            if user is None:
                status = NOT_IN_TEAMS
            else:
                assignee = user.get("userPrincipalName")
                display_name = user.get("displayName")
                status = MIGRATED
                if d.owner_name and display_name and _name_key(d.owner_name) != _name_key(display_name):
                    status = OWNER_MISMATCH

            forward_ext, forward_match = self._resolve_forward(
                d.forward_target, known_extensions, extension_by_number
            )

            rows.append(self.shape_row({
                "did": d.did,
                "e164_number": number or UNKNOWN,
                "extension": d.extension or UNKNOWN,
                "legacy_owner": d.owner_name or UNKNOWN,
                "teams_assignee": (assignee or UNKNOWN) if user else "",
                "teams_display_name": (display_name or UNKNOWN) if user else "",
                "assignment_status": assignment.get("assignmentStatus") if assignment else "",
                "number_type": assignment.get("numberType") if assignment else "",
                "migration_status": status,
                "forward_target": d.forward_target,
                "forward_extension": forward_ext,
                "forward_match": forward_match,
            }))

        order = {NOT_IN_TEAMS: 0, OWNER_MISMATCH: 1, MIGRATED: 2}
        rows.sort(key=lambda r: (order.get(r["migration_status"], 3), r["did"]))
        return rows

    def _resolve_forward(self, target: str, known_extensions, extension_by_number):
        if not target:
            return "", ""
        number = normalize_number(target, self.telephony.country_code)
        if number and number in extension_by_number:
            return extension_by_number[number], "DID lookup"
        ext, template = guess_extension(
            target, known_extensions, self.telephony.extension_length
        )
        if ext is None:
            return UNKNOWN, UNKNOWN
        return ext, template

    def summarize(self, result: ReportResult) -> list[str]:
        rows = result.rows
        statuses = Counter(r["migration_status"] for r in rows)
        forwards = [r for r in rows if r["forward_target"]]
        unresolved = sum(1 for r in forwards if r["forward_extension"] == UNKNOWN)
        return [
            f"{len(rows)} legacy DIDs: {statuses.get(MIGRATED, 0)} migrated, "
            f"{statuses.get(OWNER_MISMATCH, 0)} owner mismatch, "
            f"{statuses.get(NOT_IN_TEAMS, 0)} not in Teams",
            f"{len(forwards)} call forwards, {unresolved} could not be resolved to an extension",
        ]


def _name_key(name: str) -> str:
    # "Smith, John" and "John Smith" compare equal
    return " ".join(sorted(name.casefold().replace(",", " ").split()))
