"""
Permission risk table — named Graph / Exchange / SharePoint permissions mapped
to a severity tier. Application risk is the sum of tier scores, scaled up when
the publisher is unverified.
"""

from __future__ import annotations

from typing import Iterable

from .models import PermissionRisk, RiskAssessment

TIER_SCORES = {
    "Critical": 10,
    "High": 7,
    "Medium": 4,
    "Low": 2,
    "Informational": 0,
}

UNVERIFIED_PUBLISHER_MULTIPLIER = 1.5

# Lower bound of each risk level, checked top-down
RISK_LEVEL_THRESHOLDS = [
    (30, "Critical"),
    (15, "High"),
    (5, "Medium"),
]

PERMISSION_TIERS = {
    # Tenant takeover / privilege escalation
    "Directory.ReadWrite.All": "Critical",
    "RoleManagement.ReadWrite.Directory": "Critical",
    "AppRoleAssignment.ReadWrite.All": "Critical",
    "Application.ReadWrite.All": "Critical",
    "Policy.ReadWrite.ConditionalAccess": "Critical",
    "UserAuthenticationMethod.ReadWrite.All": "Critical",
    "Domain.ReadWrite.All": "Critical",
    "full_access_as_app": "Critical",          # Exchange Online EWS
    "Exchange.ManageAsApp": "Critical",
    "Sites.FullControl.All": "Critical",

    # Broad data write / impersonation
    "Mail.ReadWrite": "High",
    "Mail.Send": "High",
    "MailboxSettings.ReadWrite": "High",
    "Files.ReadWrite.All": "High",
    "Sites.ReadWrite.All": "High",
    "User.ReadWrite.All": "High",
    "Group.ReadWrite.All": "High",
    "GroupMember.ReadWrite.All": "High",
    "Calendars.ReadWrite": "High",
    "Contacts.ReadWrite": "High",
    "Chat.ReadWrite.All": "High",
    "ChannelMessage.Read.All": "High",
    "DeviceManagementConfiguration.ReadWrite.All": "High",
    "DeviceManagementManagedDevices.PrivilegedOperations.All": "High",

    # Broad data read
    "Mail.Read": "Medium",
    "Files.Read.All": "Medium",
    "Sites.Read.All": "Medium",
    "Chat.Read.All": "Medium",
    "Calendars.Read": "Medium",
    "Contacts.Read": "Medium",
    "Directory.Read.All": "Medium",
    "AuditLog.Read.All": "Medium",
    "Notes.Read.All": "Medium",
    "MailboxSettings.Read": "Medium",

    # Low-impact reads
    "User.Read.All": "Low",
    "Group.Read.All": "Low",
    "Reports.Read.All": "Low",
    "Organization.Read.All": "Low",
    "Application.Read.All": "Low",
    "Device.Read.All": "Low",
    "People.Read.All": "Low",
    "User.ReadBasic.All": "Low",
}


def classify_permission(permission: str) -> PermissionRisk:
    """Look up one permission. Unlisted permissions are Informational (score 0)."""
    tier = PERMISSION_TIERS.get(permission, "Informational")
    return PermissionRisk(permission=permission, tier=tier, score=TIER_SCORES[tier])


def risk_level_for(score: float) -> str:
    for threshold, level in RISK_LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return "Low" if score > 0 else "None"


def score_permissions(
    permissions: Iterable[str],
    publisher_verified: bool = True,
) -> RiskAssessment:
    """
    Score an application's permissions.
    Each distinct permission is counted once, whether granted as an
    application role or a delegated scope.
    """
    distinct = sorted({p for p in permissions if p})
    classified = [classify_permission(p) for p in distinct]
    base = float(sum(p.score for p in classified))
    multiplier = 1.0 if publisher_verified else UNVERIFIED_PUBLISHER_MULTIPLIER
    score = round(base * multiplier, 1)
    return RiskAssessment(
        permissions=classified,
        base_score=base,
        multiplier=multiplier,
        score=score,
        risk_level=risk_level_for(score),
    )
