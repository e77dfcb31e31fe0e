"""
Scoring data models — permission tiers and per-application risk assessments.
"""

from __future__ import annotations

from dataclasses import dataclass, field

TIER_ORDER = ["Critical", "High", "Medium", "Low", "Informational"]


@dataclass(frozen=True)
class PermissionRisk:
    """Severity tier and additive score for one named permission."""
    permission: str
    tier: str
    score: float


@dataclass
class RiskAssessment:
    """Scored permission set for a single application."""
    permissions: list[PermissionRisk] = field(default_factory=list)
    base_score: float = 0.0
    multiplier: float = 1.0
    score: float = 0.0
    risk_level: str = "None"

    @property
    def highest_tier(self) -> str:
        tiers = {p.tier for p in self.permissions}
        for tier in TIER_ORDER:
            if tier in tiers:
                return tier
        return "None"

    @property
    def high_risk_permissions(self) -> list[str]:
        return sorted(
            p.permission for p in self.permissions
            if p.tier in ("Critical", "High")
        )

    def to_dict(self) -> dict:
        return {
            "permissions": [
                {"permission": p.permission, "tier": p.tier, "score": p.score}
                for p in self.permissions
            ],
            "base_score": self.base_score,
            "multiplier": self.multiplier,
            "score": self.score,
            "risk_level": self.risk_level,
            "highest_tier": self.highest_tier,
        }
