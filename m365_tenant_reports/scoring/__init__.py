"""Scoring package — permission risk lookup for the application audit."""

from .models import PermissionRisk, RiskAssessment
from .permissions import (
    PERMISSION_TIERS,
    TIER_SCORES,
    classify_permission,
    risk_level_for,
    score_permissions,
)

__all__ = [
    "PermissionRisk",
    "RiskAssessment",
    "PERMISSION_TIERS",
    "TIER_SCORES",
    "classify_permission",
    "risk_level_for",
    "score_permissions",
]
