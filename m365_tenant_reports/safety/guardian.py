"""
Read-only guard — every outbound Graph request is checked before it is sent.
Reports only ever read; anything that could mutate the tenant is refused.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("m365_tenant_reports.safety")

READ_METHODS = {"GET", "HEAD"}

# POST is only used for $batch, whose sub-requests are all GETs
SAFE_POST_ENDPOINTS = [
    re.compile(r"/\$batch$"),
]


class ReadOnlyViolation(Exception):
    """Raised when a request would modify the tenant."""
    pass


class ReadOnlyGuard:
    """Validates outbound requests and keeps a record of refusals."""

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """Return True if the request is read-only, raise ReadOnlyViolation otherwise."""
        self.checks_performed += 1
        method_upper = method.upper()

        if method_upper in READ_METHODS:
            return True

        if method_upper == "POST" and any(p.search(url) for p in SAFE_POST_ENDPOINTS):
            for sub in (body or {}).get("requests", []):
                sub_method = str(sub.get("method", "")).upper()
                if sub_method not in READ_METHODS:
                    self._record_violation(sub_method, sub.get("url", ""), "Write sub-request in $batch")
                    raise ReadOnlyViolation(
                        f"Write sub-request refused in batch: {sub_method} {sub.get('url')}"
                    )
            return True

        self._record_violation(method_upper, url, "Write HTTP method refused")
        raise ReadOnlyViolation(f"Write method refused: {method_upper} {url}")

    def _record_violation(self, method: str, url: str, reason: str):
        self.violations.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "reason": reason,
        })
        logger.critical(f"READ-ONLY VIOLATION: {reason} — {method} {url}")

    def get_audit_record(self) -> dict:
        return {
            "mode": "READ-ONLY",
            "started_at": self.started_at,
            "checks_performed": self.checks_performed,
            "violations_detected": len(self.violations),
            "violations": self.violations,
            "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
        }
