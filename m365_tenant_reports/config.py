"""
Configuration module for M365 Tenant Reports.
Defines authentication modes, retry policy, report thresholds, and output settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Raised when a configuration file or value is invalid."""
    pass


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Prompted if empty and not in env
    thumbprint: str = ""

@dataclass
class ClientSecretAuth:
    """Client-secret app-only authentication configuration."""
    tenant_id: str
    client_id: str
    client_secret: str = ""        # Falls back to M365_CLIENT_SECRET

@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "https://graph.microsoft.com/.default"
    ])

AUTH_MODES = ("certificate", "secret", "delegated")

@dataclass
class AuthConfig:
    """Authentication configuration — one of three modes."""
    mode: str = "certificate"
    certificate: Optional[CertificateAuth] = None
    secret: Optional[ClientSecretAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
GRAPH_BETA_VERSION = "beta"

MAX_CONCURRENT_REQUESTS = 4
DEFAULT_PAGE_SIZE = 999           # Maximum items per page ($top)
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on pagination loops
BATCH_SIZE = 20                   # Graph $batch max is 20 requests


@dataclass
class RetryPolicy:
    """
    Bounded retry around a single Graph call.
    multiplier=1.0 gives a fixed backoff, 2.0 a doubling one.
    """
    max_retries: int = 5
    initial_backoff: float = 2.0
    max_backoff: float = 120.0
    multiplier: float = 2.0

    def next_backoff(self, current: float) -> float:
        return min(current * self.multiplier, self.max_backoff)


# ─── Report Settings ────────────────────────────────────────────────────────

USAGE_PERIODS = ("D7", "D30", "D90", "D180")

@dataclass
class ReportSettings:
    """Thresholds and switches shared by the reports."""
    inactive_days: int = 90
    include_guests: bool = True
    include_disabled: bool = False
    stale_device_days: int = 90
    mailbox_warning_percent: float = 75.0
    mailbox_critical_percent: float = 90.0
    site_warning_percent: float = 75.0
    site_critical_percent: float = 90.0
    usage_period: str = "D7"
    include_per_user_mfa_state: bool = False
    include_first_party_apps: bool = False
    max_service_principals: int = 0       # 0 = no cap

    def validate(self):
        if self.usage_period not in USAGE_PERIODS:
            raise ConfigError(
                f"usage_period must be one of {', '.join(USAGE_PERIODS)}, "
                f"got {self.usage_period!r}"
            )
        if self.mailbox_warning_percent > self.mailbox_critical_percent:
            raise ConfigError("mailbox_warning_percent exceeds mailbox_critical_percent")
        if self.site_warning_percent > self.site_critical_percent:
            raise ConfigError("site_warning_percent exceeds site_critical_percent")


# ─── Legacy Telephony ───────────────────────────────────────────────────────

DEFAULT_DID_QUERY = (
    "SELECT DID, Extension, OwnerName, ForwardTarget FROM dbo.DirectInwardDial"
)

@dataclass
class TelephonyConfig:
    """SQL Server connection to the on-prem telephony database."""
    connection_string: str = ""
    query: str = DEFAULT_DID_QUERY
    country_code: str = "1"
    extension_length: int = 4


# ─── Output Configuration ───────────────────────────────────────────────────

OUTPUT_FORMATS = ("csv", "xlsx", "html", "json", "txt")

@dataclass
class OutputConfig:
    """Output directory and format settings."""
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: ["csv", "xlsx", "html"])

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(os.getcwd(), "m365_reports")

    @property
    def report_dir(self) -> Path:
        return Path(self.base_dir)

    def create_directories(self):
        self.report_dir.mkdir(parents=True, exist_ok=True)

    def validate(self):
        unknown = [f for f in self.formats if f not in OUTPUT_FORMATS]
        if unknown:
            raise ConfigError(
                f"Unknown output format(s) {', '.join(unknown)}; choose from {', '.join(OUTPUT_FORMATS)}"
            )


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class ToolkitConfig:
    """Top-level configuration for a reporting run."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    reports: ReportSettings = field(default_factory=ReportSettings)
    telephony: TelephonyConfig = field(default_factory=TelephonyConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path) -> "ToolkitConfig":
        """Load configuration from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")

        config = cls()
        if "auth" in data:
            config.auth = _auth_from_dict(data["auth"])
        _apply(config.retry, data.get("retry", {}))
        _apply(config.reports, data.get("reports", {}))
        _apply(config.telephony, data.get("telephony", {}))
        _apply(config.output, data.get("output", {}))
        config.verbose = bool(data.get("verbose", False))
        config.reports.validate()
        config.output.validate()
        return config


def _apply(target, values: dict):
    """Copy known keys from a dict onto a dataclass instance, checked against the defaults' types."""
    section = type(target).__name__
    if not isinstance(values, dict):
        raise ConfigError(f"Expected an object for {section}")
    known = {f.name for f in fields(target)}
    for k, v in values.items():
        if k not in known:
            continue
        current = getattr(target, k)
        if isinstance(current, float) and isinstance(v, int) and not isinstance(v, bool):
            v = float(v)
        if type(v) is not type(current):
            raise ConfigError(
                f"{section}.{k} must be {type(current).__name__}, got {type(v).__name__} {v!r}"
            )
        if isinstance(v, list) and not all(isinstance(item, str) for item in v):
            raise ConfigError(f"{section}.{k} must be a list of strings")
        setattr(target, k, v)


def _auth_from_dict(auth_data: dict) -> AuthConfig:
    auth = AuthConfig(mode=auth_data.get("mode", "certificate"))
    if auth.mode not in AUTH_MODES:
        raise ConfigError(f"Unknown auth mode: {auth.mode}")
    try:
        if "certificate" in auth_data:
            c = auth_data["certificate"]
            auth.certificate = CertificateAuth(
                tenant_id=c["tenant_id"],
                client_id=c["client_id"],
                certificate_path=c.get("certificate_path", "./base64.txt"),
                certificate_password=c.get("certificate_password", ""),
                thumbprint=c.get("thumbprint", ""),
            )
        if "secret" in auth_data:
            s = auth_data["secret"]
            auth.secret = ClientSecretAuth(
                tenant_id=s["tenant_id"],
                client_id=s["client_id"],
                client_secret=s.get("client_secret", ""),
            )
        if "delegated" in auth_data:
            d = auth_data["delegated"]
            auth.delegated = DelegatedAuth(
                tenant_id=d["tenant_id"],
                client_id=d["client_id"],
            )
            if "scopes" in d:
                auth.delegated.scopes = list(d["scopes"])
    except KeyError as e:
        raise ConfigError(f"Missing auth setting: {e}")
    return auth


# ─── Required Graph API Permissions (Read-Only) ─────────────────────────────

REQUIRED_PERMISSIONS = {
    "Application.Read.All": "Service principals, app roles, OAuth2 grants",
    "Directory.Read.All": "Users, devices, directory role membership",
    "User.Read.All": "User profiles and licence assignments",
    "AuditLog.Read.All": "signInActivity on users, MFA registration details",
    "UserAuthenticationMethod.Read.All": "Per-user MFA requirements",
    "Reports.Read.All": "Mailbox and SharePoint usage reports",
    "DeviceManagementManagedDevices.Read.All": "Intune managed device inventory",
    "TeamsTelephoneNumber.Read.All": "Teams phone number assignments",
}
