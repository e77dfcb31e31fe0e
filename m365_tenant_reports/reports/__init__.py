from .base import BaseReport, ReportResult, UNKNOWN, ERROR
from .app_permissions import AppPermissionsReport
from .mailbox_usage import MailboxUsageReport
from .mfa_status import MfaStatusReport
from .inactive_users import InactiveUsersReport
from .device_inventory import DeviceInventoryReport
from .sharepoint_usage import SharePointUsageReport
from .phone_migration import PhoneMigrationReport

ALL_REPORTS = [
    AppPermissionsReport,
    MailboxUsageReport,
    MfaStatusReport,
    InactiveUsersReport,
    DeviceInventoryReport,
    SharePointUsageReport,
    PhoneMigrationReport,
]

REPORTS_BY_NAME = {cls.name: cls for cls in ALL_REPORTS}

# Reports that need nothing beyond Graph; the default set for `summary`
GRAPH_REPORTS = [cls.name for cls in ALL_REPORTS if cls is not PhoneMigrationReport]

__all__ = [
    "BaseReport",
    "ReportResult",
    "UNKNOWN",
    "ERROR",
    "AppPermissionsReport",
    "MailboxUsageReport",
    "MfaStatusReport",
    "InactiveUsersReport",
    "DeviceInventoryReport",
    "SharePointUsageReport",
    "PhoneMigrationReport",
    "ALL_REPORTS",
    "REPORTS_BY_NAME",
    "GRAPH_REPORTS",
]
