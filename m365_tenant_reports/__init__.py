"""
M365 Tenant Reports
===================
Read-only Microsoft 365 tenant administration reports: application
permissions, mailbox usage, MFA registration, inactive users, device
inventory, SharePoint storage and the legacy phone-system migration check.

Every report follows the same pipeline:
    Connect -> Fetch -> Transform -> Export -> Disconnect

No write operations are ever performed against the tenant.
"""

__version__ = "1.2.0"
__mode__ = "READ-ONLY"
