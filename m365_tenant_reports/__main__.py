"""
M365 Tenant Reports — command line entry point

Usage:
    python -m m365_tenant_reports list
    python -m m365_tenant_reports permissions                  # Graph permissions to grant
    python -m m365_tenant_reports run mailbox-usage mfa-status --profile contoso-prod
    python -m m365_tenant_reports run all --formats csv xlsx
    python -m m365_tenant_reports summary                      # all Graph reports, one text file
    python -m m365_tenant_reports run phone-migration --telephony-connection "DSN=pbx"

Profile management:
    python -m m365_tenant_reports profile add <name> --tenant-id ... --client-id ...
    python -m m365_tenant_reports profile list
    python -m m365_tenant_reports profile remove <name>
    python -m m365_tenant_reports profile set-default <name>

This tool is STRICTLY READ-ONLY. It will NEVER modify the tenant.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import (
    AUTH_MODES,
    OUTPUT_FORMATS,
    CertificateAuth,
    ClientSecretAuth,
    ConfigError,
    DelegatedAuth,
    ToolkitConfig,
)
from .auth.authenticator import Authenticator
from .profiles import ProfileStore, TenantProfile, resolve_profile
from .reports import ALL_REPORTS, GRAPH_REPORTS, REPORTS_BY_NAME
from .runner import run_session


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    action = args.profile_action

    if action == "list":
        return _profile_list()
    elif action == "add":
        return _profile_add(args)
    elif action == "remove":
        return _profile_remove(args)
    elif action == "set-default":
        return _profile_set_default(args)
    print("Usage: python -m m365_tenant_reports profile {add|list|remove|set-default}")
    return 0


def _profile_list() -> int:
    store = ProfileStore.load()
    profiles = store.list_profiles()
    if not profiles:
        print("No profiles configured. Add one with:\n")
        print("  python -m m365_tenant_reports profile add <name> \\")
        print("    --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt")
        return 0

    print(f"\n  {'Name':<24s} {'Tenant ID':<38s} {'Client ID':<38s} {'Default'}")
    print(f"  {'─'*24} {'─'*38} {'─'*38} {'─'*7}")
    for p in profiles:
        default_marker = "  ✓" if p.name == store.default_profile else ""
        display = p.tenant_display_name or ""
        name_col = f"{p.name}" + (f" ({display})" if display else "")
        print(f"  {name_col:<24s} {p.tenant_id:<38s} {p.client_id:<38s}{default_marker}")
    print()
    return 0


def _profile_add(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    name = args.profile_name
    if store.get(name):
        print(f"  Profile '{name}' already exists. It will be overwritten.")

    profile = TenantProfile(
        name=name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        cert_path=args.cert_path or "./base64.txt",
        tenant_display_name=args.display_name or "",
        notes=args.notes or "",
        telephony_connection=args.telephony_connection or "",
    )
    set_as_default = args.set_default or not store.profiles
    store.add(profile, set_default=set_as_default)
    print(f"  ✅ Profile '{name}' saved.")
    if set_as_default:
        print("  ✅ Set as default profile.")
    return 0


def _profile_remove(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.remove(args.profile_name):
        print(f"  ✅ Profile '{args.profile_name}' removed.")
        return 0
    print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 1


def _profile_set_default(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.set_default(args.profile_name):
        print(f"  ✅ Default profile set to '{args.profile_name}'.")
        return 0
    print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 1


def _cmd_list() -> int:
    print()
    for cls in ALL_REPORTS:
        print(f"  {cls.name:<20s} {cls.description}")
    print()
    return 0


def _cmd_permissions() -> int:
    print("\n  Microsoft Graph application permissions (all read-only):\n")
    for permission, reason in Authenticator.list_required_permissions().items():
        print(f"  {permission:<42s} {reason}")
    print()
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _connection_options() -> argparse.ArgumentParser:
    """Options shared by `run` and `summary`."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--profile", "-p",
        default=None,
        help="Tenant profile name to use (run 'profile list' to see available)",
    )
    common.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    common.add_argument(
        "--auth-mode",
        choices=AUTH_MODES,
        default=None,
        help="Authentication mode (default: certificate, or the config file's mode)",
    )
    common.add_argument("--tenant-id", default=None, help="Tenant ID (overrides profile)")
    common.add_argument("--client-id", default=None, help="Client ID (overrides profile)")
    common.add_argument(
        "--cert-path",
        type=Path,
        help="Path to base64-encoded certificate file (overrides profile)",
    )
    common.add_argument(
        "--tenant-name",
        default=None,
        help="Display name for the tenant in reports (overrides profile display name)",
    )
    common.add_argument("--output-dir", "-o", type=Path, default=None, help="Output directory")
    common.add_argument(
        "--formats",
        nargs="+",
        choices=OUTPUT_FORMATS,
        default=None,
        help="Output formats to generate (default: csv xlsx html)",
    )
    common.add_argument("--inactive-days", type=int, default=None, help="Inactivity threshold in days")
    common.add_argument(
        "--per-user-mfa",
        action="store_true",
        help="Also query per-user MFA state (one extra request per user)",
    )
    common.add_argument(
        "--telephony-connection",
        default=None,
        help="ODBC connection string for the legacy telephony database",
    )
    common.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return common


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="m365_tenant_reports",
        description="M365 Tenant Reports (READ-ONLY)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Commands")
    common = _connection_options()

    run_p = subparsers.add_parser("run", parents=[common], help="Run one or more reports")
    run_p.add_argument(
        "reports",
        nargs="+",
        choices=list(REPORTS_BY_NAME) + ["all"],
        metavar="REPORT",
        help="Report names (see 'list'), or 'all'",
    )

    sum_p = subparsers.add_parser(
        "summary",
        parents=[common],
        help="Run several reports and write one combined text summary",
    )
    sum_p.add_argument(
        "reports",
        nargs="*",
        metavar="REPORT",
        help="Report names (default: every Graph report)",
    )

    subparsers.add_parser("list", help="List available reports")
    subparsers.add_parser("permissions", help="List the Graph permissions the app registration needs")

    # --- profile management ---
    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", help="Profile actions")

    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Entra tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--cert-path", default="./base64.txt", help="Path to base64-encoded PFX (default: ./base64.txt)")
    add_p.add_argument("--display-name", help="Friendly tenant display name for reports")
    add_p.add_argument("--telephony-connection", help="ODBC connection string for the legacy PBX database")
    add_p.add_argument("--notes", help="Optional admin notes")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    prof_sub.add_parser("list", help="List all configured profiles")

    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name", help="Name of the profile to remove")

    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name", help="Name of the profile to set as default")

    return parser


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def _select_profile(args: argparse.Namespace) -> Optional[TenantProfile]:
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            raise ConfigError(
                f"Profile '{args.profile}' not found. Use 'profile list' to see available profiles."
            )
        return profile
    if not args.config and not args.tenant_id:
        return resolve_profile()
    return None


def build_config(args: argparse.Namespace) -> tuple[ToolkitConfig, str]:
    """
    Build the run configuration from config file, profile, and CLI flags
    (CLI flags win over the profile, the profile over the config file).

    Returns:
        (config, tenant display name)
    """
    config = ToolkitConfig.from_file(args.config) if args.config else ToolkitConfig()
    if args.auth_mode:
        config.auth.mode = args.auth_mode

    profile = _select_profile(args)
    tenant_id = args.tenant_id or (profile.tenant_id if profile else None)
    client_id = args.client_id or (profile.client_id if profile else None)

    if tenant_id and client_id:
        mode = config.auth.mode
        if mode == "certificate":
            if args.cert_path:
                cert_path = str(args.cert_path)
            elif profile:
                cert_path = profile.resolve_cert_path()
            else:
                cert_path = "./base64.txt"
            config.auth.certificate = CertificateAuth(
                tenant_id=tenant_id, client_id=client_id, certificate_path=cert_path,
            )
        elif mode == "secret":
            config.auth.secret = ClientSecretAuth(tenant_id=tenant_id, client_id=client_id)
        else:
            config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
    elif getattr(config.auth, config.auth.mode) is None:
        raise ConfigError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, or --config config.json"
        )

    if args.cert_path and config.auth.certificate:
        config.auth.certificate.certificate_path = str(args.cert_path)

    if args.telephony_connection:
        config.telephony.connection_string = args.telephony_connection
    elif profile and profile.telephony_connection and not config.telephony.connection_string:
        config.telephony.connection_string = profile.telephony_connection

    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.formats:
        config.output.formats = list(args.formats)
    if args.inactive_days is not None:
        config.reports.inactive_days = args.inactive_days
    if args.per_user_mfa:
        config.reports.include_per_user_mfa_state = True
    config.verbose = config.verbose or args.verbose
    config.reports.validate()
    config.output.validate()

    if args.tenant_name:
        tenant_name = args.tenant_name
    elif profile and profile.tenant_display_name:
        tenant_name = profile.tenant_display_name
    else:
        tenant_name = "Unknown Tenant"
    return config, tenant_name


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "profile":
        return _cmd_profile(args)
    if args.command == "permissions":
        return _cmd_permissions()
    if args.command == "list":
        return _cmd_list()
    if args.command not in ("run", "summary"):
        parser.print_help()
        return 0
    unknown = [n for n in args.reports if n not in REPORTS_BY_NAME and n != "all"]
    if unknown:
        parser.error(f"unknown report(s): {', '.join(unknown)}")

    configure_logging(args.verbose)
    try:
        config, tenant_name = build_config(args)
    except ConfigError as e:
        print(f"\n❌ Configuration error: {e}")
        return 2
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    requested = list(dict.fromkeys(args.reports))
    if "all" in requested:
        names = [cls.name for cls in ALL_REPORTS]
    else:
        names = requested or list(GRAPH_REPORTS)

    print("=" * 70)
    print(f" M365 Tenant Reports v{__version__}")
    print(" Mode: READ-ONLY — No tenant modifications will be made")
    print("=" * 70)
    print(f"\n🏢 Tenant:  {tenant_name}")
    print(f"📂 Output:  {config.output.report_dir.resolve()}")
    print(f"📋 Reports: {', '.join(names)}")

    return asyncio.run(
        run_session(config, names, tenant_name, chain_summary=args.command == "summary")
    )


if __name__ == "__main__":
    sys.exit(main())
