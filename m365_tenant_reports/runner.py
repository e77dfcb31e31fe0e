"""
Report runner — connect once, run the selected reports, export, disconnect.

The `summary` command chains several reports in one session and concatenates
their text summaries into a single tenant summary file.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from .auth.authenticator import Authenticator, AuthenticationError
from .config import ToolkitConfig
from .graph.client import GraphClient
from .reporting import (
    export_csv,
    export_html,
    export_json,
    export_summary,
    export_tenant_summary,
    export_xlsx,
)
from .reports import REPORTS_BY_NAME, BaseReport, PhoneMigrationReport, ReportResult
from .safety.guardian import ReadOnlyGuard

logger = logging.getLogger("m365_tenant_reports.runner")

_FORMAT_ICONS = {
    "csv": "📊 CSV:  ",
    "xlsx": "📗 Excel:",
    "html": "🌐 HTML: ",
    "json": "📄 JSON: ",
    "txt": "📝 Text: ",
}


def build_report(name: str, graph, config: ToolkitConfig, legacy_source=None) -> BaseReport:
    cls = REPORTS_BY_NAME.get(name)
    if cls is None:
        raise KeyError(f"Unknown report: {name}")
    if cls is PhoneMigrationReport:
        return cls(graph, config, legacy_source=legacy_source)
    return cls(graph, config)


async def run_reports(
    graph,
    config: ToolkitConfig,
    names: list[str],
    legacy_source=None,
) -> list[tuple[BaseReport, ReportResult]]:
    """
    Run reports concurrently against one Graph session.

    Returns:
        (report, result) pairs in the order requested.
    """
    reports = [build_report(n, graph, config, legacy_source) for n in names]
    completed = await asyncio.gather(*(r.execute() for r in reports), return_exceptions=True)

    pairs = []
    for report, result in zip(reports, completed):
        if isinstance(result, Exception):
            failed = ReportResult(report.name, report.title)
            failed.metadata["aborted"] = True
            failed.add_error(f"Report failed: {type(result).__name__}: {result}")
            result = failed

        if result.failed:
            print(f"  ❌ {report.title}: FAILED")
            for e in result.metadata["errors"]:
                print(f"      {e}")
        else:
            print(f"  ✅ {report.title}: {len(result.rows)} rows "
                  f"({result.metadata.get('duration_seconds', '?')}s)")
            for w in result.metadata["warnings"]:
                print(f"      ⚠  {w}")
        pairs.append((report, result))
    return pairs


def export_report(
    report: BaseReport,
    result: ReportResult,
    output_dir: Path,
    timestamp: str,
    formats: list[str],
    tenant_name: str = "Unknown Tenant",
) -> list[Path]:
    """Write one report in every requested format."""
    created = []
    for fmt in formats:
        if fmt == "csv":
            path = export_csv(result, report.columns, output_dir, timestamp)
        elif fmt == "xlsx":
            path = export_xlsx(result, report.columns, output_dir, timestamp)
        elif fmt == "html":
            path = export_html(
                result, report.columns, output_dir, timestamp,
                description=report.description, tenant_name=tenant_name,
            )
        elif fmt == "json":
            path = export_json(result, output_dir, timestamp, tenant_name)
        elif fmt == "txt":
            path = export_summary(result, output_dir, timestamp)
        else:
            logger.warning(f"Unknown output format skipped: {fmt}")
            continue
        print(f"  {_FORMAT_ICONS[fmt]} {path}")
        created.append(path)
    return created


async def run_session(
    config: ToolkitConfig,
    names: list[str],
    tenant_name: str = "Unknown Tenant",
    chain_summary: bool = False,
    authenticator=None,
    legacy_source=None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Authenticate, run the named reports, and export them.

    Returns a process exit code: 0 if at least one report succeeded,
    1 if authentication failed or every report failed.
    """
    output_dir = config.output.report_dir
    timestamp = config.output.timestamp

    print("\n🔐 Authenticating...")
    authenticator = authenticator or Authenticator(config.auth)
    try:
        token = await authenticator.acquire_token()
    except AuthenticationError as e:
        print(f"❌ Authentication failed: {e}")
        return 1
    print("✅ Authentication successful.")

    guard = ReadOnlyGuard()
    async with GraphClient(token, guard, retry=config.retry, transport=transport) as graph:
        print(f"\n  Running {len(names)} report(s)...\n")
        pairs = await run_reports(graph, config, names, legacy_source)
        stats = graph.get_stats()

    audit = guard.get_audit_record()
    for _, result in pairs:
        result.metadata["read_only"] = {
            "checks_performed": audit["checks_performed"],
            "violations_detected": audit["violations_detected"],
        }
    if audit["violations"]:
        print(f"  ⚠  {audit['violations_detected']} write request(s) were blocked by the read-only guard")
    logger.info(
        f"Graph session closed: {stats['total_requests']} requests, "
        f"{stats['throttle_events']} throttled"
    )

    print()
    config.output.create_directories()
    created = []
    if chain_summary:
        path = export_tenant_summary([r for _, r in pairs], output_dir, timestamp, tenant_name)
        print(f"  {_FORMAT_ICONS['txt']} {path}")
        created.append(path)
    else:
        for report, result in pairs:
            if result.failed:
                continue
            created.extend(
                export_report(report, result, output_dir, timestamp, config.output.formats, tenant_name)
            )

    succeeded = sum(1 for _, r in pairs if not r.failed)
    print(f"\n  {succeeded}/{len(pairs)} reports succeeded, {len(created)} files written")
    print(f"  Path: {output_dir.resolve()}\n")
    return 0 if succeeded else 1
