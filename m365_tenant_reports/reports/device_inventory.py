"""
Device Inventory Report
Entra ID devices joined with Intune managed devices, with a stale flag.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone

from .base import BaseReport, ReportResult, UNKNOWN, days_since, parse_graph_datetime

logger = logging.getLogger("m365_tenant_reports.reports.device_inventory")


class DeviceInventoryReport(BaseReport):
    name = "device-inventory"
    title = "Device Inventory"
    description = "Entra and Intune devices with compliance and staleness"
    columns = [
        "device_name", "operating_system", "os_version", "source", "trust_type",
        "owner", "account_enabled", "managed", "compliance_state", "encrypted",
        "model", "serial_number", "last_sign_in", "last_sync",
        "days_since_activity", "stale",
    ]

    async def fetch(self, result: ReportResult):
        entra_devices, managed_devices = await asyncio.gather(
            self.safe_get_all(
                "devices",
                result,
                params={
                    "$select": "id,deviceId,displayName,operatingSystem,"
                               "operatingSystemVersion,trustType,accountEnabled,"
                               "isManaged,isCompliant,approximateLastSignInDateTime",
                },
            ),
            self.safe_get_all(
                "deviceManagement/managedDevices",
                result,
                params={
                    "$select": "id,azureADDeviceId,deviceName,operatingSystem,"
                               "osVersion,complianceState,isEncrypted,"
                               "lastSyncDateTime,userPrincipalName,model,"
                               "serialNumber,managedDeviceOwnerType",
                },
            ),
        )
        result.add_data("entra_devices", entra_devices)
        result.add_data("managed_devices", managed_devices)

    def transform(self, result: ReportResult) -> list[dict]:
        now = datetime.now(timezone.utc)
        stale_days = self.settings.stale_device_days

        # Re-enrolment can leave several Intune records pointing at one Entra device
        intune_by_device_id: dict[str, list[dict]] = {}
        for md in result.data.get("managed_devices", []):
            key = (md.get("azureADDeviceId") or "").lower()
            if key and key != "00000000-0000-0000-0000-000000000000":
                intune_by_device_id.setdefault(key, []).append(md)

        rows = []
        matched = set()
        for dev in result.data.get("entra_devices", []):
            key = (dev.get("deviceId") or "").lower()
            managed = intune_by_device_id.get(key)
            if managed:
                matched.add(key)
                rows.extend(self._row(dev, md, now, stale_days) for md in managed)
            else:
                rows.append(self._row(dev, None, now, stale_days))

        for key, managed in intune_by_device_id.items():
            if key not in matched:
                rows.extend(self._row(None, md, now, stale_days) for md in managed)
        # Intune devices without an Entra registration at all
        for md in result.data.get("managed_devices", []):
            key = (md.get("azureADDeviceId") or "").lower()
            if not key or key == "00000000-0000-0000-0000-000000000000":
                rows.append(self._row(None, md, now, stale_days))

        rows.sort(key=lambda r: str(r["device_name"]).lower())
        return rows

    def _row(self, dev, md, now, stale_days) -> dict:
        dev = dev or {}
        md = md or {}
        sign_in = parse_graph_datetime(dev.get("approximateLastSignInDateTime"))
        sync = parse_graph_datetime(md.get("lastSyncDateTime"))
        seen = [dt for dt in (sign_in, sync) if dt]
        days = days_since(max(seen), now) if seen else None

        if dev and md:
            source = "Entra + Intune"
        elif md:
            source = "Intune"
        else:
            source = "Entra"

        return self.shape_row({
            "device_name": dev.get("displayName") or md.get("deviceName"),
            "operating_system": dev.get("operatingSystem") or md.get("operatingSystem"),
            "os_version": dev.get("operatingSystemVersion") or md.get("osVersion"),
            "source": source,
            "trust_type": dev.get("trustType"),
            "owner": md.get("userPrincipalName"),
            "account_enabled": dev.get("accountEnabled"),
            "managed": bool(md) or bool(dev.get("isManaged")),
            "compliance_state": md.get("complianceState") or _entra_compliance(dev),
            "encrypted": md.get("isEncrypted"),
            "model": md.get("model"),
            "serial_number": md.get("serialNumber"),
            "last_sign_in": dev.get("approximateLastSignInDateTime"),
            "last_sync": md.get("lastSyncDateTime"),
            "days_since_activity": days,
            "stale": UNKNOWN if days is None else days >= stale_days,
        })

    def summarize(self, result: ReportResult) -> list[str]:
        rows = result.rows
        sources = Counter(r["source"] for r in rows)
        os_counts = Counter(r["operating_system"] for r in rows)
        stale = sum(1 for r in rows if r["stale"] is True)
        noncompliant = sum(1 for r in rows if r["compliance_state"] in ("noncompliant", "Noncompliant"))
        lines = [
            f"{len(rows)} devices ({sources.get('Entra + Intune', 0)} managed and registered, "
            f"{sources.get('Entra', 0)} Entra only, {sources.get('Intune', 0)} Intune only)",
            f"{stale} stale (>= {self.settings.stale_device_days} days), {noncompliant} noncompliant",
        ]
        if os_counts:
            lines.append("By OS: " + ", ".join(f"{os_name} {n}" for os_name, n in os_counts.most_common(5)))
        return lines


def _entra_compliance(dev: dict):
    if not dev or dev.get("isCompliant") is None:
        return None
    return "compliant" if dev["isCompliant"] else "noncompliant"
