"""
Tests for the device inventory join of Entra devices and Intune managed devices.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from m365_tenant_reports.reports import DeviceInventoryReport

from conftest import FakeGraph, run


def _ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")


def _graph():
    return FakeGraph({
        "devices": [
            {"deviceId": "AAAA-1", "displayName": "LAPTOP-01", "operatingSystem": "Windows",
             "trustType": "AzureAd", "accountEnabled": True,
             "approximateLastSignInDateTime": _ago(200)},
            {"deviceId": "bbbb-2", "displayName": "byod-phone", "operatingSystem": "iOS",
             "isCompliant": False, "approximateLastSignInDateTime": _ago(120)},
            {"deviceId": "cccc-3", "displayName": "kiosk", "operatingSystem": "Windows"},
        ],
        "deviceManagement/managedDevices": [
            {"azureADDeviceId": "aaaa-1", "deviceName": "LAPTOP-01", "operatingSystem": "Windows",
             "complianceState": "compliant", "isEncrypted": True,
             "lastSyncDateTime": _ago(2), "userPrincipalName": "alice@contoso.com",
             "serialNumber": "SN1"},
            {"azureADDeviceId": "dddd-4", "deviceName": "MAC-02", "operatingSystem": "macOS",
             "complianceState": "noncompliant", "lastSyncDateTime": _ago(100)},
            {"azureADDeviceId": "00000000-0000-0000-0000-000000000000", "deviceName": "android-x",
             "operatingSystem": "Android", "lastSyncDateTime": _ago(1)},
        ],
    })


def test_join_on_entra_device_id(toolkit_config):
    result = run(DeviceInventoryReport(_graph(), toolkit_config).execute())
    rows = {r["device_name"]: r for r in result.rows}

    assert len(result.rows) == 5
    laptop = rows["LAPTOP-01"]
    assert laptop["source"] == "Entra + Intune"
    assert laptop["owner"] == "alice@contoso.com"
    assert laptop["compliance_state"] == "compliant"
    # Recent Intune sync wins over the old Entra sign-in
    assert laptop["days_since_activity"] == 2
    assert laptop["stale"] is False

    assert rows["byod-phone"]["source"] == "Entra"
    assert rows["byod-phone"]["compliance_state"] == "noncompliant"
    assert rows["byod-phone"]["stale"] is True
    assert rows["MAC-02"]["source"] == "Intune"
    assert rows["android-x"]["source"] == "Intune"


def test_device_without_activity_is_unknown(toolkit_config):
    result = run(DeviceInventoryReport(_graph(), toolkit_config).execute())
    kiosk = next(r for r in result.rows if r["device_name"] == "kiosk")
    assert kiosk["stale"] == "Unknown"
    assert kiosk["compliance_state"] == "Unknown"
    assert kiosk["managed"] is False


def test_rows_sorted_by_name(toolkit_config):
    result = run(DeviceInventoryReport(_graph(), toolkit_config).execute())
    assert [r["device_name"] for r in result.rows] == [
        "android-x", "byod-phone", "kiosk", "LAPTOP-01", "MAC-02",
    ]


def test_summary(toolkit_config):
    result = run(DeviceInventoryReport(_graph(), toolkit_config).execute())
    assert result.summary[0] == (
        "5 devices (1 managed and registered, 2 Entra only, 2 Intune only)"
    )
    assert result.summary[1] == "2 stale (>= 90 days), 2 noncompliant"


def test_every_managed_record_for_one_device_is_kept(toolkit_config):
    graph = FakeGraph({
        "devices": [{"deviceId": "abc", "displayName": "PC-01", "operatingSystem": "Windows"}],
        "deviceManagement/managedDevices": [
            {"azureADDeviceId": "abc", "deviceName": "PC-OLD", "serialNumber": "SN-OLD",
             "lastSyncDateTime": _ago(150)},
            {"azureADDeviceId": "ABC", "deviceName": "PC-NEW", "serialNumber": "SN-NEW",
             "lastSyncDateTime": _ago(1)},
        ],
    })
    result = run(DeviceInventoryReport(graph, toolkit_config).execute())

    assert len(result.rows) == 2
    assert {r["serial_number"] for r in result.rows} == {"SN-OLD", "SN-NEW"}
    assert {r["source"] for r in result.rows} == {"Entra + Intune"}
    stale = {r["serial_number"]: r["stale"] for r in result.rows}
    assert stale == {"SN-OLD": True, "SN-NEW": False}
