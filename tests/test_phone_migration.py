"""
Tests for the legacy telephony database reader and the phone-system migration
report. The database side runs against SQLite through the same DB-API calls
used with pyodbc.
"""

from __future__ import annotations

import sqlite3

import pytest

from m365_tenant_reports.config import TelephonyConfig
from m365_tenant_reports.reports import PhoneMigrationReport
from m365_tenant_reports.telephony import (
    LegacyDatabaseError,
    LegacyDid,
    LegacyTelephonyDatabase,
)

from conftest import FakeGraph, run

SQLITE_QUERY = "SELECT DID, Extension, OwnerName, ForwardTarget FROM DirectInwardDial"


@pytest.fixture
def pbx_db(tmp_path):
    path = tmp_path / "pbx.db"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE DirectInwardDial (DID TEXT, Extension TEXT, OwnerName TEXT, ForwardTarget TEXT)"
    )
    conn.executemany(
        "INSERT INTO DirectInwardDial VALUES (?, ?, ?, ?)",
        [
            ("(555) 010-2001", "2001", "John Smith", None),
            ("555-010-2002", "2002", "Jane Doe", "1003"),
            ("5550102003", "2003", "Reception", "+1 555 010 2001"),
            ("5550109999", "", None, "voicemail"),
            ("", "2005", "Blank", None),
        ],
    )
    conn.commit()
    conn.close()
    return path


def _telephony(path, query=SQLITE_QUERY):
    return TelephonyConfig(connection_string=str(path), query=query)


def test_fetch_dids(pbx_db):
    source = LegacyTelephonyDatabase(_telephony(pbx_db), driver=sqlite3)
    dids = source.fetch_dids()
    assert len(dids) == 4
    assert dids[0] == LegacyDid("(555) 010-2001", "2001", "John Smith", "")
    assert dids[3].owner_name == ""


def test_column_aliases(pbx_db):
    query = "SELECT DID AS Number, Extension AS Ext, OwnerName AS Owner FROM DirectInwardDial"
    source = LegacyTelephonyDatabase(_telephony(pbx_db, query), driver=sqlite3)
    dids = source.fetch_dids()
    assert dids[1].extension == "2002"
    assert dids[1].owner_name == "Jane Doe"
    assert dids[1].forward_target == ""


def test_missing_did_column(pbx_db):
    source = LegacyTelephonyDatabase(
        _telephony(pbx_db, "SELECT Extension FROM DirectInwardDial"), driver=sqlite3
    )
    with pytest.raises(LegacyDatabaseError, match="no DID column"):
        source.fetch_dids()


def test_query_error_is_wrapped(pbx_db):
    source = LegacyTelephonyDatabase(
        _telephony(pbx_db, "SELECT * FROM NoSuchTable"), driver=sqlite3
    )
    with pytest.raises(LegacyDatabaseError, match="DID query failed"):
        source.fetch_dids()


def test_connection_error_is_wrapped(tmp_path):
    source = LegacyTelephonyDatabase(
        _telephony(tmp_path / "missing-dir" / "pbx.db"), driver=sqlite3
    )
    with pytest.raises(LegacyDatabaseError, match="Cannot connect"):
        source.fetch_dids()


def test_missing_connection_string():
    with pytest.raises(LegacyDatabaseError, match="connection string"):
        LegacyTelephonyDatabase(TelephonyConfig(), driver=sqlite3).fetch_dids()


ASSIGNMENTS = [
    {"telephoneNumber": "+15550102001", "assignmentTargetId": "u1",
     "assignmentStatus": "userAssigned", "numberType": "directRouting"},
    {"telephoneNumber": "15550102002", "assignmentTargetId": "u2",
     "assignmentStatus": "userAssigned", "numberType": "directRouting"},
]

USERS = [
    {"id": "u1", "displayName": "Smith, John", "userPrincipalName": "john@contoso.com"},
    {"id": "u2", "displayName": "Janet Doe", "userPrincipalName": "janet@contoso.com"},
]


def _migration_graph():
    return FakeGraph({
        "admin/teams/telephoneNumberManagement/numberAssignments": ASSIGNMENTS,
        "users": USERS,
    })


def test_migration_statuses(toolkit_config, pbx_db):
    source = LegacyTelephonyDatabase(_telephony(pbx_db), driver=sqlite3)
    result = run(PhoneMigrationReport(_migration_graph(), toolkit_config, legacy_source=source).execute())

    assert not result.failed
    rows = {r["extension"]: r for r in result.rows}
    assert rows["2001"]["migration_status"] == "Migrated"
    assert rows["2001"]["e164_number"] == "+15550102001"
    assert rows["2001"]["teams_assignee"] == "john@contoso.com"
    assert rows["2002"]["migration_status"] == "Owner mismatch"
    assert rows["2002"]["teams_display_name"] == "Janet Doe"
    assert rows["2003"]["migration_status"] == "Not in Teams"
    assert rows["2003"]["teams_assignee"] == ""
    # Not-in-Teams first
    assert [r["migration_status"] for r in result.rows] == [
        "Not in Teams", "Not in Teams", "Owner mismatch", "Migrated",
    ]


def test_forward_targets(toolkit_config, pbx_db):
    source = LegacyTelephonyDatabase(_telephony(pbx_db), driver=sqlite3)
    result = run(PhoneMigrationReport(_migration_graph(), toolkit_config, legacy_source=source).execute())
    rows = {r["did"]: r for r in result.rows}

    assert rows["(555) 010-2001"]["forward_extension"] == ""
    assert rows["555-010-2002"]["forward_extension"] == "2003"
    assert rows["555-010-2002"]["forward_match"] == "add 1000"
    # A full number that is itself a legacy DID resolves through the DID table
    assert rows["5550102003"]["forward_extension"] == "2001"
    assert rows["5550102003"]["forward_match"] == "DID lookup"
    assert rows["5550109999"]["forward_extension"] == "Unknown"
    assert rows["5550109999"]["forward_match"] == "Unknown"
    assert rows["5550109999"]["legacy_owner"] == "Unknown"


def test_unassigned_teams_number_is_not_migrated(toolkit_config, pbx_db):
    graph = FakeGraph({
        "admin/teams/telephoneNumberManagement/numberAssignments": ASSIGNMENTS + [
            {"telephoneNumber": "+15550102003", "assignmentTargetId": None,
             "assignmentStatus": "unassigned", "numberType": "directRouting"},
            {"telephoneNumber": "+15550109999", "assignmentTargetId": "deleted-user",
             "assignmentStatus": "userAssigned", "numberType": "callingPlan"},
        ],
        "users": USERS,
    })
    source = LegacyTelephonyDatabase(_telephony(pbx_db), driver=sqlite3)
    result = run(PhoneMigrationReport(graph, toolkit_config, legacy_source=source).execute())
    rows = {r["did"]: r for r in result.rows}

    assert rows["5550102003"]["migration_status"] == "Not in Teams"
    assert rows["5550102003"]["assignment_status"] == "unassigned"
    assert rows["5550102003"]["teams_assignee"] == ""
    assert rows["5550109999"]["migration_status"] == "Not in Teams"
    assert rows["5550109999"]["assignment_status"] == "userAssigned"


def test_summary(toolkit_config, pbx_db):
    source = LegacyTelephonyDatabase(_telephony(pbx_db), driver=sqlite3)
    result = run(PhoneMigrationReport(_migration_graph(), toolkit_config, legacy_source=source).execute())
    assert result.summary == [
        "4 legacy DIDs: 1 migrated, 1 owner mismatch, 2 not in Teams",
        "3 call forwards, 1 could not be resolved to an extension",
    ]


def test_legacy_database_failure_aborts_report(toolkit_config):
    class BrokenSource:
        def fetch_dids(self):
            raise LegacyDatabaseError("Cannot connect to telephony database: login failed")

    graph = _migration_graph()
    result = run(PhoneMigrationReport(graph, toolkit_config, legacy_source=BrokenSource()).execute())
    assert result.failed
    assert "LegacyDatabaseError" in result.metadata["errors"][0]
    assert graph.calls == []
