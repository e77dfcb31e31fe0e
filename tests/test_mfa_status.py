"""
Tests for the MFA status report: three concurrent queries joined per user,
plus the optional batched per-user MFA state.
"""

from __future__ import annotations

from m365_tenant_reports.graph.client import GraphAPIError
from m365_tenant_reports.reports import MfaStatusReport

from conftest import FakeGraph, run

USERS = [
    {"id": "u1", "userPrincipalName": "admin@contoso.com", "displayName": "Admin",
     "accountEnabled": True, "userType": "Member"},
    {"id": "u2", "userPrincipalName": "alice@contoso.com", "displayName": "Alice",
     "accountEnabled": True, "userType": "Member"},
    {"id": "u3", "userPrincipalName": "guest@fabrikam.com", "displayName": "Guest",
     "accountEnabled": True, "userType": "Guest"},
    {"id": "u4", "userPrincipalName": "left@contoso.com", "displayName": "Left",
     "accountEnabled": False, "userType": "Member"},
    {"id": "u5", "userPrincipalName": "secure-admin@contoso.com", "displayName": "Secure Admin",
     "accountEnabled": True, "userType": "Member"},
]

REGISTRATIONS = [
    {"id": "u1", "isMfaRegistered": False, "isMfaCapable": False, "methodsRegistered": []},
    {"id": "u2", "isMfaRegistered": True, "isMfaCapable": True,
     "methodsRegistered": ["microsoftAuthenticatorPush", "mobilePhone"],
     "defaultMfaMethod": "microsoftAuthenticatorPush"},
    {"id": "u4", "isMfaRegistered": False},
    {"id": "u5", "isMfaRegistered": True, "isMfaCapable": True, "isAdmin": True,
     "methodsRegistered": ["fido2"], "isPasswordlessCapable": True},
]

ROLES = [
    {"id": "r-ga", "displayName": "Global Administrator"},
    {"id": "r-exo", "displayName": "Exchange Administrator"},
]

ROLE_MEMBERS = {
    "directoryRoles/r-ga/members": [{"id": "u1"}],
    "directoryRoles/r-exo/members": [{"id": "u1"}],
}


def _graph(**batch):
    return FakeGraph(
        {
            "reports/authenticationMethods/userRegistrationDetails": REGISTRATIONS,
            "users": USERS,
            "directoryRoles": ROLES,
            **ROLE_MEMBERS,
        },
        batch_responses=batch.get("batch_responses"),
    )


def test_admin_without_mfa_sorts_first(toolkit_config):
    result = run(MfaStatusReport(_graph(), toolkit_config).execute())
    rows = result.rows

    assert rows[0]["user_principal_name"] == "admin@contoso.com"
    assert rows[0]["admin_without_mfa"] is True
    assert rows[0]["admin_roles"] == "Exchange Administrator; Global Administrator"
    assert rows[0]["mfa_status"] == "Not registered"
    assert rows[0]["methods_registered"] == "None"
    assert rows[1]["user_principal_name"] == "secure-admin@contoso.com"
    assert rows[1]["is_admin"] is True
    assert rows[1]["passwordless_capable"] is True


def test_disabled_users_excluded_by_default(toolkit_config):
    result = run(MfaStatusReport(_graph(), toolkit_config).execute())
    upns = [r["user_principal_name"] for r in result.rows]
    assert "left@contoso.com" not in upns
    assert "guest@fabrikam.com" in upns

    toolkit_config.reports.include_disabled = True
    toolkit_config.reports.include_guests = False
    result = run(MfaStatusReport(_graph(), toolkit_config).execute())
    upns = [r["user_principal_name"] for r in result.rows]
    assert "left@contoso.com" in upns
    assert "guest@fabrikam.com" not in upns


def test_user_without_registration_details_is_unknown(toolkit_config):
    result = run(MfaStatusReport(_graph(), toolkit_config).execute())
    guest = next(r for r in result.rows if r["user_principal_name"] == "guest@fabrikam.com")
    assert guest["mfa_status"] == "Unknown"
    assert guest["mfa_registered"] == "Unknown"
    assert guest["per_user_mfa_state"] == "Not checked"


def test_summary(toolkit_config):
    result = run(MfaStatusReport(_graph(), toolkit_config).execute())
    assert result.summary[0] == (
        "4 users: 2 registered, 1 not registered, 1 unknown (coverage 50.0%)"
    )
    assert result.summary[1] == "1 admins without MFA"
    assert result.summary[2] == "  - admin@contoso.com"


def test_per_user_state_is_batched(toolkit_config):
    toolkit_config.reports.include_per_user_mfa_state = True
    graph = _graph(batch_responses={
        "/users/u1/authentication/requirements": {"perUserMfaState": "disabled"},
        "/users/u2/authentication/requirements": {"perUserMfaState": "enforced"},
        "/users/u5/authentication/requirements": {},
    })
    result = run(MfaStatusReport(graph, toolkit_config).execute())

    assert len(graph.batch_calls) == 1
    assert len(graph.batch_calls[0]) == len(USERS)
    states = {r["user_principal_name"]: r["per_user_mfa_state"] for r in result.rows}
    assert states["admin@contoso.com"] == "disabled"
    assert states["alice@contoso.com"] == "enforced"
    assert states["secure-admin@contoso.com"] == "Unknown"
    assert states["guest@fabrikam.com"] == "Error"
    assert any("Per-user MFA state unavailable for 2/5" in w for w in result.metadata["warnings"])


def test_role_members_are_paged_per_role(toolkit_config):
    many = [{"id": f"m{i}"} for i in range(25)]
    users = USERS + [
        {"id": f"m{i}", "userPrincipalName": f"helpdesk{i}@contoso.com", "accountEnabled": True}
        for i in range(25)
    ]
    graph = FakeGraph({
        "reports/authenticationMethods/userRegistrationDetails": REGISTRATIONS,
        "users": users,
        "directoryRoles": ROLES + [{"id": "r-hd", "displayName": "Helpdesk Administrator"}],
        "directoryRoles/r-hd/members": many,
        **ROLE_MEMBERS,
    })
    result = run(MfaStatusReport(graph, toolkit_config).execute())

    assert "directoryRoles/r-hd/members" in graph.calls
    helpdesk = [r for r in result.rows if r["admin_roles"] == "Helpdesk Administrator"]
    assert len(helpdesk) == 25
    assert all(r["is_admin"] for r in helpdesk)


def test_failed_batch_marks_every_user_error(toolkit_config):
    class FailingBatchGraph(FakeGraph):
        async def batch_get(self, endpoints, beta=False):
            raise GraphAPIError(500, "Internal Server Error", "https://graph.microsoft.com/beta/$batch")

    toolkit_config.reports.include_per_user_mfa_state = True
    graph = FailingBatchGraph(_graph().responses)
    result = run(MfaStatusReport(graph, toolkit_config).execute())

    assert not result.failed
    assert len(result.rows) == 4
    assert {r["per_user_mfa_state"] for r in result.rows} == {"Error"}
    assert any("Per-user MFA state unavailable for 5/5" in w for w in result.metadata["warnings"])
