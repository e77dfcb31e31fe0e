"""
Tests for the tenant profile store.
"""

from __future__ import annotations

from pathlib import Path

from m365_tenant_reports.profiles import (
    ProfileStore,
    TenantProfile,
    profiles_file,
    resolve_profile,
)


def _profile(name, **kwargs):
    return TenantProfile(name=name, tenant_id=f"{name}-tenant", client_id=f"{name}-client", **kwargs)


def test_store_location_follows_env(reports_home):
    assert profiles_file() == reports_home / "profiles.json"


def test_first_profile_becomes_default(reports_home):
    store = ProfileStore.load()
    store.add(_profile("contoso", telephony_connection="DSN=pbx"))
    store.add(_profile("fabrikam"))

    loaded = ProfileStore.load()
    assert loaded.default_profile == "contoso"
    assert [p.name for p in loaded.list_profiles()] == ["contoso", "fabrikam"]
    assert loaded.get("CONTOSO").telephony_connection == "DSN=pbx"
    assert resolve_profile().name == "contoso"
    assert resolve_profile("fabrikam").tenant_id == "fabrikam-tenant"
    assert resolve_profile("nope") is None


def test_set_default_and_remove(reports_home):
    store = ProfileStore.load()
    store.add(_profile("contoso"))
    store.add(_profile("fabrikam"))
    store.add(_profile("adatum"))

    assert store.set_default("Fabrikam")
    assert ProfileStore.load().default_profile == "fabrikam"
    assert not store.set_default("missing")

    assert store.remove("fabrikam")
    assert not store.remove("fabrikam")
    # Default moves to the first remaining profile by name
    assert ProfileStore.load().default_profile == "adatum"


def test_corrupt_file_loads_empty(reports_home):
    reports_home.mkdir(parents=True)
    (reports_home / "profiles.json").write_text("{not json", encoding="utf-8")
    store = ProfileStore.load()
    assert store.profiles == {}
    assert store.get_default() is None


def test_relative_cert_path_is_resolved(reports_home, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    profile = _profile("contoso", cert_path="certs/base64.txt")
    assert profile.resolve_cert_path() == str(Path.cwd() / "certs" / "base64.txt")
