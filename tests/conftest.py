"""
Pytest fixtures for M365 Tenant Reports. Graph is replaced by an in-memory
fake keyed by endpoint so report logic runs without a tenant.
"""

from __future__ import annotations

import asyncio

import pytest

from m365_tenant_reports.config import OutputConfig, ToolkitConfig

TIMESTAMP = "20250101T000000Z"


class FakeGraph:
    """
    Stands in for GraphClient. `responses` maps endpoint -> list (paged
    endpoints), dict (single GET) or an exception to raise.
    """

    def __init__(self, responses=None, batch_responses=None):
        self.responses = responses or {}
        self.batch_responses = batch_responses or {}
        self.calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    def _lookup(self, endpoint, default):
        self.calls.append(endpoint)
        value = self.responses.get(endpoint, default)
        if isinstance(value, Exception):
            raise value
        return value

    async def get(self, endpoint, params=None, beta=False):
        return self._lookup(endpoint, {})

    async def get_all_pages(self, endpoint, params=None, beta=False, skip_top=False):
        return list(self._lookup(endpoint, []))

    async def get_all_pages_stream(self, endpoint, params=None, beta=False, skip_top=False):
        for item in self._lookup(endpoint, []):
            yield item

    async def batch_get(self, endpoints, beta=False):
        self.batch_calls.append(list(endpoints))
        return [
            self.batch_responses.get(
                ep, {"_error": True, "status": 404, "_error_message": "Not found"}
            )
            for ep in endpoints
        ]


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def toolkit_config(tmp_path):
    return ToolkitConfig(
        output=OutputConfig(base_dir=str(tmp_path / "out"), timestamp=TIMESTAMP),
    )


@pytest.fixture
def reports_home(tmp_path, monkeypatch):
    """Point the profile store at a temporary directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("M365_REPORTS_HOME", str(home))
    return home
