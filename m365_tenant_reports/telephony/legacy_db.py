"""
Legacy telephony database — DID records from the on-prem PBX SQL Server.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..config import TelephonyConfig

logger = logging.getLogger("m365_tenant_reports.telephony")

# Accepted column names (case-insensitive) for each DID field
COLUMN_ALIASES = {
    "did": ("did", "number", "phonenumber", "directinwarddial"),
    "extension": ("extension", "ext"),
    "owner_name": ("ownername", "owner", "name", "displayname"),
    "forward_target": ("forwardtarget", "forward", "forwardto", "callforward"),
}


class LegacyDatabaseError(Exception):
    """Raised when the telephony database cannot be read."""
    pass


@dataclass
class LegacyDid:
    did: str
    extension: str = ""
    owner_name: str = ""
    forward_target: str = ""


class LegacyTelephonyDatabase:
    """
    Reads DID rows with a configurable query.
    `driver` is any DB-API 2.0 module (connect() and Error); pyodbc by default.
    """

    def __init__(self, config: TelephonyConfig, driver: Optional[Any] = None):
        self.config = config
        self._driver = driver

    def _get_driver(self):
        if self._driver is None:
            import pyodbc  # needs the system ODBC driver manager, so loaded on first use
            self._driver = pyodbc
        return self._driver

    def fetch_dids(self) -> list[LegacyDid]:
        if not self.config.connection_string:
            raise LegacyDatabaseError(
                "No telephony connection string configured (telephony.connection_string)"
            )
        driver = self._get_driver()

        try:
            conn = driver.connect(self.config.connection_string, timeout=30)
        except driver.Error as e:
            raise LegacyDatabaseError(f"Cannot connect to telephony database: {e}")

        try:
            cursor = conn.cursor()
            cursor.execute(self.config.query)
            columns = [d[0] for d in cursor.description or []]
            records = cursor.fetchall()
        except driver.Error as e:
            raise LegacyDatabaseError(f"DID query failed: {e}")
        finally:
            conn.close()

        index = _map_columns(columns)
        dids = []
        for record in records:
            did = _cell(record, index, "did")
            if not did:
                continue
            dids.append(LegacyDid(
                did=did,
                extension=_cell(record, index, "extension"),
                owner_name=_cell(record, index, "owner_name"),
                forward_target=_cell(record, index, "forward_target"),
            ))
        logger.info(f"Read {len(dids)} DIDs from telephony database")
        return dids


def _map_columns(columns: list[str]) -> dict[str, int]:
    lowered = [c.lower().replace("_", "").replace(" ", "") for c in columns]
    index = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in lowered:
                index[field_name] = lowered.index(alias)
                break
    if "did" not in index:
        raise LegacyDatabaseError(f"DID query returned no DID column (columns: {columns})")
    return index


def _cell(record, index: dict[str, int], field_name: str) -> str:
    pos = index.get(field_name)
    if pos is None or record[pos] is None:
        return ""
    return str(record[pos]).strip()
