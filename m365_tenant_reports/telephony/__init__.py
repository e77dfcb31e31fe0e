"""Legacy telephony package — PBX DID source and number matching."""

from .legacy_db import LegacyDatabaseError, LegacyDid, LegacyTelephonyDatabase
from .matching import EXTENSION_TEMPLATES, digits_only, guess_extension, normalize_number

__all__ = [
    "LegacyDatabaseError",
    "LegacyDid",
    "LegacyTelephonyDatabase",
    "EXTENSION_TEMPLATES",
    "digits_only",
    "guess_extension",
    "normalize_number",
]
