"""
Tests for E.164 normalisation and forward-target extension guessing.
"""

from __future__ import annotations

import pytest

from m365_tenant_reports.telephony import guess_extension, normalize_number
from m365_tenant_reports.telephony.matching import EXTENSION_TEMPLATES


@pytest.mark.parametrize("raw,expected", [
    ("(555) 123-4567", "+15551234567"),
    ("15551234567", "+15551234567"),
    ("+44 20 7946 0018", "+442079460018"),
    ("0044 20 7946 0018", "+442079460018"),
    ("tel:+15551234567", "+15551234567"),
    ("2001", None),
    ("", None),
    (None, None),
])
def test_normalize_number(raw, expected):
    assert normalize_number(raw) == expected


@pytest.mark.parametrize("raw,country_code,expected", [
    ("20 7946 0018", "44", "+442079460018"),
    ("020 7946 0018", "44", "+442079460018"),
    ("44 20 7946 0018", "44", "+442079460018"),
    ("0412 345 678", "61", "+61412345678"),
    ("(02) 9374 4000", "61", "+61293744000"),
    ("61 412 345 678", "61", "+61412345678"),
    ("612 345 678", "61", "+61612345678"),
])
def test_normalize_number_other_country_code(raw, country_code, expected):
    assert normalize_number(raw, country_code=country_code) == expected


KNOWN = ["2001", "3045", "5123", "1234"]


def test_exact_extension():
    assert guess_extension("2001", KNOWN) == ("2001", "exact")


def test_last_digits_of_full_number():
    assert guess_extension("+1 (555) 555-3045", KNOWN) == ("3045", "last digits")


def test_add_1000():
    assert guess_extension("1001", KNOWN) == ("2001", "add 1000")


def test_prefix_5():
    assert guess_extension("123", KNOWN) == ("5123", "prefix 5")


def test_prefix_5_to_last_digits():
    assert guess_extension("9999123", KNOWN) == ("5123", "prefix 5 to last digits")


def test_templates_are_tried_in_order():
    # "1234" is both an exact hit and (via add 1000) would give 2234
    assert guess_extension("1234", KNOWN + ["2234"]) == ("1234", "exact")


def test_no_match():
    assert guess_extension("7777", KNOWN) == (None, None)
    assert guess_extension("", KNOWN) == (None, None)
    assert guess_extension("voicemail", KNOWN) == (None, None)


def test_single_digit_extensions():
    assert guess_extension("57", ["7"], extension_length=1) == ("7", "last digits")
    assert guess_extension("9", ["59"], extension_length=1) == ("59", "prefix 5")
    name, build = EXTENSION_TEMPLATES[-1]
    assert name == "prefix 5 to last digits"
    assert build("1234", 1) == ""
