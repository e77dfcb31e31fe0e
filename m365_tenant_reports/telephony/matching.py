"""
Number normalisation and forward-target extension guessing.

Legacy forwarding targets are free text: sometimes a full number, sometimes a
short internal code. The guess tries a fixed ordered list of string templates
and keeps the first candidate that is a known extension.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Optional

_NON_DIGITS = re.compile(r"\D")
# Shortest national significant number that can follow a country code
_MIN_NATIONAL_DIGITS = 9

# (template name, candidate builder(digits, extension_length))
EXTENSION_TEMPLATES: list[tuple[str, Callable[[str, int], str]]] = [
    ("exact", lambda d, n: d),
    ("last digits", lambda d, n: d[-n:]),
    ("add 1000", lambda d, n: str(int(d) + 1000)),
    ("prefix 5", lambda d, n: "5" + d),
    ("prefix 5 to last digits", lambda d, n: "5" + d[-(n - 1):] if n > 1 else ""),
]


def digits_only(value) -> str:
    return _NON_DIGITS.sub("", str(value or ""))


def normalize_number(raw, country_code: str = "1") -> Optional[str]:
    """
    Normalise a phone number to E.164. National numbers get the country code,
    with one leading trunk 0 dropped ("020 7946 0018" -> "+442079460018").
    Returns None for values too short to be a public number (extensions, blanks).
    """
    text = str(raw or "").strip()
    if text.lower().startswith("tel:"):
        text = text[4:]
    digits = digits_only(text)
    if len(digits) < 7:
        return None
    if text.startswith("+"):
        return "+" + digits
    if digits.startswith("00"):
        return "+" + digits[2:]
    if digits.startswith("0"):
        return "+" + country_code + digits[1:]
    if digits.startswith(country_code) and len(digits) - len(country_code) >= _MIN_NATIONAL_DIGITS:
        return "+" + digits
    return "+" + country_code + digits


def guess_extension(
    target,
    known_extensions: Iterable[str],
    extension_length: int = 4,
) -> tuple[Optional[str], Optional[str]]:
    """
    Resolve a forward target to a known extension.
    Returns (extension, template name) or (None, None).
    """
    digits = digits_only(target)
    if not digits:
        return None, None
    known = {digits_only(e) for e in known_extensions if digits_only(e)}

    for template_name, build in EXTENSION_TEMPLATES:
        candidate = build(digits, extension_length)
        if candidate in known:
            return candidate, template_name
    return None, None
