"""
formats.py - string predicates for the ``format`` keyword
=========================================================

Every predicate takes a string and returns a ``bool``.  Formats that are not
listed in :data:`FORMAT_CHECKERS` always pass: ``format`` is advisory and an
unknown name is never a hard failure.

Public API
----------
FORMAT_CHECKERS
    Mapping of format name -> predicate.

check_format(name: str, value: str) -> bool
    Look up *name* and apply it to *value*.
"""

from __future__ import annotations

import calendar
import ipaddress
import logging
import re
import unicodedata
from typing import Callable, Dict
from urllib.parse import urlsplit

__all__ = ["FORMAT_CHECKERS", "check_format"]

log = logging.getLogger("schema_walker.formats")

# --------------------------------------------------------------------------- #
# Dates & times                                                               #
# --------------------------------------------------------------------------- #

_DATE_RE = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})")
_TIME_RE = re.compile(
    r"([0-9]{2}):([0-9]{2}):([0-9]{2})(?:\.[0-9]+)?(?:(Z)|([+-])([0-9]{2}):([0-9]{2}))",
    re.IGNORECASE,
)


def is_date(value: str) -> bool:
    """RFC 3339 ``full-date`` with calendar-correct day counts."""
    m = _DATE_RE.fullmatch(value)
    if not m:
        return False
    year, month, day = (int(g) for g in m.groups())
    if not 1 <= month <= 12 or day < 1:
        return False
    return day <= calendar.monthrange(year, month)[1]


def is_time(value: str) -> bool:
    """RFC 3339 ``full-time``; a leap second must land on 23:59:60 UTC."""
    m = _TIME_RE.fullmatch(value)
    if not m:
        return False
    hours, minutes, seconds = int(m[1]), int(m[2]), int(m[3])
    if hours > 23 or minutes > 59 or seconds > 60:
        return False

    offset = 0
    if not m[4]:
        off_h, off_m = int(m[6]), int(m[7])
        if off_h > 23 or off_m > 59:
            return False
        offset = (off_h * 60 + off_m) * (1 if m[5] == "+" else -1)

    if seconds == 60:
        utc = (hours * 60 + minutes - offset) % (24 * 60)
        return utc == 23 * 60 + 59
    return True


def is_date_time(value: str) -> bool:
    parts = re.split("[Tt]", value)
    if len(parts) != 2:
        return False
    return is_date(parts[0]) and is_time(parts[1])


_DURATION_DATE_RE = re.compile(
    r"P(?:([0-9]+)Y)?(?:([0-9]+)M)?(?:([0-9]+)W)?(?:([0-9]+)D)?"
)
_DURATION_TIME_RE = re.compile(r"(?:([0-9]+)H)?(?:([0-9]+)M)?(?:([0-9]+)S)?")


def is_duration(value: str) -> bool:
    """ISO 8601 duration (RFC 3339 appendix A grammar)."""
    date_part, sep, time_part = value.partition("T")
    dm = _DURATION_DATE_RE.fullmatch(date_part)
    if not dm:
        return False
    years, months, weeks, days = dm.groups()
    if weeks is not None and any(u is not None for u in (years, months, days)):
        return False

    time_units: tuple = (None, None, None)
    if sep:
        tm = _DURATION_TIME_RE.fullmatch(time_part)
        if not tm or not any(tm.groups()):
            return False  # "T" needs at least one time designator
        time_units = tm.groups()

    return any(u is not None for u in (years, months, weeks, days, *time_units))


# --------------------------------------------------------------------------- #
# Network names & addresses                                                   #
# --------------------------------------------------------------------------- #

_HOSTNAME_CHARS_RE = re.compile(r"[A-Za-z0-9.-]+")
_IDN_DOTS_RE = re.compile("[.\u3002\uff0e\uff61]")


def is_hostname(value: str) -> bool:
    """RFC 1123 host name: labels of letters, digits and inner hyphens."""
    if not value or len(value) > 255 or not _HOSTNAME_CHARS_RE.fullmatch(value):
        return False
    for label in value.split("."):
        if not label or len(label) > 63:
            return False
        if label[0] == "-" or label[-1] == "-":
            return False
    return True


def _script_of(ch: str) -> str:
    if not ch:
        return ""
    try:
        name = unicodedata.name(ch)
    except ValueError:
        return ""
    return name.split(" ", 1)[0]


def _is_japanese(ch: str) -> bool:
    if ch == "\u30fb":
        return False
    script = _script_of(ch)
    return script in ("HIRAGANA", "KATAKANA") or unicodedata.name(ch, "").startswith(
        "CJK UNIFIED IDEOGRAPH"
    )


def _idn_label_ok(label: str) -> bool:
    if not label or len(label) > 63:
        return False
    if label[0] == "-" or label[-1] == "-":
        return False
    if label[2:4] == "--":
        return False
    if unicodedata.category(label[0]).startswith("M"):
        return False  # no leading combining mark

    for i, ch in enumerate(label):
        prev = label[i - 1] if i else ""
        nxt = label[i + 1] if i + 1 < len(label) else ""
        if ch == "-" or (ch.isascii() and ch.isalnum()):
            continue
        if ch.isascii() or ch.isspace() or ch == "\u302e":
            return False
        if ch in "\u05f3\u05f4":  # Hebrew GERESH / GERSHAYIM
            if _script_of(prev) != "HEBREW":
                return False
        elif ch == "\u0375":  # Greek KERAIA
            if _script_of(nxt) != "GREEK":
                return False
        elif ch == "\u00b7":  # MIDDLE DOT only between two "l"
            if prev != "l" or nxt != "l":
                return False
        elif ch == "\u30fb":  # KATAKANA MIDDLE DOT
            if not any(_is_japanese(c) for c in label):
                return False
        elif ch in "\u200c\u200d":  # ZERO WIDTH (NON-)JOINER after a virama
            if not prev or unicodedata.combining(prev) != 9:
                return False
        elif unicodedata.category(ch)[0] not in "LMN":
            return False

    arabic = any("\u0660" <= c <= "\u0669" for c in label)
    extended = any("\u06f0" <= c <= "\u06f9" for c in label)
    return not (arabic and extended)


def is_idn_hostname(value: str) -> bool:
    """Internationalised host name, approximated label by label."""
    if not value or len(value) > 255:
        return False
    return all(_idn_label_ok(label) for label in _IDN_DOTS_RE.split(value))


def is_ipv4(value: str) -> bool:
    if not value.isascii():
        return False
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def is_ipv6(value: str) -> bool:
    if not value.isascii() or "%" in value or value.strip() != value:
        return False
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        return False
    return True


# --------------------------------------------------------------------------- #
# E-mail                                                                      #
# --------------------------------------------------------------------------- #

_LOCAL_PART_RE = re.compile(
    r"""(?!\.)("([^"\r\\]|\\["\r\\])*"|([-a-z0-9!#$%&'*+/=?^_`{|}~]|(?<!\.)\.)*)(?<!\.)""",
    re.IGNORECASE,
)


def _is_email(value: str, idn: bool) -> bool:
    local, at, domain = value.rpartition("@")
    if not at or not local:
        return False
    if domain.startswith("[") and domain.endswith("]"):
        literal = domain[1:-1]
        if literal.startswith("IPv6:"):
            if not is_ipv6(literal[5:]):
                return False
        elif not is_ipv4(literal):
            return False
    elif not (is_idn_hostname(domain) if idn else is_hostname(domain)):
        return False
    if idn:
        # non-ASCII letters are allowed in the local part of an idn-email
        local = "".join("a" if not c.isascii() and c.isalnum() else c for c in local)
    return _LOCAL_PART_RE.fullmatch(local) is not None


def is_email(value: str) -> bool:
    return _is_email(value, idn=False)


def is_idn_email(value: str) -> bool:
    return _is_email(value, idn=True)


# --------------------------------------------------------------------------- #
# URIs & IRIs                                                                 #
# --------------------------------------------------------------------------- #

_SCHEME_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.-]*")
_URI_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    "-._~:/?#[]@!$&'()*+,;=%"
)
_PCT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _uri_like(value: str, *, absolute: bool, iri: bool) -> bool:
    for ch in value:
        if ch in _URI_CHARS:
            continue
        if iri and not ch.isascii() and not ch.isspace() and unicodedata.category(ch)[0] != "C":
            continue
        return False
    if _PCT_RE.search(value):
        return False
    try:
        parts = urlsplit(value)
        parts.port  # raises on a non-numeric port
    except ValueError:
        return False
    if absolute:
        if not parts.scheme or not _SCHEME_RE.fullmatch(parts.scheme):
            return False
    if parts.netloc and "[" not in parts.netloc and "]" in parts.netloc:
        return False
    return True


def is_uri(value: str) -> bool:
    return _uri_like(value, absolute=True, iri=False)


def is_uri_reference(value: str) -> bool:
    return _uri_like(value, absolute=False, iri=False)


def is_iri(value: str) -> bool:
    return _uri_like(value, absolute=True, iri=True)


def is_iri_reference(value: str) -> bool:
    return _uri_like(value, absolute=False, iri=True)


_URI_TEMPLATE_RE = re.compile(r"(?:[^{}]|\{[^{}]+\})*")


def is_uri_template(value: str) -> bool:
    return _URI_TEMPLATE_RE.fullmatch(value) is not None


# --------------------------------------------------------------------------- #
# Misc                                                                        #
# --------------------------------------------------------------------------- #

_UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
_JSON_POINTER_RE = re.compile(r"(?:/(?:[^~/]|~0|~1)*)*")
_RELATIVE_JSON_POINTER_RE = re.compile(r"(?:0|[1-9][0-9]*)(?:#|(?:/(?:[^~/]|~0|~1)*)*)")


def is_uuid(value: str) -> bool:
    return _UUID_RE.fullmatch(value) is not None


def is_json_pointer(value: str) -> bool:
    return _JSON_POINTER_RE.fullmatch(value) is not None


def is_relative_json_pointer(value: str) -> bool:
    return _RELATIVE_JSON_POINTER_RE.fullmatch(value) is not None


def is_regex(value: str) -> bool:
    try:
        re.compile(value)
    except re.error:
        return False
    return True


# --------------------------------------------------------------------------- #
# Lookup table                                                                #
# --------------------------------------------------------------------------- #

FORMAT_CHECKERS: Dict[str, Callable[[str], bool]] = {
    "date": is_date,
    "time": is_time,
    "date-time": is_date_time,
    "duration": is_duration,
    "email": is_email,
    "idn-email": is_idn_email,
    "hostname": is_hostname,
    "idn-hostname": is_idn_hostname,
    "ipv4": is_ipv4,
    "ipv6": is_ipv6,
    "uri": is_uri,
    "uri-reference": is_uri_reference,
    "iri": is_iri,
    "iri-reference": is_iri_reference,
    "uri-template": is_uri_template,
    "uuid": is_uuid,
    "json-pointer": is_json_pointer,
    "relative-json-pointer": is_relative_json_pointer,
    "regex": is_regex,
}


def check_format(name: str, value: str) -> bool:
    """Return True iff *value* satisfies format *name* (unknown names pass)."""
    checker = FORMAT_CHECKERS.get(name)
    if checker is None:
        log.debug("unknown format %r accepted", name)
        return True
    return checker(value)
