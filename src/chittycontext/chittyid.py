"""
ChittyID utilities.

A ChittyID is an opaque, hyphen-separated principal identifier such as
``01-U-SYS-0001-0-0000-S-X``. Segment 0 is a two-digit version and segment 1
a single uppercase letter naming the principal group. Everything here is pure
and fails closed: malformed input yields ``False``/``None``, never an
exception.
"""

import re
from typing import Any, Mapping, NamedTuple, Optional

SYSTEM_CHITTY_ID = "01-X-SYS-0000-0-0000-S-X"

CHITTY_ID_HEADER = "X-Chitty-ID"
CHITTY_ID_BODY_FIELD = "chittyId"

GROUPS: dict[str, str] = {
    "U": "user",
    "S": "service",
    "D": "device",
    "A": "admin",
    "O": "organization",
    "X": "system",
}

_VERSION_RE = re.compile(r"^\d{2}$")
_GROUP_RE = re.compile(r"^[A-Z]$")


class ParsedChittyId(NamedTuple):
    """Segment breakdown of a ChittyID. Missing trailing segments are None."""

    version: str
    group: str
    location: str
    sequence: str
    tier: Optional[str]
    year_month: Optional[str]
    checksum: Optional[str]
    suffix: Optional[str]


def validate_chitty_id(chitty_id: Any) -> bool:
    """Return True if ``chitty_id`` has the minimum ChittyID shape."""
    if not chitty_id or not isinstance(chitty_id, str):
        return False
    parts = chitty_id.split("-")
    if len(parts) < 4:
        return False
    return bool(_VERSION_RE.match(parts[0]) and _GROUP_RE.match(parts[1]))


def parse_chitty_id(chitty_id: Any) -> Optional[ParsedChittyId]:
    """Split a valid ChittyID into its eight named segments."""
    if not validate_chitty_id(chitty_id):
        return None
    parts = chitty_id.split("-")
    padded = parts[:8] + [None] * (8 - len(parts[:8]))
    return ParsedChittyId(*padded)


def get_chitty_id_group(chitty_id: Any) -> Optional[str]:
    """Return the principal group name, ``"unknown"`` or None if unparsable."""
    parsed = parse_chitty_id(chitty_id)
    if parsed is None:
        return None
    return GROUPS.get(parsed.group, "unknown")


def is_system_chitty_id(chitty_id: Any) -> bool:
    parsed = parse_chitty_id(chitty_id)
    return parsed is not None and parsed.group == "X"


def extract_chitty_id(request: Any, body: Optional[Any] = None) -> Optional[str]:
    """
    Extract the caller's ChittyID from a request.

    Precedence is fixed:
    1. ``X-Chitty-ID`` header
    2. ``Authorization: Bearer <token>`` when the token itself is a ChittyID
    3. ``chittyId`` field of the parsed JSON body

    Args:
        request: Any object exposing case-insensitive ``headers``
            (a Starlette/FastAPI ``Request``)
        body: Parsed request body, if one was read

    Returns:
        The first valid ChittyID found, or None
    """
    headers: Mapping[str, str] = request.headers

    header = headers.get(CHITTY_ID_HEADER)
    if header and validate_chitty_id(header):
        return header

    auth = headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        token = auth[len("Bearer ") :]
        if validate_chitty_id(token):
            return token

    if isinstance(body, Mapping):
        candidate = body.get(CHITTY_ID_BODY_FIELD)
        if validate_chitty_id(candidate):
            return candidate

    return None
