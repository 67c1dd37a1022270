"""UUID and short-id helpers."""

import re
from typing import Optional

UUID_RE = re.compile(r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$")
_HEX_RE = re.compile(r"^[a-f0-9]+$")
_SEGMENTS = (8, 4, 4, 4, 12)


def is_uuid(value: str) -> bool:
    return bool(value) and UUID_RE.match(value) is not None


def short_id(uuid: str) -> str:
    """First segment of a UUID, as shown in listings."""
    return uuid.split("-", 1)[0]


def normalize_short_id(value: str) -> Optional[str]:
    """
    Normalize a UUID prefix to its dashed form.

    Dashes may be omitted, so "b4f0b46c183b" becomes "b4f0b46c-183b". Strings
    longer than 32 characters without dashes (docker container ids) are
    returned unchanged. Returns None when ``value`` is not a valid short id.

    Args:
        value: Candidate short id

    Returns:
        The normalized prefix, or None
    """
    if not value:
        return None
    if "-" not in value and len(value) > 32:
        return value if _HEX_RE.match(value) else None

    segments = []
    remaining = value
    for i, size in enumerate(_SEGMENTS):
        head = remaining[:size]
        if not _HEX_RE.match(head):
            return None
        segments.append(head)
        remaining = remaining[size:]
        if not remaining:
            break
        if i == len(_SEGMENTS) - 1:
            return None
        if remaining[0] == "-":
            remaining = remaining[1:]
            if not remaining:
                break
    return "-".join(segments)
