"""Render command results as JSON or tables."""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from tritoncloud.cli.console import print_json, print_json_stream, print_table
from tritoncloud.utils.ids import short_id

if TYPE_CHECKING:
    import argparse


def with_short_ids(rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copy rows adding a ``shortid`` column derived from ``id``."""
    return [{**row, "shortid": short_id(str(row.get("id", "")))} for row in rows]


def age(timestamp: Optional[str], now: Optional[datetime] = None) -> str:
    """Compact age (``3d``, ``5h``, ``12m``, ``40s``) of an ISO-8601 timestamp."""
    if not timestamp:
        return "-"
    created = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    seconds = int(((now or datetime.now(timezone.utc)) - created).total_seconds())
    for unit, size in (("y", 31536000), ("w", 604800), ("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit}"
    return f"{max(seconds, 0)}s"


def emit_list(
    args: "argparse.Namespace",
    rows: Sequence[dict[str, Any]],
    columns: Sequence[str],
    headers: Optional[Sequence[str]] = None,
) -> None:
    """One JSON document per line with ``--json``, else a table."""
    if getattr(args, "json", False):
        print_json_stream(rows)
    else:
        print_table(rows, columns, headers)


def emit_one(args: "argparse.Namespace", data: Any) -> None:
    """Objects always print as JSON; ``--json`` makes it compact."""
    if getattr(args, "json", False):
        print_json_stream([data])
    else:
        print_json(data)
