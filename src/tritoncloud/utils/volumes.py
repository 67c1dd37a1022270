"""Volume helpers."""

import re
from typing import Union

from tritoncloud.exceptions import UsageError

_SIZE_RE = re.compile(r"([1-9]\d*)([gGmM])?")


def parse_volume_size(size: str) -> int:
    """
    Parse a human volume size into mebibytes.

    "20G" is 20480, "512M" and "512" are 512.

    Raises:
        UsageError: If ``size`` is not a positive integer with an optional G/M suffix
    """
    match = _SIZE_RE.fullmatch(size or "")
    if match is None:
        raise UsageError(
            f'invalid volume size "{size}": must be a positive integer '
            'optionally followed by "G" or "M" (e.g. "20G")'
        )
    number = int(match.group(1))
    unit = (match.group(2) or "M").upper()
    return number * 1024 if unit == "G" else number


def parse_disk_size(size: str) -> Union[int, str]:
    """Parse an instance disk size: mebibytes, or ``remaining`` for the unused quota."""
    if size == "remaining":
        return size
    if not re.fullmatch(r"[1-9]\d*", size or ""):
        raise UsageError(f'invalid disk size "{size}": must be a number of MiB or "remaining"')
    return int(size)
