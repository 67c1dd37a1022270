"""Parsing of ``key=value`` command line arguments."""

import json
import math
import os
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from tritoncloud.exceptions import TritonError, UsageError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def _read_file(path: str) -> str:
    expanded = os.path.expanduser(path)
    if not os.path.isfile(expanded):
        raise TritonError(f'"{path}" is not an existing file')
    with open(expanded, encoding="utf-8") as f:
        return f.read()


def _convert_value(
    key: str,
    raw: str,
    type_hints: Optional[Mapping[str, str]],
    disable_type_conversions: bool,
) -> Any:
    if raw.startswith("@"):
        content = _read_file(raw[1:])
        try:
            return json.loads(content)
        except ValueError:
            return content

    if disable_type_conversions:
        return raw
    if type_hints and type_hints.get(key) == "string":
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def kv_to_obj(
    pairs: Iterable[str],
    type_hints: Optional[Mapping[str, str]] = None,
    valid_keys: Optional[Iterable[str]] = None,
    fail_on_empty_value: bool = False,
    disable_dotted: bool = False,
    disable_type_conversions: bool = False,
) -> dict[str, Any]:
    """
    Build a dict from ``key=value`` strings.

    Values are JSON decoded when possible ("1" becomes 1, "true" becomes True)
    unless the key is hinted as "string". ``key=@path`` reads the value from a
    file. ``a.b=v`` nests one level deep unless ``disable_dotted`` is set.

    Args:
        pairs: The raw arguments
        type_hints: Declared type per key, e.g. ``{"name": "string"}``
        valid_keys: If given, any other key is rejected
        fail_on_empty_value: Reject ``key=`` instead of mapping it to None
        disable_dotted: Treat dots in keys literally
        disable_type_conversions: Keep every value as a string

    Returns:
        Parsed mapping

    Raises:
        UsageError: On a malformed pair, unknown key or empty value
    """
    allowed = set(valid_keys) if valid_keys is not None else None
    obj: dict[str, Any] = {}

    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise UsageError(f'invalid key=value argument: "{pair}"')
        if allowed is not None and key not in allowed:
            raise UsageError(
                f'invalid key: "{key}" (must be one of: {", ".join(sorted(allowed))})'
            )

        if raw == "":
            if fail_on_empty_value:
                raise UsageError(f'key "{key}" must have a value')
            value = None
        else:
            value = _convert_value(key, raw, type_hints, disable_type_conversions)

        if not disable_dotted and "." in key:
            outer, inner = key.split(".", 1)
            nested = obj.setdefault(outer, {})
            if not isinstance(nested, dict):
                raise UsageError(f'key "{outer}" is set both as a value and as a group')
            nested[inner] = value
        else:
            obj[key] = value

    return obj


def _coerce_scalar(value: str) -> Any:
    stripped = value.strip()
    if stripped == "true":
        return True
    if stripped == "false":
        return False
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        number = float(stripped)
    except ValueError:
        return value
    return number if math.isfinite(number) else value


def _add_item(kind: str, target: dict[str, Any], key: str, value: Any, source: Optional[str]) -> None:
    if not isinstance(value, _SCALAR_TYPES):
        origin = f" (from {source})" if source else ""
        raise UsageError(
            f"invalid {kind} value type{origin}: must be one of string, number, "
            f"boolean: {key}={json.dumps(value)}"
        )
    if key in target:
        logger.warning("value replaces earlier value", kind=kind, key=key, source=source)
    target[key] = value


def _add_from_json(kind: str, target: dict[str, Any], text: str, source: Optional[str]) -> None:
    try:
        obj = json.loads(text)
    except ValueError as exc:
        origin = f" (from {source})" if source else ""
        raise TritonError(f"{kind}{origin} is not valid JSON", cause=exc) from exc
    if not isinstance(obj, dict):
        raise UsageError(f"{kind} JSON must be an object")
    for key, value in obj.items():
        _add_item(kind, target, key, value, source)


def _add_from_kv(kind: str, target: dict[str, Any], text: str, source: Optional[str]) -> None:
    key, sep, value = text.partition("=")
    if not sep:
        raise UsageError(f"invalid KEY=VALUE {kind} argument: {text}")
    _add_item(kind, target, key.strip(), _coerce_scalar(value), source)


def _add_from_file(kind: str, target: dict[str, Any], path: str) -> None:
    content = _read_file(path).strip()
    if content.startswith("{"):
        _add_from_json(kind, target, content, path)
        return
    for line in content.splitlines():
        if line.strip():
            _add_from_kv(kind, target, line, path)


def _items_from_args(kind: str, values: Iterable[str]) -> dict[str, Any]:
    items: dict[str, Any] = {}
    for value in values:
        if not value:
            raise UsageError(f"empty {kind} option value")
        if value.startswith("{"):
            _add_from_json(kind, items, value, None)
        elif value.startswith("@"):
            _add_from_file(kind, items, value[1:])
        else:
            _add_from_kv(kind, items, value, None)
    return items


def tags_from_args(values: Iterable[str]) -> dict[str, Any]:
    """Parse ``-t`` style tag options: ``k=v``, a JSON object, or ``@file``."""
    return _items_from_args("tag", values)


def metadata_from_args(
    values: Iterable[str] = (),
    metadata_files: Iterable[str] = (),
    script: Optional[str] = None,
) -> dict[str, Any]:
    """Parse ``-m``/``-M``/``--script`` metadata options into one mapping."""
    metadata = _items_from_args("metadata", values)
    for spec in metadata_files:
        key, sep, path = spec.partition("=")
        if not sep:
            raise UsageError(f"invalid KEY=FILE metadata argument: {spec}")
        _add_item("metadata", metadata, key.strip(), _read_file(path), path)
    if script:
        _add_item("metadata", metadata, "user-script", _read_file(script), script)
    return metadata
