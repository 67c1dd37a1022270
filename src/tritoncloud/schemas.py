"""Closed vocabularies for the update operations."""

import json
from collections.abc import Iterable
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tritoncloud.client.cloudapi import UPDATE_IMAGE_FIELDS, UPDATE_VPC_FIELDS
from tritoncloud.exceptions import TritonError, UsageError
from tritoncloud.utils.kv import kv_to_obj

_JSON_TYPE_NAMES = {
    str: "string",
    bool: "boolean",
    int: "number",
    float: "number",
    list: "array",
    dict: "object",
    type(None): "null",
}


class ImageUpdate(BaseModel):
    """Fields accepted by UpdateImage."""

    model_config = ConfigDict(extra="forbid", strict=True)

    name: str = Field(None, description="Image name")
    version: str = Field(None, description="Image version")
    description: str = Field(None, description="Short description")
    homepage: str = Field(None, description="Homepage URL")
    eula: str = Field(None, description="EULA URL")
    acl: list[str] = Field(None, description="Account UUIDs allowed to use the image")
    tags: dict[str, Any] = Field(None, description="Image tags")


class VpcUpdate(BaseModel):
    """Fields accepted by UpdateVPC."""

    model_config = ConfigDict(extra="forbid", strict=True)

    name: str = Field(None, description="VPC name")
    description: str = Field(None, description="VPC description")


_VOCABULARIES: dict[type[BaseModel], dict[str, str]] = {
    ImageUpdate: UPDATE_IMAGE_FIELDS,
    VpcUpdate: UPDATE_VPC_FIELDS,
}


def validate_update(model: type[BaseModel], data: Any) -> dict[str, Any]:
    """
    Check update fields against a closed vocabulary.

    Args:
        model: ImageUpdate or VpcUpdate
        data: Candidate field mapping

    Returns:
        The fields that were given

    Raises:
        UsageError: On an unknown field or a value of the wrong type
    """
    vocabulary = _VOCABULARIES[model]
    if not isinstance(data, dict):
        raise UsageError("update data must be a JSON object")
    try:
        validated = model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first["loc"] else "?"
        if first["type"] == "extra_forbidden":
            raise UsageError(
                f"unknown or unupdateable field: {field} (updateable fields are: "
                f"{', '.join(sorted(vocabulary))})"
            ) from e
        got = _JSON_TYPE_NAMES.get(type(data.get(field)), type(data.get(field)).__name__)
        raise UsageError(
            f'field "{field}" must be of type "{vocabulary.get(field, "?")}", but got a value '
            f'of type "{got}"'
        ) from e
    return validated.model_dump(exclude_unset=True)


def update_fields_from_args(
    model: type[BaseModel],
    pairs: Iterable[str] = (),
    json_text: Optional[str] = None,
    source: str = "arguments",
) -> dict[str, Any]:
    """
    Gather update fields from ``key=value`` pairs or a JSON document, then validate.

    Args:
        model: ImageUpdate or VpcUpdate
        pairs: ``key=value`` arguments
        json_text: JSON object text (from a file or stdin); wins over ``pairs``
        source: Where ``json_text`` came from, for error messages
    """
    if json_text is not None:
        try:
            data = json.loads(json_text)
        except ValueError as e:
            raise TritonError(f"invalid JSON for update in {source}: {e}", cause=e) from e
    else:
        data = kv_to_obj(pairs, type_hints=_VOCABULARIES[model], disable_dotted=True)
    return validate_update(model, data)
