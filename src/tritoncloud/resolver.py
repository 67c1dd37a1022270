"""Resolve user-supplied identifiers to CloudAPI resources.

An identifier may be a full UUID, a short id (UUID prefix), an exact name, or
for images ``name@version``.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from tritoncloud.client.cloudapi import CloudApi
from tritoncloud.exceptions import (
    AmbiguousIdentifierError,
    HttpError,
    InstanceDeletedError,
    ResourceNotFoundError,
    is_not_found,
)
from tritoncloud.logger import get_logger
from tritoncloud.utils.ids import is_uuid, normalize_short_id

logger = get_logger(__name__)

Resource = dict[str, Any]


def latest_published(images: Sequence[Resource]) -> Resource:
    """The image with the greatest ``published_at``."""
    return max(images, key=lambda img: img.get("published_at") or "")


@dataclass(frozen=True)
class ResourceKind:
    """How to look up one kind of resource."""

    label: str
    get: Callable[[CloudApi, str], Resource]
    list: Callable[[CloudApi], list[Resource]]
    name_field: Optional[str] = "name"
    tiebreak: Optional[Callable[[Sequence[Resource]], Resource]] = None


KINDS: dict[str, ResourceKind] = {
    "image": ResourceKind(
        "image", lambda api, id_: api.get_image(id_), lambda api: api.list_images(), tiebreak=latest_published
    ),
    "package": ResourceKind("package", lambda api, id_: api.get_package(id_), lambda api: api.list_packages()),
    "network": ResourceKind("network", lambda api, id_: api.get_network(id_), lambda api: api.list_networks()),
    "vpc": ResourceKind("VPC", lambda api, id_: api.get_vpc(id_), lambda api: api.list_vpcs()),
    "fwrule": ResourceKind(
        "firewall rule", lambda api, id_: api.get_firewall_rule(id_), lambda api: api.list_firewall_rules(), name_field=None
    ),
    "volume": ResourceKind("volume", lambda api, id_: api.get_volume(id_), lambda api: api.list_volumes()),
    "user": ResourceKind("user", lambda api, id_: api.get_user(id_), lambda api: api.list_users(), name_field="login"),
    "role": ResourceKind("role", lambda api, id_: api.get_role(id_), lambda api: api.list_roles()),
    "policy": ResourceKind("policy", lambda api, id_: api.get_policy(id_), lambda api: api.list_policies()),
}


def pick_match(
    kind: ResourceKind,
    query: str,
    name_matches: Sequence[Resource],
    short_id_matches: Sequence[Resource],
) -> Resource:
    """
    Apply the resolution decision table.

    A single name match wins. Several name matches use the kind's tiebreak, or
    are ambiguous. Otherwise exactly one short id match is required.

    Raises:
        AmbiguousIdentifierError: Several matches and no tiebreak
        ResourceNotFoundError: No match
    """
    if len(name_matches) == 1:
        return name_matches[0]
    if len(name_matches) > 1:
        if kind.tiebreak is not None:
            return kind.tiebreak(name_matches)
        raise AmbiguousIdentifierError(
            f'{kind.label} name "{query}" is ambiguous: matches {len(name_matches)} {kind.label}s'
        )
    if len(short_id_matches) == 1:
        return short_id_matches[0]
    if not short_id_matches:
        raise ResourceNotFoundError(f'no {kind.label} with name or short id "{query}" was found')
    raise AmbiguousIdentifierError(
        f'no {kind.label} with name "{query}" was found and "{query}" is an ambiguous short id'
    )


class Resolver:
    """Maps identifiers to resources through a CloudApi."""

    def __init__(self, cloudapi: CloudApi) -> None:
        self.cloudapi = cloudapi

    def _get_by_uuid(self, kind: ResourceKind, uuid: str) -> Resource:
        try:
            return kind.get(self.cloudapi, uuid)
        except HttpError as e:
            if is_not_found(e):
                raise ResourceNotFoundError(f"{kind.label} with id {uuid} was not found", cause=e) from e
            raise

    def _match(
        self,
        kind: ResourceKind,
        query: str,
        candidates: Iterable[Resource],
    ) -> Resource:
        short = normalize_short_id(query)
        name_matches = []
        short_id_matches = []
        for candidate in candidates:
            if kind.name_field and candidate.get(kind.name_field) == query:
                name_matches.append(candidate)
            if short and str(candidate.get("id", "")).startswith(short):
                short_id_matches.append(candidate)
        return pick_match(kind, query, name_matches, short_id_matches)

    def resolve(self, kind_name: str, query: str) -> Resource:
        """
        Resolve ``query`` for a resource kind by UUID, exact name, or short id.

        Args:
            kind_name: One of ``KINDS``
            query: The identifier

        Returns:
            The resource record
        """
        kind = KINDS[kind_name]
        if is_uuid(query):
            return self._get_by_uuid(kind, query)
        logger.debug("resolving by name or short id", kind=kind_name, query=query)
        return self._match(kind, query, kind.list(self.cloudapi))

    def get_image(self, query: str, images: Optional[list[Resource]] = None) -> Resource:
        """
        Resolve an image by UUID, ``name@version``, name or short id.

        Several images with the same name (or name and version) resolve to the
        latest by ``published_at``.

        Args:
            query: The identifier
            images: Candidate listing to search instead of calling ListImages

        Returns:
            The image record
        """
        kind = KINDS["image"]
        if is_uuid(query):
            if images is not None:
                for image in images:
                    if image.get("id") == query:
                        return image
            return self._get_by_uuid(kind, query)

        if "@" in query:
            name, version = query.split("@", 1)
            if images is None:
                images = self.cloudapi.list_images(name=name, version=version)
            matches = [i for i in images if i.get("name") == name and i.get("version") == version]
            if not matches:
                raise ResourceNotFoundError(f'no image with name "{name}" and version "{version}" was found')
            return latest_published(matches)

        if images is None:
            images = self.cloudapi.list_images()
        return self._match(kind, query, images)

    def get_key(self, query: str) -> Resource:
        """Keys are addressed directly by fingerprint or name."""
        try:
            return self.cloudapi.get_key(query)
        except HttpError as e:
            if is_not_found(e):
                raise ResourceNotFoundError(f'no key with fingerprint or name "{query}" was found', cause=e) from e
            raise

    def get_machine(self, uuid: str) -> Resource:
        """
        GET one instance by UUID.

        Raises:
            ResourceNotFoundError: On 404
            InstanceDeletedError: On 410, carrying the partial instance body
        """
        try:
            return self.cloudapi.get_machine(uuid)
        except HttpError as e:
            if e.status_code == 410:
                raise InstanceDeletedError(f"instance {uuid} was deleted", instance=e.body, cause=e) from e
            if is_not_found(e):
                raise ResourceNotFoundError(f"instance with id {uuid} was not found", cause=e) from e
            raise

    def get_instance(self, query: str, fields: Optional[Iterable[str]] = None) -> Resource:
        """
        Resolve an instance by UUID, exact name, or short id.

        Listing results lack some fields (e.g. ``dns_names``). When ``fields``
        names any field missing from a list-derived record, the instance is
        re-read by UUID.

        Args:
            query: The identifier; a docker-style id that normalizes to a UUID is accepted
            fields: Fields the caller needs

        Returns:
            The instance record
        """
        uuid = query if is_uuid(query) else None
        short = None
        if uuid is None:
            short = normalize_short_id(query)
            if short and is_uuid(short):
                uuid = short
        if uuid is not None:
            return self.get_machine(uuid)

        kind = ResourceKind("instance", lambda api, id_: api.get_machine(id_), lambda api: api.list_machines())
        name_matches = [m for m in self.cloudapi.list_machines(name=query) if m.get("name") == query]
        short_id_matches: list[Resource] = []
        if not name_matches and short:
            for machine in self.cloudapi.iter_machines():
                if machine.get("id", "").startswith(short):
                    short_id_matches.append(machine)
                    if len(short_id_matches) > 1:
                        break
        instance = pick_match(kind, query, name_matches, short_id_matches)

        if fields and any(f not in instance for f in fields):
            logger.debug("re-reading instance for missing fields", id=instance["id"])
            instance = self.get_machine(instance["id"])
        return instance
