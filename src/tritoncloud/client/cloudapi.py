"""Typed wrapper over the CloudAPI endpoints.

Every method composes a ``/<account>/...`` path, signs the request and returns
the decoded response body. See <https://apidocs.tritondatacenter.com/cloudapi/>.
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Optional
from urllib.parse import quote, urlencode, urlparse

from tritoncloud.auth.signer import RequestSigner
from tritoncloud.client.wire import WireClient, WireResponse
from tritoncloud.constants import MACHINES_PAGE_LIMIT, ROLE_TAG_RESOURCE_TYPES
from tritoncloud.exceptions import AlreadyExistsError, UsageError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)

_ROLE_TAG_RESOURCE_RE = re.compile(r"^/[^/]{2,}/[^/]+")

UPDATE_ACCOUNT_FIELDS = {
    "email": "string",
    "companyName": "string",
    "firstName": "string",
    "lastName": "string",
    "address": "string",
    "postalCode": "string",
    "city": "string",
    "state": "string",
    "country": "string",
    "phone": "string",
    "triton_cns_enabled": "boolean",
}

UPDATE_IMAGE_FIELDS = {
    "name": "string",
    "version": "string",
    "description": "string",
    "homepage": "string",
    "eula": "string",
    "acl": "array",
    "tags": "object",
}

UPDATE_VPC_FIELDS = {
    "name": "string",
    "description": "string",
}

UPDATE_FWRULE_FIELDS = {
    "enabled": "boolean",
    "log": "boolean",
    "rule": "string",
    "description": "string",
}

UPDATE_NETWORK_IP_FIELDS = {
    "reserved": "boolean",
}

UPDATE_VLAN_FIELDS = {
    "name": "string",
    "description": "string",
}


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(v) for v in value]
    return value


def _pick(data: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    return {k: data[k] for k in fields if data.get(k) is not None}


class CloudApi:
    """
    One method per CloudAPI endpoint.

    Args:
        url: CloudAPI base URL
        account: Account login used as the first path segment
        signer: Produces the authentication headers
        roles: RBAC roles to assume (sent as ``as-role``)
        wire: Request engine, built from ``url`` and ``wire_options`` if omitted
    """

    def __init__(
        self,
        url: str,
        account: str,
        signer: RequestSigner,
        roles: Optional[list[str]] = None,
        wire: Optional[WireClient] = None,
        **wire_options: Any,
    ) -> None:
        self.url = url.rstrip("/")
        self.account = account
        self.signer = signer
        self.roles = list(roles or [])
        self.wire = wire or WireClient(self.url, **wire_options)

    def close(self) -> None:
        self.wire.close()

    # ---- request plumbing

    @staticmethod
    def _qs(*params: Optional[Mapping[str, Any]]) -> str:
        """Query string, with leading ``?``, dropping None values."""
        query: dict[str, Any] = {}
        for param in params:
            for key, value in (param or {}).items():
                if value is not None:
                    query[key] = _query_value(value)
        if not query:
            return ""
        return "?" + urlencode(query, doseq=True)

    def _path(self, *segments: Any, query: Optional[Mapping[str, Any]] = None) -> str:
        """``/<account>/<segment>...`` with each segment URL-encoded."""
        parts = [self.account, *segments]
        return "/" + "/".join(quote(str(p), safe="") for p in parts) + self._qs(query)

    def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> WireResponse:
        if self.roles:
            sep = "&" if "?" in path else "?"
            path += f"{sep}as-role={quote(','.join(self.roles), safe=',')}"
        request_headers = self.signer.sign_headers()
        if headers:
            request_headers.update(headers)
        return self.wire.request(method, path, body=body, headers=request_headers)

    def _get(self, path: str) -> Any:
        return self._request("GET", path).body

    def _post(self, path: str, body: Any = None) -> Any:
        return self._request("POST", path, body=body if body is not None else {}).body

    def _put(self, path: str, body: Any) -> Any:
        return self._request("PUT", path, body=body).body

    def _delete(self, path: str) -> Any:
        return self._request("DELETE", path).body

    def request(self, method: str, path: str, body: Any = None) -> WireResponse:
        """Raw signed request, e.g. for ``tritoncloud cloudapi``."""
        if not path.startswith("/"):
            raise UsageError(f'path must start with "/": {path}')
        return self._request(method, path, body=body)

    # ---- misc

    def ping(self) -> Any:
        return self._request("GET", "/--ping").body

    def get_config(self) -> Any:
        return self._get(self._path("config"))

    def update_config(self, default_network: str) -> Any:
        return self._put(self._path("config"), {"default_network": default_network})

    def list_services(self) -> dict[str, str]:
        return self._get(self._path("services"))

    def list_datacenters(self) -> dict[str, str]:
        return self._get(self._path("datacenters"))

    # ---- account

    def get_account(self) -> dict[str, Any]:
        return self._get(self._path())

    def update_account(self, **fields: Any) -> dict[str, Any]:
        """
        Update account attributes.

        Raises:
            UsageError: For a field not in ``UPDATE_ACCOUNT_FIELDS``
        """
        unknown = sorted(set(fields) - set(UPDATE_ACCOUNT_FIELDS))
        if unknown:
            raise UsageError(f"unknown field(s) for UpdateAccount: {', '.join(unknown)}")
        return self._post(self._path(), fields)

    def get_account_limits(self) -> list[dict[str, Any]]:
        return self._get(self._path("limits"))

    # ---- keys

    def list_keys(self) -> list[dict[str, Any]]:
        return self._get(self._path("keys"))

    def get_key(self, fingerprint_or_name: str) -> dict[str, Any]:
        return self._get(self._path("keys", fingerprint_or_name))

    def create_key(self, key: str, name: Optional[str] = None) -> dict[str, Any]:
        return self._post(self._path("keys"), _pick({"key": key, "name": name}, ("key", "name")))

    def delete_key(self, fingerprint_or_name: str) -> None:
        self._delete(self._path("keys", fingerprint_or_name))

    # ---- users, roles, policies

    def list_users(self) -> list[dict[str, Any]]:
        return self._get(self._path("users"))

    def get_user(self, user_id: str, membership: bool = False) -> dict[str, Any]:
        query = {"membership": True} if membership else None
        return self._get(self._path("users", user_id, query=query))

    def create_user(self, **fields: Any) -> dict[str, Any]:
        return self._post(self._path("users"), fields)

    def update_user(self, user_id: str, **fields: Any) -> dict[str, Any]:
        return self._post(self._path("users", user_id), fields)

    def delete_user(self, user_id: str) -> None:
        self._delete(self._path("users", user_id))

    def list_user_keys(self, user_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("users", user_id, "keys"))

    def get_user_key(self, user_id: str, fingerprint_or_name: str) -> dict[str, Any]:
        return self._get(self._path("users", user_id, "keys", fingerprint_or_name))

    def create_user_key(self, user_id: str, key: str, name: Optional[str] = None) -> dict[str, Any]:
        return self._post(
            self._path("users", user_id, "keys"), _pick({"key": key, "name": name}, ("key", "name"))
        )

    def delete_user_key(self, user_id: str, fingerprint_or_name: str) -> None:
        self._delete(self._path("users", user_id, "keys", fingerprint_or_name))

    def list_roles(self) -> list[dict[str, Any]]:
        return self._get(self._path("roles"))

    def get_role(self, role_id: str) -> dict[str, Any]:
        return self._get(self._path("roles", role_id))

    def create_role(self, **fields: Any) -> dict[str, Any]:
        return self._post(self._path("roles"), fields)

    def update_role(self, role_id: str, **fields: Any) -> dict[str, Any]:
        return self._post(self._path("roles", role_id), fields)

    def delete_role(self, role_id: str) -> None:
        self._delete(self._path("roles", role_id))

    def list_policies(self) -> list[dict[str, Any]]:
        return self._get(self._path("policies"))

    def get_policy(self, policy_id: str) -> dict[str, Any]:
        return self._get(self._path("policies", policy_id))

    def create_policy(self, **fields: Any) -> dict[str, Any]:
        return self._post(self._path("policies"), fields)

    def update_policy(self, policy_id: str, **fields: Any) -> dict[str, Any]:
        return self._post(self._path("policies", policy_id), fields)

    def delete_policy(self, policy_id: str) -> None:
        self._delete(self._path("policies", policy_id))

    # ---- role tags

    def _check_role_tag_resource(self, resource: str) -> None:
        if not _ROLE_TAG_RESOURCE_RE.match(resource):
            raise UsageError(f'invalid resource "{resource}": must match "/:account/:type..."')
        resource_type = resource.split("/")[2]
        if resource_type not in ROLE_TAG_RESOURCE_TYPES:
            raise UsageError(
                f'invalid resource "{resource}": resource type must be one of: '
                f"{', '.join(sorted(ROLE_TAG_RESOURCE_TYPES))}"
            )

    def role_tag_resource(self, resource_type: str, resource_id: Optional[str] = None) -> str:
        """Resource path for role tags, e.g. ``/<account>/machines/<id>``."""
        if resource_id is None:
            return self._path(resource_type)
        return self._path(resource_type, resource_id)

    def get_role_tags(self, resource: str) -> tuple[list[str], Any]:
        """
        Read the role tags of a resource from its ``role-tag`` header.

        Args:
            resource: Resource path, e.g. ``/<account>/machines/<uuid>``

        Returns:
            The role names and the resource body

        Raises:
            UsageError: If ``resource`` is malformed or its type does not take role tags
        """
        self._check_role_tag_resource(resource)
        res = self._request("GET", resource)
        header = res.headers.get("role-tag", "")
        role_tags = [r.strip() for r in header.split(",") if r.strip()]
        return role_tags, res.body

    def set_role_tags(self, resource: str, role_tags: list[str]) -> Any:
        self._check_role_tag_resource(resource)
        return self._put(resource, {"role-tag": list(role_tags)})

    # ---- images

    def list_images(self, **filters: Any) -> list[dict[str, Any]]:
        return self._get(self._path("images", query=filters))

    def get_image(self, image_id: str) -> dict[str, Any]:
        return self._get(self._path("images", image_id))

    def delete_image(self, image_id: str) -> None:
        self._delete(self._path("images", image_id))

    def create_image_from_machine(
        self,
        machine: str,
        name: str,
        version: str,
        **fields: Any,
    ) -> dict[str, Any]:
        body = {"machine": machine, "name": name, "version": version}
        body.update({k: v for k, v in fields.items() if v is not None})
        return self._post(self._path("images"), body)

    def export_image(self, image_id: str, manta_path: str) -> dict[str, Any]:
        return self._post(
            self._path("images", image_id, query={"action": "export", "manta_path": manta_path})
        )

    def update_image(self, image_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(fields) - set(UPDATE_IMAGE_FIELDS))
        if unknown:
            raise UsageError(f"unknown field(s) for UpdateImage: {', '.join(unknown)}")
        return self._post(self._path("images", image_id, query={"action": "update"}), dict(fields))

    def clone_image(self, image_id: str) -> dict[str, Any]:
        return self._post(self._path("images", image_id, query={"action": "clone"}))

    def import_image_from_datacenter(self, datacenter: str, image_id: str) -> dict[str, Any]:
        return self._post(
            self._path(
                "images", query={"action": "import-from-datacenter", "datacenter": datacenter, "id": image_id}
            )
        )

    # ---- packages

    def list_packages(self, **filters: Any) -> list[dict[str, Any]]:
        return self._get(self._path("packages", query=filters))

    def get_package(self, package_id: str) -> dict[str, Any]:
        return self._get(self._path("packages", package_id))

    # ---- networks

    def list_networks(self, **filters: Any) -> list[dict[str, Any]]:
        return self._get(self._path("networks", query=filters))

    def get_network(self, network_id: str) -> dict[str, Any]:
        return self._get(self._path("networks", network_id))

    def list_network_ips(self, network_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("networks", network_id, "ips"))

    def get_network_ip(self, network_id: str, ip: str) -> dict[str, Any]:
        return self._get(self._path("networks", network_id, "ips", ip))

    def update_network_ip(self, network_id: str, ip: str, **fields: Any) -> dict[str, Any]:
        unknown = sorted(set(fields) - set(UPDATE_NETWORK_IP_FIELDS))
        if unknown:
            raise UsageError(f"unknown field(s) for UpdateNetworkIp: {', '.join(unknown)}")
        return self._put(self._path("networks", network_id, "ips", ip), fields)

    def list_fabric_vlans(self) -> list[dict[str, Any]]:
        return self._get(self._path("fabrics", "default", "vlans"))

    def get_fabric_vlan(self, vlan_id: int) -> dict[str, Any]:
        return self._get(self._path("fabrics", "default", "vlans", vlan_id))

    def create_fabric_vlan(self, vlan_id: int, name: str, description: Optional[str] = None) -> dict[str, Any]:
        body = _pick({"vlan_id": vlan_id, "name": name, "description": description}, ("vlan_id", "name", "description"))
        return self._post(self._path("fabrics", "default", "vlans"), body)

    def update_fabric_vlan(self, vlan_id: int, **fields: Any) -> dict[str, Any]:
        unknown = sorted(set(fields) - set(UPDATE_VLAN_FIELDS))
        if unknown:
            raise UsageError(f"unknown field(s) for UpdateFabricVlan: {', '.join(unknown)}")
        return self._post(self._path("fabrics", "default", "vlans", vlan_id), fields)

    def delete_fabric_vlan(self, vlan_id: int) -> None:
        self._delete(self._path("fabrics", "default", "vlans", vlan_id))

    def list_fabric_networks(self, vlan_id: int) -> list[dict[str, Any]]:
        return self._get(self._path("fabrics", "default", "vlans", vlan_id, "networks"))

    def get_fabric_network(self, vlan_id: int, network_id: str) -> dict[str, Any]:
        return self._get(self._path("fabrics", "default", "vlans", vlan_id, "networks", network_id))

    def create_fabric_network(self, vlan_id: int, **fields: Any) -> dict[str, Any]:
        return self._post(self._path("fabrics", "default", "vlans", vlan_id, "networks"), fields)

    def delete_fabric_network(self, vlan_id: int, network_id: str) -> None:
        self._delete(self._path("fabrics", "default", "vlans", vlan_id, "networks", network_id))

    # ---- VPCs

    def list_vpcs(self) -> list[dict[str, Any]]:
        return self._get(self._path("vpcs"))

    def get_vpc(self, vpc_id: str) -> dict[str, Any]:
        return self._get(self._path("vpcs", vpc_id))

    def create_vpc(self, name: str, ip4_cidr: str, description: Optional[str] = None) -> dict[str, Any]:
        body = _pick(
            {"name": name, "ip4_cidr": ip4_cidr, "description": description},
            ("name", "ip4_cidr", "description"),
        )
        return self._post(self._path("vpcs"), body)

    def update_vpc(self, vpc_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(fields) - set(UPDATE_VPC_FIELDS))
        if unknown:
            raise UsageError(f"unknown field(s) for UpdateVPC: {', '.join(unknown)}")
        return self._put(self._path("vpcs", vpc_id), dict(fields))

    def delete_vpc(self, vpc_id: str) -> None:
        self._delete(self._path("vpcs", vpc_id))

    def list_vpc_networks(self, vpc_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("vpcs", vpc_id, "networks"))

    # ---- machines

    def iter_machine_pages(self, **filters: Any) -> Iterator[list[dict[str, Any]]]:
        """
        Yield ListMachines pages in order.

        Pages are fetched with increasing ``offset`` until a page holds fewer
        than ``limit`` entries. A caller-supplied ``limit`` means a single
        request with no pagination.
        """
        once = filters.get("limit") is not None
        limit = filters.pop("limit", None) or MACHINES_PAGE_LIMIT
        offset = filters.pop("offset", None) or 0

        while True:
            page = self._get(self._path("machines", query={**filters, "limit": limit, "offset": offset}))
            page = page or []
            logger.debug("listed machines page", offset=offset, count=len(page))
            if page:
                yield page
            if once or len(page) < limit:
                return
            offset += len(page)

    def iter_machines(self, **filters: Any) -> Iterator[dict[str, Any]]:
        for page in self.iter_machine_pages(**filters):
            yield from page

    def list_machines(self, **filters: Any) -> list[dict[str, Any]]:
        return list(self.iter_machines(**filters))

    def get_machine(self, machine_id: str, credentials: bool = False) -> dict[str, Any]:
        query = {"credentials": True} if credentials else None
        return self._get(self._path("machines", machine_id, query=query))

    def create_machine(self, **fields: Any) -> dict[str, Any]:
        """CreateMachine. ``tags`` and ``metadata`` become ``tag.*``/``metadata.*`` fields."""
        body = {k: v for k, v in fields.items() if v is not None and k not in ("tags", "metadata")}
        for key, value in (fields.get("tags") or {}).items():
            body[f"tag.{key}"] = value
        for key, value in (fields.get("metadata") or {}).items():
            body[f"metadata.{key}"] = value
        return self._post(self._path("machines"), body)

    def delete_machine(self, machine_id: str) -> None:
        self._delete(self._path("machines", machine_id))

    def _machine_action(self, machine_id: str, action: str, **params: Any) -> Any:
        body = {"action": action}
        body.update({k: v for k, v in params.items() if v is not None})
        return self._post(self._path("machines", machine_id), body)

    def start_machine(self, machine_id: str) -> Any:
        return self._machine_action(machine_id, "start")

    def stop_machine(self, machine_id: str) -> Any:
        return self._machine_action(machine_id, "stop")

    def reboot_machine(self, machine_id: str) -> Any:
        return self._machine_action(machine_id, "reboot")

    def rename_machine(self, machine_id: str, name: str) -> Any:
        return self._machine_action(machine_id, "rename", name=name)

    def resize_machine(self, machine_id: str, package: str) -> Any:
        return self._machine_action(machine_id, "resize", package=package)

    def enable_machine_firewall(self, machine_id: str) -> Any:
        return self._machine_action(machine_id, "enable_firewall")

    def disable_machine_firewall(self, machine_id: str) -> Any:
        return self._machine_action(machine_id, "disable_firewall")

    def enable_machine_deletion_protection(self, machine_id: str) -> Any:
        return self._machine_action(machine_id, "enable_deletion_protection")

    def disable_machine_deletion_protection(self, machine_id: str) -> Any:
        return self._machine_action(machine_id, "disable_deletion_protection")

    def machine_audit(self, machine_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("machines", machine_id, "audit"))

    # ---- machine tags

    def list_machine_tags(self, machine_id: str) -> dict[str, Any]:
        return self._get(self._path("machines", machine_id, "tags"))

    def get_machine_tag(self, machine_id: str, tag: str) -> Any:
        return self._get(self._path("machines", machine_id, "tags", tag))

    def add_machine_tags(self, machine_id: str, tags: Mapping[str, Any]) -> dict[str, Any]:
        return self._post(self._path("machines", machine_id, "tags"), dict(tags))

    def replace_machine_tags(self, machine_id: str, tags: Mapping[str, Any]) -> dict[str, Any]:
        return self._put(self._path("machines", machine_id, "tags"), dict(tags))

    def delete_machine_tags(self, machine_id: str) -> None:
        self._delete(self._path("machines", machine_id, "tags"))

    def delete_machine_tag(self, machine_id: str, tag: str) -> None:
        self._delete(self._path("machines", machine_id, "tags", tag))

    # ---- machine metadata

    def list_machine_metadata(self, machine_id: str, credentials: bool = False) -> dict[str, Any]:
        query = {"credentials": True} if credentials else None
        return self._get(self._path("machines", machine_id, "metadata", query=query))

    def get_machine_metadata(self, machine_id: str, key: str) -> Any:
        return self._get(self._path("machines", machine_id, "metadata", key))

    def update_machine_metadata(self, machine_id: str, metadata: Mapping[str, Any]) -> dict[str, Any]:
        return self._post(self._path("machines", machine_id, "metadata"), dict(metadata))

    def delete_machine_metadata(self, machine_id: str, key: str) -> None:
        self._delete(self._path("machines", machine_id, "metadata", key))

    def delete_all_machine_metadata(self, machine_id: str) -> None:
        self._delete(self._path("machines", machine_id, "metadata"))

    # ---- machine snapshots

    def create_machine_snapshot(self, machine_id: str, name: Optional[str] = None) -> dict[str, Any]:
        return self._post(self._path("machines", machine_id, "snapshots"), _pick({"name": name}, ("name",)))

    def list_machine_snapshots(self, machine_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("machines", machine_id, "snapshots"))

    def get_machine_snapshot(self, machine_id: str, name: str) -> dict[str, Any]:
        return self._get(self._path("machines", machine_id, "snapshots", name))

    def start_machine_from_snapshot(self, machine_id: str, name: str) -> Any:
        return self._post(self._path("machines", machine_id, "snapshots", name))

    def delete_machine_snapshot(self, machine_id: str, name: str) -> None:
        self._delete(self._path("machines", machine_id, "snapshots", name))

    # ---- migrations

    def list_migrations(self) -> list[dict[str, Any]]:
        return self._get(self._path("migrations"))

    def get_migration(self, machine_id: str) -> dict[str, Any]:
        return self._get(self._path("migrations", machine_id))

    def migrate_machine(self, machine_id: str, action: str, affinity: Optional[list[str]] = None) -> Any:
        if action not in ("begin", "sync", "switch", "automatic", "abort", "pause", "finalize"):
            raise UsageError(f"invalid migration action: {action}")
        body: dict[str, Any] = {"action": action}
        if affinity:
            body["affinity"] = affinity
        return self._post(self._path("machines", machine_id, "migrate"), body)

    # ---- NICs

    def add_nic(self, machine_id: str, network: Any, primary: Optional[bool] = None) -> dict[str, Any]:
        """
        Add a NIC on ``network`` to an instance.

        Raises:
            AlreadyExistsError: The server answered 302, i.e. such a NIC exists
        """
        res = self._request(
            "POST",
            self._path("machines", machine_id, "nics"),
            body=_pick({"network": network, "primary": primary}, ("network", "primary")),
        )
        if res.status == 302:
            raise AlreadyExistsError(
                f"instance {machine_id} already has a NIC on network {network}",
                details={"location": res.headers.get("location")},
            )
        return res.body

    def list_nics(self, machine_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("machines", machine_id, "nics"))

    def get_nic(self, machine_id: str, mac: str) -> dict[str, Any]:
        return self._get(self._path("machines", machine_id, "nics", mac.replace(":", "")))

    def remove_nic(self, machine_id: str, mac: str) -> None:
        self._delete(self._path("machines", machine_id, "nics", mac.replace(":", "")))

    # ---- disks

    def list_machine_disks(self, machine_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("machines", machine_id, "disks"))

    def get_machine_disk(self, machine_id: str, disk_id: str) -> dict[str, Any]:
        return self._get(self._path("machines", machine_id, "disks", disk_id))

    def create_machine_disk(self, machine_id: str, size: Any) -> dict[str, Any]:
        return self._post(self._path("machines", machine_id, "disks"), {"size": size})

    def resize_machine_disk(self, machine_id: str, disk_id: str, size: int, dangerous_allow_shrink: bool = False) -> Any:
        body: dict[str, Any] = {"size": size}
        if dangerous_allow_shrink:
            body["dangerous_allow_shrink"] = True
        return self._post(self._path("machines", machine_id, "disks", disk_id), body)

    def delete_machine_disk(self, machine_id: str, disk_id: str) -> None:
        self._delete(self._path("machines", machine_id, "disks", disk_id))

    # ---- firewall rules

    def list_firewall_rules(self) -> list[dict[str, Any]]:
        return self._get(self._path("fwrules"))

    def get_firewall_rule(self, rule_id: str) -> dict[str, Any]:
        return self._get(self._path("fwrules", rule_id))

    def create_firewall_rule(self, rule: str, **fields: Any) -> dict[str, Any]:
        body = {"rule": rule}
        body.update(_pick(fields, UPDATE_FWRULE_FIELDS))
        return self._post(self._path("fwrules"), body)

    def update_firewall_rule(self, rule_id: str, **fields: Any) -> dict[str, Any]:
        unknown = sorted(set(fields) - set(UPDATE_FWRULE_FIELDS))
        if unknown:
            raise UsageError(f"unknown field(s) for UpdateFirewallRule: {', '.join(unknown)}")
        return self._post(self._path("fwrules", rule_id), fields)

    def enable_firewall_rule(self, rule_id: str) -> dict[str, Any]:
        return self._post(self._path("fwrules", rule_id, "enable"))

    def disable_firewall_rule(self, rule_id: str) -> dict[str, Any]:
        return self._post(self._path("fwrules", rule_id, "disable"))

    def delete_firewall_rule(self, rule_id: str) -> None:
        self._delete(self._path("fwrules", rule_id))

    def list_firewall_rule_machines(self, rule_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("fwrules", rule_id, "machines"))

    def list_machine_firewall_rules(self, machine_id: str) -> list[dict[str, Any]]:
        return self._get(self._path("machines", machine_id, "fwrules"))

    # ---- volumes

    def list_volumes(self, **filters: Any) -> list[dict[str, Any]]:
        return self._get(self._path("volumes", query=filters))

    def get_volume(self, volume_id: str) -> dict[str, Any]:
        return self._get(self._path("volumes", volume_id))

    def create_volume(
        self,
        name: Optional[str] = None,
        size: Optional[int] = None,
        networks: Optional[list[str]] = None,
        type: Optional[str] = None,
        tags: Optional[Mapping[str, Any]] = None,
        affinity: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        body = _pick(
            {"name": name, "size": size, "networks": networks, "type": type, "tags": tags, "affinity": affinity},
            ("name", "size", "networks", "type", "tags", "affinity"),
        )
        return self._post(self._path("volumes"), body)

    def update_volume(self, volume_id: str, name: str) -> dict[str, Any]:
        return self._post(self._path("volumes", volume_id), {"name": name})

    def delete_volume(self, volume_id: str) -> None:
        self._delete(self._path("volumes", volume_id))

    def list_volume_sizes(self, type: Optional[str] = None) -> list[dict[str, Any]]:
        return self._get(self._path("volumesizes", query={"type": type}))

    # ---- websockets

    def _websocket_url(self, *segments: Any) -> str:
        parsed = urlparse(self.url)
        scheme = "wss" if parsed.scheme == "https" else "ws"
        path = self._path(*segments)
        if self.roles:
            path += f"?as-role={quote(','.join(self.roles), safe=',')}"
        return f"{scheme}://{parsed.netloc}{parsed.path}{path}"

    def changefeed_url(self) -> str:
        return self._websocket_url("changefeed")

    def machine_vnc_url(self, machine_id: str) -> str:
        """Websocket URL of a hardware VM's VNC console."""
        return self._websocket_url("machines", machine_id, "vnc")
