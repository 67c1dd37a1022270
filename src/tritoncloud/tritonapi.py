"""Caller-facing operations over CloudAPI.

``TritonApi`` resolves identifiers, issues the state-changing request and, when
asked to wait, polls until the server reports the terminal state.
"""

import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional, Union

from tritoncloud.auth.keypair import KeyPair, find_key_pair
from tritoncloud.auth.signer import RequestSigner
from tritoncloud.cache import ArtifactCache
from tritoncloud.client.changefeed import ChangeFeed
from tritoncloud.client.cloudapi import CloudApi
from tritoncloud.client.vnc import VncConsole
from tritoncloud.config.loader import CliConfig
from tritoncloud.config.profile import Profile
from tritoncloud.constants import IMAGES_CACHE_KEY, IMAGES_CACHE_TTL
from tritoncloud.exceptions import (
    HttpError,
    InstanceDeletedError,
    ResourceNotFoundError,
    TritonError,
    UsageError,
    is_not_found,
)
from tritoncloud.logger import get_logger
from tritoncloud.resolver import Resolver
from tritoncloud.schemas import ImageUpdate, VpcUpdate, validate_update
from tritoncloud.utils.concurrency import run_parallel
from tritoncloud.utils.ids import is_uuid
from tritoncloud.utils.volumes import parse_disk_size, parse_volume_size
from tritoncloud.waiter import PollWaiter

logger = get_logger(__name__)

Resource = dict[str, Any]

_DELETED = {"state": "deleted"}

# Resolver kind -> role-tag resource path segment
_ROLE_TAG_KINDS = {
    "instance": "machines",
    "image": "images",
    "package": "packages",
    "network": "networks",
    "fwrule": "fwrules",
    "user": "users",
    "role": "roles",
    "policy": "policies",
    "key": "keys",
    "volume": "volumes",
    "vpc": "vpcs",
}


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class TritonApi:
    """
    Wait-capable operations for one profile.

    Args:
        profile: Identity and endpoint
        config: CLI config, used to locate the artifact cache
        key_pair: Signing key; located from the profile's ``keyId`` when omitted
        cloudapi: Client to use instead of building one from the profile
        waiter: Poller used by every ``wait=True`` operation
        cache: Artifact cache; derived from ``config`` when omitted
        pool: Reuse HTTP connections
    """

    def __init__(
        self,
        profile: Profile,
        config: Optional[CliConfig] = None,
        key_pair: Optional[KeyPair] = None,
        cloudapi: Optional[CloudApi] = None,
        waiter: Optional[PollWaiter] = None,
        cache: Optional[ArtifactCache] = None,
        pool: bool = True,
    ) -> None:
        self.profile = profile
        self.config = config
        self.waiter = waiter or PollWaiter()
        if cache is None and config is not None:
            cache = ArtifactCache(config.cache_dir_for(profile))
        self.cache = cache
        self._key_pair = key_pair
        self._cloudapi = cloudapi
        self._resolver: Optional[Resolver] = None
        self._pool = pool
        self._lock = threading.RLock()

    # ---- setup

    @property
    def key_pair(self) -> KeyPair:
        with self._lock:
            if self._key_pair is None:
                self._key_pair = find_key_pair(self.profile.key_id, priv_key=self.profile.priv_key)
            return self._key_pair

    def unlock_key(self, passphrase: Union[str, bytes]) -> None:
        self.key_pair.unlock(passphrase)

    @property
    def cloudapi(self) -> CloudApi:
        with self._lock:
            if self._cloudapi is None:
                signer = RequestSigner(self.key_pair, self.profile.account, self.profile.user)
                self._cloudapi = CloudApi(
                    self.profile.url,
                    self.profile.path_account,
                    signer,
                    roles=self.profile.roles,
                    accept_version=self.profile.accept_version,
                    reject_unauthorized=not self.profile.insecure,
                    pool=self._pool,
                )
            return self._cloudapi

    @property
    def resolver(self) -> Resolver:
        with self._lock:
            if self._resolver is None:
                self._resolver = Resolver(self.cloudapi)
            return self._resolver

    def close(self) -> None:
        if self._cloudapi is not None:
            self._cloudapi.close()

    def __enter__(self) -> "TritonApi":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ---- artifact cache

    def cache_get_json(self, key: str, ttl: Optional[float] = None) -> Optional[Any]:
        if self.cache is None:
            return None
        return self.cache.get_json(key, ttl)

    def cache_put_json(self, key: str, value: Any) -> None:
        if self.cache is not None:
            self.cache.put_json(key, value)

    # ---- lookups

    def list_images(self, use_cache: bool = False, **filters: Any) -> list[Resource]:
        """
        ListImages, optionally served from the artifact cache.

        Only the unfiltered listing is cached; any filter goes to the server.
        """
        filters = {k: v for k, v in filters.items() if v is not None}
        if filters:
            return self.cloudapi.list_images(**filters)

        if use_cache:
            cached = self.cache_get_json(IMAGES_CACHE_KEY, IMAGES_CACHE_TTL)
            if cached is not None:
                logger.debug("image list from cache", count=len(cached))
                return cached

        images = self.cloudapi.list_images()
        self.cache_put_json(IMAGES_CACHE_KEY, images)
        return images

    def get_image(self, query: str, use_cache: bool = False) -> Resource:
        """Resolve an image by UUID, ``name@version``, name or short id."""
        if use_cache:
            cached = self.cache_get_json(IMAGES_CACHE_KEY, IMAGES_CACHE_TTL)
            if cached is not None:
                try:
                    return self.resolver.get_image(query, images=cached)
                except ResourceNotFoundError:
                    logger.debug("image not in cached list, asking server", query=query)
        return self.resolver.get_image(query)

    def get_instance(self, query: str, fields: Optional[Iterable[str]] = None) -> Resource:
        return self.resolver.get_instance(query, fields=fields)

    def get_package(self, query: str) -> Resource:
        return self.resolver.resolve("package", query)

    def get_network(self, query: str) -> Resource:
        return self.resolver.resolve("network", query)

    def get_vpc(self, query: str) -> Resource:
        return self.resolver.resolve("vpc", query)

    def get_fwrule(self, query: str) -> Resource:
        return self.resolver.resolve("fwrule", query)

    def get_volume(self, query: str) -> Resource:
        return self.resolver.resolve("volume", query)

    def get_user(self, query: str) -> Resource:
        return self.resolver.resolve("user", query)

    def get_role(self, query: str) -> Resource:
        return self.resolver.resolve("role", query)

    def get_policy(self, query: str) -> Resource:
        return self.resolver.resolve("policy", query)

    def get_key(self, query: str) -> Resource:
        return self.resolver.get_key(query)

    def _resolve(self, kind: str, query: str) -> Resource:
        getters: dict[str, Callable[[str], Resource]] = {
            "instance": self.get_instance,
            "image": self.get_image,
            "key": self.get_key,
        }
        if kind in getters:
            return getters[kind](query)
        return self.resolver.resolve(kind, query)

    # ---- waits

    def wait_for_instance_states(
        self, instance_id: str, states: Iterable[str], timeout: Optional[float] = None
    ) -> Resource:
        states = list(states)
        return self.waiter.wait(
            lambda: self.resolver.get_machine(instance_id),
            lambda inst: inst.get("state") in states,
            timeout=timeout,
            description=f"instance {instance_id} states {states}",
        )

    def wait_for_instance(
        self,
        instance_id: str,
        predicate: Callable[[Resource], bool],
        description: str,
        timeout: Optional[float] = None,
    ) -> Resource:
        return self.waiter.wait(
            lambda: self.resolver.get_machine(instance_id),
            predicate,
            timeout=timeout,
            description=f"instance {instance_id} {description}",
        )

    def wait_for_firewall(self, instance_id: str, enabled: bool, timeout: Optional[float] = None) -> Resource:
        return self.wait_for_instance(
            instance_id,
            lambda i: bool(i.get("firewall_enabled")) == enabled,
            f"firewall_enabled={enabled}",
            timeout,
        )

    def wait_for_deletion_protection(
        self, instance_id: str, enabled: bool, timeout: Optional[float] = None
    ) -> Resource:
        return self.wait_for_instance(
            instance_id,
            lambda i: bool(i.get("deletion_protection")) == enabled,
            f"deletion_protection={enabled}",
            timeout,
        )

    def wait_for_instance_deleted(self, instance_id: str, timeout: Optional[float] = None) -> Resource:
        """Poll until the instance reports ``deleted`` or is gone (410 or 404)."""

        def probe() -> Resource:
            try:
                return self.resolver.get_machine(instance_id)
            except (InstanceDeletedError, ResourceNotFoundError):
                return _DELETED

        return self.waiter.wait(
            probe,
            lambda inst: inst.get("state") == "deleted",
            timeout=timeout,
            description=f"instance {instance_id} to be deleted",
        )

    def wait_for_instance_audit(
        self,
        instance_id: str,
        action: str,
        since: datetime,
        timeout: Optional[float] = None,
    ) -> Resource:
        """
        Poll the instance audit log for an ``action`` record newer than ``since``.

        Raises:
            TritonError: If the audit record reports failure
        """

        def probe() -> Optional[Resource]:
            for record in self.cloudapi.machine_audit(instance_id):
                if record.get("action") == action and _parse_time(record["time"]) > since:
                    return record
            return None

        record = self.waiter.wait(
            probe,
            lambda r: r is not None,
            timeout=timeout,
            description=f"instance {instance_id} {action}",
        )
        if record.get("success") != "yes":
            raise TritonError(f"{action} failed (audit id {record.get('id')})")
        return record

    def wait_for_snapshot_states(
        self, instance_id: str, name: str, states: Iterable[str], timeout: Optional[float] = None
    ) -> Resource:
        states = list(states)

        def probe() -> Resource:
            try:
                return self.cloudapi.get_machine_snapshot(instance_id, name)
            except HttpError as e:
                if "deleted" in states and is_not_found(e):
                    return _DELETED
                raise

        return self.waiter.wait(
            probe,
            lambda snap: snap.get("state") in states,
            timeout=timeout,
            description=f"instance {instance_id} snapshot {name} states {states}",
        )

    def wait_for_nic_states(
        self, instance_id: str, mac: str, states: Iterable[str], timeout: Optional[float] = None
    ) -> Resource:
        states = list(states)
        return self.waiter.wait(
            lambda: self.cloudapi.get_nic(instance_id, mac),
            lambda nic: nic.get("state") in states,
            timeout=timeout,
            description=f"instance {instance_id} NIC {mac} states {states}",
        )

    def wait_for_volume_states(
        self, volume_id: str, states: Iterable[str], timeout: Optional[float] = None
    ) -> Resource:
        states = list(states)

        def probe() -> Resource:
            try:
                return self.cloudapi.get_volume(volume_id)
            except HttpError as e:
                if "deleted" in states and is_not_found(e):
                    return _DELETED
                raise

        return self.waiter.wait(
            probe,
            lambda vol: vol.get("state") in states,
            timeout=timeout,
            description=f"volume {volume_id} states {states}",
        )

    def wait_for_disk_added(
        self,
        instance_id: str,
        existing: Iterable[str],
        size: Union[int, str],
        timeout: Optional[float] = None,
    ) -> Resource:
        """Poll until one disk not in ``existing`` is provisioned with ``size``."""
        existing = set(existing)

        def added(disks: list[Resource]) -> list[Resource]:
            return [
                d
                for d in disks
                if d.get("id") not in existing
                and d.get("state") != "creating"
                and (size == "remaining" or d.get("size") == size)
            ]

        disks = self.waiter.wait(
            lambda: self.cloudapi.list_machine_disks(instance_id),
            lambda disks: bool(added(disks)),
            timeout=timeout,
            description=f"instance {instance_id} disk addition",
        )
        new = added(disks)
        if len(new) > 1:
            raise TritonError(f"multiple new disks appeared on instance {instance_id} while waiting")
        return new[0]

    def wait_for_disk_resized(
        self, instance_id: str, disk_id: str, size: int, timeout: Optional[float] = None
    ) -> Resource:
        return self.waiter.wait(
            lambda: self.cloudapi.get_machine_disk(instance_id, disk_id),
            lambda disk: disk.get("size") == size and disk.get("state") != "resizing",
            timeout=timeout,
            description=f"instance {instance_id} disk {disk_id} resize to {size}",
        )

    def wait_for_disk_deleted(self, instance_id: str, disk_id: str, timeout: Optional[float] = None) -> Resource:
        def fetch() -> Resource:
            try:
                return self.cloudapi.get_machine_disk(instance_id, disk_id)
            except HttpError as e:
                if is_not_found(e):
                    return _DELETED
                raise

        return self.waiter.wait(
            fetch,
            lambda disk: disk.get("state") == "deleted",
            timeout=timeout,
            description=f"instance {instance_id} disk {disk_id} deletion",
        )

    def _wait_for_tags(
        self,
        instance_id: str,
        predicate: Callable[[Mapping[str, Any]], bool],
        description: str,
        timeout: Optional[float],
    ) -> dict[str, Any]:
        # Concurrent changes to the same keys can keep this from ever matching;
        # ``timeout`` bounds that case.
        return self.waiter.wait(
            lambda: self.cloudapi.list_machine_tags(instance_id),
            predicate,
            timeout=timeout,
            description=f"instance {instance_id} tags {description}",
        )

    # ---- instance lifecycle

    def create_instance(
        self,
        image: str,
        package: str,
        name: Optional[str] = None,
        networks: Optional[list[str]] = None,
        tags: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        affinity: Optional[list[str]] = None,
        firewall_enabled: Optional[bool] = None,
        deletion_protection: Optional[bool] = None,
        volumes: Optional[list[dict[str, Any]]] = None,
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> Resource:
        """
        Create an instance from resolved image, package and networks.

        With ``wait``, poll until the instance is ``running``.

        Raises:
            TritonError: If the instance ends up ``failed``
        """
        img = self.get_image(image, use_cache=True)
        pkg = self.get_package(package)
        network_ids = [self.get_network(n)["id"] for n in networks or []]

        inst = self.cloudapi.create_machine(
            image=img["id"],
            package=pkg["id"],
            name=name,
            networks=network_ids or None,
            affinity=affinity,
            firewall_enabled=firewall_enabled,
            deletion_protection=deletion_protection,
            volumes=volumes,
            tags=tags,
            metadata=metadata,
        )
        logger.info("created instance", id=inst.get("id"), name=inst.get("name"))
        if not wait:
            return inst

        inst = self.wait_for_instance_states(inst["id"], ["running", "failed"], wait_timeout)
        if inst.get("state") == "failed":
            raise TritonError(f"instance {inst['id']} ({inst.get('name')}) failed to provision")
        return inst

    def _instance_state_action(
        self,
        query: str,
        action: Callable[[str], Any],
        state: str,
        wait: bool,
        wait_timeout: Optional[float],
    ) -> Resource:
        inst = self.get_instance(query)
        action(inst["id"])
        if wait:
            return self.wait_for_instance_states(inst["id"], [state], wait_timeout)
        return inst

    def start_instance(self, query: str, wait: bool = False, wait_timeout: Optional[float] = None) -> Resource:
        return self._instance_state_action(query, self.cloudapi.start_machine, "running", wait, wait_timeout)

    def stop_instance(self, query: str, wait: bool = False, wait_timeout: Optional[float] = None) -> Resource:
        return self._instance_state_action(query, self.cloudapi.stop_machine, "stopped", wait, wait_timeout)

    def reboot_instance(self, query: str, wait: bool = False, wait_timeout: Optional[float] = None) -> Resource:
        inst = self.get_instance(query)
        started = datetime.now(timezone.utc)
        self.cloudapi.reboot_machine(inst["id"])
        if wait:
            self.wait_for_instance_audit(inst["id"], "reboot", started, wait_timeout)
        return inst

    def start_instance_from_snapshot(
        self, query: str, name: str, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> Resource:
        return self._instance_state_action(
            query,
            lambda inst_id: self.cloudapi.start_machine_from_snapshot(inst_id, name),
            "running",
            wait,
            wait_timeout,
        )

    def delete_instance(self, query: str, wait: bool = False, wait_timeout: Optional[float] = None) -> Resource:
        """Delete an instance; with ``wait``, poll until it is ``deleted`` or answers 410."""
        inst = self.get_instance(query)
        self.cloudapi.delete_machine(inst["id"])
        if wait:
            self.wait_for_instance_deleted(inst["id"], wait_timeout)
        return inst

    def rename_instance(
        self, query: str, name: str, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> Resource:
        inst = self.get_instance(query)
        self.cloudapi.rename_machine(inst["id"], name)
        if wait:
            return self.wait_for_instance(
                inst["id"], lambda i: i.get("name") == name, f"rename to {name}", wait_timeout
            )
        return inst

    def resize_instance(
        self, query: str, package: str, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> Resource:
        inst = self.get_instance(query)
        pkg = self.get_package(package)
        self.cloudapi.resize_machine(inst["id"], pkg["id"])
        if wait:
            return self.wait_for_instance(
                inst["id"],
                lambda i: i.get("package") in (pkg.get("name"), pkg["id"]),
                f"resize to {pkg.get('name')}",
                wait_timeout,
            )
        return inst

    def set_instance_firewall(
        self, query: str, enabled: bool, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> Resource:
        inst = self.get_instance(query)
        if enabled:
            self.cloudapi.enable_machine_firewall(inst["id"])
        else:
            self.cloudapi.disable_machine_firewall(inst["id"])
        if wait:
            return self.wait_for_firewall(inst["id"], enabled, wait_timeout)
        return inst

    def set_instance_deletion_protection(
        self, query: str, enabled: bool, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> Resource:
        inst = self.get_instance(query)
        if enabled:
            self.cloudapi.enable_machine_deletion_protection(inst["id"])
        else:
            self.cloudapi.disable_machine_deletion_protection(inst["id"])
        if wait:
            return self.wait_for_deletion_protection(inst["id"], enabled, wait_timeout)
        return inst

    # ---- instance tags

    def list_instance_tags(self, query: str) -> dict[str, Any]:
        return self.cloudapi.list_machine_tags(self.get_instance(query)["id"])

    def get_instance_tag(self, query: str, key: str) -> Any:
        return self.cloudapi.get_machine_tag(self.get_instance(query)["id"], key)

    def set_instance_tags(
        self,
        query: str,
        tags: Mapping[str, Any],
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """Add or update tags; with ``wait``, poll until every given key has its value."""
        inst_id = self.get_instance(query)["id"]
        result = self.cloudapi.add_machine_tags(inst_id, tags)
        if wait:
            return self._wait_for_tags(
                inst_id,
                lambda live: all(k in live and live[k] == v for k, v in tags.items()),
                "set",
                wait_timeout,
            )
        return result

    def replace_instance_tags(
        self,
        query: str,
        tags: Mapping[str, Any],
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """Replace all tags; with ``wait``, poll until the live tags equal ``tags`` exactly."""
        inst_id = self.get_instance(query)["id"]
        expected = dict(tags)
        result = self.cloudapi.replace_machine_tags(inst_id, expected)
        if wait:
            return self._wait_for_tags(inst_id, lambda live: dict(live) == expected, "replace", wait_timeout)
        return result

    def delete_instance_tags(
        self,
        query: str,
        keys: Iterable[str],
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> Optional[dict[str, Any]]:
        """Delete the given tag keys; with ``wait``, poll until they are absent."""
        keys = list(keys)
        inst_id = self.get_instance(query)["id"]
        for key in keys:
            self.cloudapi.delete_machine_tag(inst_id, key)
        if wait:
            return self._wait_for_tags(
                inst_id, lambda live: not any(k in live for k in keys), "delete", wait_timeout
            )
        return None

    def delete_instance_tag(
        self, query: str, key: str, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> Optional[dict[str, Any]]:
        return self.delete_instance_tags(query, [key], wait=wait, wait_timeout=wait_timeout)

    def delete_all_instance_tags(
        self, query: str, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> Optional[dict[str, Any]]:
        inst_id = self.get_instance(query)["id"]
        self.cloudapi.delete_machine_tags(inst_id)
        if wait:
            return self._wait_for_tags(inst_id, lambda live: not live, "delete all", wait_timeout)
        return None

    # ---- snapshots

    def create_instance_snapshot(
        self,
        query: str,
        name: Optional[str] = None,
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> Resource:
        inst_id = self.get_instance(query)["id"]
        snapshot = self.cloudapi.create_machine_snapshot(inst_id, name)
        if wait:
            snapshot = self.wait_for_snapshot_states(
                inst_id, snapshot["name"], ["created", "failed"], wait_timeout
            )
            if snapshot.get("state") == "failed":
                raise TritonError(f"snapshot {snapshot['name']} of instance {inst_id} failed")
        return snapshot

    def list_instance_snapshots(self, query: str) -> list[Resource]:
        return self.cloudapi.list_machine_snapshots(self.get_instance(query)["id"])

    def get_instance_snapshot(self, query: str, name: str) -> Resource:
        return self.cloudapi.get_machine_snapshot(self.get_instance(query)["id"], name)

    def delete_instance_snapshot(
        self, query: str, name: str, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> None:
        """Delete a snapshot; with ``wait``, poll until it is ``deleted`` or gone."""
        inst_id = self.get_instance(query)["id"]
        self.cloudapi.delete_machine_snapshot(inst_id, name)
        if wait:
            self.wait_for_snapshot_states(inst_id, name, ["deleted"], wait_timeout)

    # ---- NICs

    def add_nic(
        self,
        query: str,
        network: Union[str, Mapping[str, Any]],
        primary: Optional[bool] = None,
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> Resource:
        """
        Add a NIC to an instance.

        Args:
            query: Instance identifier
            network: Network identifier, or a network object (e.g. with ``ipv4_uuid``)
            primary: Make the new NIC the primary one
            wait: Poll until the NIC is ``running``
            wait_timeout: Seconds to wait
        """
        inst_id = self.get_instance(query)["id"]
        if isinstance(network, str):
            network = self.get_network(network)["id"]
        nic = self.cloudapi.add_nic(inst_id, network, primary=primary)
        if wait:
            nic = self.wait_for_nic_states(inst_id, nic["mac"], ["running", "failed"], wait_timeout)
            if nic.get("state") == "failed":
                raise TritonError(f"NIC {nic['mac']} on instance {inst_id} failed")
        return nic

    def list_nics(self, query: str) -> list[Resource]:
        return self.cloudapi.list_nics(self.get_instance(query)["id"])

    def get_nic(self, query: str, mac: str) -> Resource:
        return self.cloudapi.get_nic(self.get_instance(query)["id"], mac)

    def remove_nic(self, query: str, mac: str) -> None:
        self.cloudapi.remove_nic(self.get_instance(query)["id"], mac)

    # ---- disks

    def list_instance_disks(self, query: str) -> list[Resource]:
        return self.cloudapi.list_machine_disks(self.get_instance(query)["id"])

    def get_instance_disk(self, query: str, disk_id: str) -> Resource:
        return self.cloudapi.get_machine_disk(self.get_instance(query)["id"], disk_id)

    def add_instance_disk(
        self,
        query: str,
        size: Union[int, str],
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> Optional[Resource]:
        """
        Add a disk to a bhyve instance.

        Args:
            query: Instance identifier
            size: Size in MiB, or ``"remaining"`` for the rest of the package quota
            wait: Poll until the new disk is provisioned
            wait_timeout: Seconds to wait

        Returns:
            The new disk when waiting, else whatever CloudAPI answered
        """
        if isinstance(size, str):
            size = parse_disk_size(size)
        inst_id = self.get_instance(query)["id"]
        existing = [d["id"] for d in self.cloudapi.list_machine_disks(inst_id)] if wait else []
        disk = self.cloudapi.create_machine_disk(inst_id, size)
        if wait:
            disk = self.wait_for_disk_added(inst_id, existing, size, wait_timeout)
        return disk

    def resize_instance_disk(
        self,
        query: str,
        disk_id: str,
        size: int,
        dangerous_allow_shrink: bool = False,
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> Resource:
        """Resize a disk. Shrinking must be asked for with ``dangerous_allow_shrink``."""
        inst_id = self.get_instance(query)["id"]
        disk = self.cloudapi.get_machine_disk(inst_id, disk_id)
        if size < disk.get("size", 0) and not dangerous_allow_shrink:
            raise UsageError("--dangerous-allow-shrink must be specified when shrinking a disk")
        self.cloudapi.resize_machine_disk(inst_id, disk_id, size, dangerous_allow_shrink=dangerous_allow_shrink)
        if wait:
            return self.wait_for_disk_resized(inst_id, disk_id, size, wait_timeout)
        return disk

    def delete_instance_disk(
        self, query: str, disk_id: str, wait: bool = False, wait_timeout: Optional[float] = None
    ) -> None:
        inst_id = self.get_instance(query)["id"]
        self.cloudapi.delete_machine_disk(inst_id, disk_id)
        if wait:
            self.wait_for_disk_deleted(inst_id, disk_id, wait_timeout)

    # ---- VNC

    def get_instance_vnc(self, query: str) -> VncConsole:
        """Open the VNC console websocket of a hardware VM."""
        return VncConsole(self.cloudapi, self.get_instance(query)["id"]).open()

    # ---- images

    def update_image(self, query: str, fields: Mapping[str, Any]) -> Resource:
        """Update an image after validating ``fields`` against the UpdateImage vocabulary."""
        fields = validate_update(ImageUpdate, dict(fields))
        img = self.get_image(query)
        if not fields:
            return img
        return self.cloudapi.update_image(img["id"], fields)

    def create_image_from_instance(
        self,
        query: str,
        name: str,
        version: str,
        wait: bool = False,
        wait_timeout: Optional[float] = None,
        **fields: Any,
    ) -> Resource:
        inst_id = self.get_instance(query)["id"]
        img = self.cloudapi.create_image_from_machine(inst_id, name, version, **fields)
        if wait:
            img = self.waiter.wait(
                lambda: self.cloudapi.get_image(img["id"]),
                lambda i: i.get("state") in ("active", "failed"),
                timeout=wait_timeout,
                description=f"image {img['id']} to be active",
            )
            if img.get("state") == "failed":
                raise TritonError(f"image {img['id']} ({name}@{version}) creation failed")
        return img

    def delete_image(self, query: str) -> Resource:
        img = self.get_image(query)
        self.cloudapi.delete_image(img["id"])
        return img

    # ---- firewall rules

    def set_fwrule_enabled(self, query: str, enabled: bool) -> Resource:
        rule_id = self.get_fwrule(query)["id"]
        if enabled:
            return self.cloudapi.enable_firewall_rule(rule_id)
        return self.cloudapi.disable_firewall_rule(rule_id)

    def update_fwrule(self, query: str, **fields: Any) -> Resource:
        return self.cloudapi.update_firewall_rule(self.get_fwrule(query)["id"], **fields)

    def delete_fwrule(self, query: str) -> Resource:
        rule = self.get_fwrule(query)
        self.cloudapi.delete_firewall_rule(rule["id"])
        return rule

    def list_instance_fwrules(self, query: str) -> list[Resource]:
        return self.cloudapi.list_machine_firewall_rules(self.get_instance(query)["id"])

    # ---- VPCs

    def update_vpc(self, query: str, fields: Mapping[str, Any]) -> Resource:
        """Update a VPC after validating ``fields`` against the UpdateVPC vocabulary."""
        fields = validate_update(VpcUpdate, dict(fields))
        vpc = self.get_vpc(query)
        if not fields:
            return vpc
        return self.cloudapi.update_vpc(vpc["id"], fields)

    def delete_vpc(self, query: str) -> Resource:
        vpc = self.get_vpc(query)
        self.cloudapi.delete_vpc(vpc["id"])
        return vpc

    def list_vpc_networks(self, query: str) -> list[Resource]:
        return self.cloudapi.list_vpc_networks(self.get_vpc(query)["id"])

    # ---- volumes

    def create_volume(
        self,
        name: Optional[str] = None,
        size: Union[int, str, None] = None,
        networks: Optional[list[str]] = None,
        type: Optional[str] = None,
        tags: Optional[Mapping[str, Any]] = None,
        affinity: Optional[list[str]] = None,
        wait: bool = False,
        wait_timeout: Optional[float] = None,
    ) -> Resource:
        """
        Create a volume. ``size`` may be mebibytes or a string like ``"20G"``.

        Raises:
            UsageError: On an invalid size
            TritonError: If, when waiting, the volume ends up ``failed``
        """
        if isinstance(size, str):
            size = parse_volume_size(size)
        network_ids = [self.get_network(n)["id"] for n in networks or []]
        volume = self.cloudapi.create_volume(
            name=name,
            size=size,
            networks=network_ids or None,
            type=type,
            tags=dict(tags) if tags else None,
            affinity=affinity,
        )
        if wait:
            volume = self.wait_for_volume_states(volume["id"], ["ready", "failed"], wait_timeout)
            if volume.get("state") == "failed":
                raise TritonError(f"volume {volume['id']} ({volume.get('name')}) failed to be created")
        return volume

    def delete_volume(self, query: str, wait: bool = False, wait_timeout: Optional[float] = None) -> Resource:
        volume = self.get_volume(query)
        self.cloudapi.delete_volume(volume["id"])
        if wait:
            self.wait_for_volume_states(volume["id"], ["deleted", "failed"], wait_timeout)
        return volume

    # ---- RBAC role tags

    def _role_tag_resource(self, kind: str, query: Optional[str]) -> str:
        if kind not in _ROLE_TAG_KINDS:
            raise UsageError(
                f'invalid resource type "{kind}": must be one of {", ".join(sorted(_ROLE_TAG_KINDS))}'
            )
        if query is None:
            return self.cloudapi.role_tag_resource(_ROLE_TAG_KINDS[kind])
        resource = self._resolve(kind, query)
        resource_id = resource.get("fingerprint") if kind == "key" else resource.get("id")
        if kind == "user" and not resource_id:
            resource_id = resource.get("login")
        return self.cloudapi.role_tag_resource(_ROLE_TAG_KINDS[kind], resource_id)

    def get_role_tags(self, kind: str, query: Optional[str] = None) -> list[str]:
        role_tags, _ = self.cloudapi.get_role_tags(self._role_tag_resource(kind, query))
        return role_tags

    def set_role_tags(self, kind: str, query: Optional[str], role_tags: list[str]) -> Any:
        return self.cloudapi.set_role_tags(self._role_tag_resource(kind, query), role_tags)

    # ---- change feed

    def change_feed(self, instances: Optional[Iterable[str]] = None) -> ChangeFeed:
        """Subscribe to VM changes, optionally limited to the given instances."""
        ids = []
        for query in instances or []:
            ids.append(query if is_uuid(query) else self.get_instance(query)["id"])
        return ChangeFeed(self.cloudapi, ids)

    # ---- fan-out

    async def _fan_out(self, func: Callable[[str], Resource], queries: Iterable[str]) -> list[Resource]:
        # Build the shared client before worker threads need it.
        _ = self.resolver
        return await run_parallel(func, queries)

    async def start_instances(self, queries: Iterable[str], wait: bool = False, wait_timeout: Optional[float] = None) -> list[Resource]:
        return await self._fan_out(lambda q: self.start_instance(q, wait, wait_timeout), queries)

    async def stop_instances(self, queries: Iterable[str], wait: bool = False, wait_timeout: Optional[float] = None) -> list[Resource]:
        return await self._fan_out(lambda q: self.stop_instance(q, wait, wait_timeout), queries)

    async def reboot_instances(self, queries: Iterable[str], wait: bool = False, wait_timeout: Optional[float] = None) -> list[Resource]:
        return await self._fan_out(lambda q: self.reboot_instance(q, wait, wait_timeout), queries)

    async def delete_instances(self, queries: Iterable[str], wait: bool = False, wait_timeout: Optional[float] = None) -> list[Resource]:
        return await self._fan_out(lambda q: self.delete_instance(q, wait, wait_timeout), queries)

    async def delete_volumes(self, queries: Iterable[str], wait: bool = False, wait_timeout: Optional[float] = None) -> list[Resource]:
        return await self._fan_out(lambda q: self.delete_volume(q, wait, wait_timeout), queries)
