"""Argument parser with resource/action structure."""

import argparse

from tritoncloud import __version__
from tritoncloud.cli.handlers import account_handlers as account
from tritoncloud.cli.handlers import instance_handlers as instance
from tritoncloud.cli.handlers import resource_handlers as resource


def _with_flag(handler, **fixed):
    """Bind fixed namespace values (e.g. ``enable=True``) to a handler."""

    async def wrapper(args: argparse.Namespace) -> int:
        for name, value in fixed.items():
            setattr(args, name, value)
        return await handler(args)

    wrapper.__name__ = getattr(handler, "__name__", "handler")
    return wrapper


def _add_wait(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-w", "--wait", action="store_true", help="Wait for the operation to complete")
    parser.add_argument(
        "--wait-timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Give up waiting after this many seconds (default: wait forever)",
    )


def _resource(subparsers, name: str, help_text: str, **kwargs):
    parser = subparsers.add_parser(name, help=help_text, **kwargs)
    actions = parser.add_subparsers(dest="action", metavar="ACTION")
    actions.required = True
    return actions.add_parser


def _add_account(subparsers) -> None:
    add = _resource(subparsers, "account", "Account details and settings")
    add("get", help="Show account details").set_defaults(handler=account.handle_account_get)
    add("limits", help="Show provisioning limits").set_defaults(handler=account.handle_account_limits)
    p = add("update", help="Update account fields")
    p.add_argument("fields", nargs="+", metavar="FIELD=VALUE")
    p.set_defaults(handler=account.handle_account_update)


def _add_instance(subparsers) -> None:
    add = _resource(subparsers, "instance", "Instances (machines)", aliases=["inst"])

    p = add("list", aliases=["ls"], help="List instances")
    p.add_argument("filters", nargs="*", metavar="FILTER=VALUE")
    p.set_defaults(handler=instance.handle_instance_list)

    p = add("get", help="Show an instance")
    p.add_argument("instance")
    p.set_defaults(handler=instance.handle_instance_get)

    p = add("create", help="Create an instance")
    p.add_argument("image", help="Image UUID, name, name@version or short id")
    p.add_argument("package", help="Package UUID, name or short id")
    p.add_argument("-n", "--name")
    p.add_argument("-N", "--network", dest="networks", action="append", metavar="NETWORK")
    p.add_argument("-t", "--tag", dest="tags", action="append", metavar="TAG")
    p.add_argument("-m", "--metadata", action="append", metavar="DATA")
    p.add_argument("-M", "--metadata-file", dest="metadata_files", action="append", metavar="KEY=FILE")
    p.add_argument("--script", metavar="FILE", help="Load user-script metadata from a file")
    p.add_argument("-a", "--affinity", action="append", metavar="RULE")
    p.add_argument("--firewall", action="store_true", help="Enable the cloud firewall")
    p.add_argument("--deletion-protection", action="store_true")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_create)

    for action, handler in (
        ("start", instance.handle_instance_start),
        ("stop", instance.handle_instance_stop),
        ("reboot", instance.handle_instance_reboot),
        ("delete", instance.handle_instance_delete),
    ):
        p = add(action, help=f"{action.capitalize()} one or more instances")
        p.add_argument("instances", nargs="+", metavar="INST")
        _add_wait(p)
        p.set_defaults(handler=handler)

    p = add("rename", help="Rename an instance")
    p.add_argument("instance")
    p.add_argument("name")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_rename)

    p = add("resize", help="Resize an instance to another package")
    p.add_argument("instance")
    p.add_argument("package")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_resize)

    for action, handler, enable in (
        ("enable-firewall", instance.handle_instance_firewall, True),
        ("disable-firewall", instance.handle_instance_firewall, False),
        ("enable-deletion-protection", instance.handle_instance_deletion_protection, True),
        ("disable-deletion-protection", instance.handle_instance_deletion_protection, False),
    ):
        p = add(action, help=action.replace("-", " ").capitalize())
        p.add_argument("instances", nargs="+", metavar="INST")
        _add_wait(p)
        p.set_defaults(handler=_with_flag(handler, enable=enable))

    p = add("audit", help="List instance actions")
    p.add_argument("instance")
    p.set_defaults(handler=instance.handle_instance_audit)

    p = add("fwrules", aliases=["fwrule"], help="List firewall rules applying to an instance")
    p.add_argument("instance")
    p.set_defaults(handler=instance.handle_instance_fwrules)

    p = add("start-from-snapshot", help="Roll an instance back to a snapshot and start it")
    p.add_argument("instance")
    p.add_argument("name", help="Snapshot name")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_start_from_snapshot)

    # instance tag
    tag = add("tag", help="Instance tags")
    tag_actions = tag.add_subparsers(dest="tag_action", metavar="ACTION")
    tag_actions.required = True

    p = tag_actions.add_parser("list", aliases=["ls"], help="List tags")
    p.add_argument("instance")
    p.set_defaults(handler=instance.handle_instance_tag_list)

    p = tag_actions.add_parser("get", help="Show one tag value")
    p.add_argument("instance")
    p.add_argument("key")
    p.set_defaults(handler=instance.handle_instance_tag_get)

    for action, replace in (("set", False), ("replace", True)):
        p = tag_actions.add_parser(action, help=f"{action.capitalize()} tags")
        p.add_argument("instance")
        p.add_argument("tags", nargs="+", metavar="TAG", help="key=value, a JSON object, or @file")
        _add_wait(p)
        p.set_defaults(handler=_with_flag(instance.handle_instance_tag_set, replace=replace))

    p = tag_actions.add_parser("delete", aliases=["rm"], help="Delete tags")
    p.add_argument("instance")
    p.add_argument("keys", nargs="*", metavar="KEY")
    p.add_argument("-a", "--all", action="store_true", help="Delete all tags")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_tag_delete)

    # instance snapshot
    snapshot = add("snapshot", help="Instance snapshots")
    snapshot_actions = snapshot.add_subparsers(dest="snapshot_action", metavar="ACTION")
    snapshot_actions.required = True

    p = snapshot_actions.add_parser("create", help="Create a snapshot")
    p.add_argument("instance")
    p.add_argument("-n", "--name")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_snapshot_create)

    p = snapshot_actions.add_parser("list", aliases=["ls"], help="List snapshots")
    p.add_argument("instance")
    p.set_defaults(handler=instance.handle_instance_snapshot_list)

    p = snapshot_actions.add_parser("get", help="Show a snapshot")
    p.add_argument("instance")
    p.add_argument("name")
    p.set_defaults(handler=instance.handle_instance_snapshot_get)

    p = snapshot_actions.add_parser("delete", aliases=["rm"], help="Delete snapshots")
    p.add_argument("instance")
    p.add_argument("names", nargs="+", metavar="NAME")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_snapshot_delete)

    # instance nic
    nic = add("nic", help="Instance NICs")
    nic_actions = nic.add_subparsers(dest="nic_action", metavar="ACTION")
    nic_actions.required = True

    p = nic_actions.add_parser("add", aliases=["create"], help="Add a NIC")
    p.add_argument("instance")
    p.add_argument("network")
    p.add_argument("--primary", action="store_true")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_nic_add)

    p = nic_actions.add_parser("list", aliases=["ls"], help="List NICs")
    p.add_argument("instance")
    p.set_defaults(handler=instance.handle_instance_nic_list)

    p = nic_actions.add_parser("get", help="Show a NIC")
    p.add_argument("instance")
    p.add_argument("mac")
    p.set_defaults(handler=instance.handle_instance_nic_get)

    p = nic_actions.add_parser("remove", aliases=["rm", "delete"], help="Remove a NIC")
    p.add_argument("instance")
    p.add_argument("mac")
    p.set_defaults(handler=instance.handle_instance_nic_remove)

    # instance disk
    disk = add("disk", help="Instance disks (bhyve)")
    disk_actions = disk.add_subparsers(dest="disk_action", metavar="ACTION")
    disk_actions.required = True

    p = disk_actions.add_parser("add", aliases=["create"], help="Add a disk")
    p.add_argument("instance")
    p.add_argument("size", help='Size in MiB, or "remaining"')
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_disk_add)

    p = disk_actions.add_parser("list", aliases=["ls"], help="List disks")
    p.add_argument("instance")
    p.set_defaults(handler=instance.handle_instance_disk_list)

    p = disk_actions.add_parser("get", help="Show a disk")
    p.add_argument("instance")
    p.add_argument("disk")
    p.set_defaults(handler=instance.handle_instance_disk_get)

    p = disk_actions.add_parser("resize", help="Resize a disk")
    p.add_argument("instance")
    p.add_argument("disk")
    p.add_argument("size", type=int, help="New size in MiB")
    p.add_argument("--dangerous-allow-shrink", action="store_true", help="Allow shrinking the disk")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_disk_resize)

    p = disk_actions.add_parser("delete", aliases=["rm"], help="Delete a disk")
    p.add_argument("instance")
    p.add_argument("disk")
    _add_wait(p)
    p.set_defaults(handler=instance.handle_instance_disk_delete)

    p = add("vnc", help="Relay a local VNC client to an instance console")
    p.add_argument("instance")
    p.add_argument("-p", "--port", type=int, default=0, help="Local port (default: any free port)")
    p.set_defaults(handler=instance.handle_instance_vnc)


def _add_image(subparsers) -> None:
    add = _resource(subparsers, "image", "Images", aliases=["img"])

    p = add("list", aliases=["ls"], help="List images")
    p.add_argument("filters", nargs="*", metavar="FILTER=VALUE")
    p.add_argument("-a", "--all", action="store_true", help="Include inactive images")
    p.set_defaults(handler=resource.handle_image_list)

    p = add("get", help="Show an image")
    p.add_argument("image")
    p.set_defaults(handler=resource.handle_image_get)

    p = add("update", help="Update image fields")
    p.add_argument("-f", "--file", metavar="FILE", help="JSON object of fields; '-' reads stdin")
    p.add_argument("image")
    p.add_argument("fields", nargs="*", metavar="FIELD=VALUE")
    p.set_defaults(handler=resource.handle_image_update)

    p = add("create", help="Create an image from an instance")
    p.add_argument("instance")
    p.add_argument("name")
    p.add_argument("version")
    p.add_argument("-d", "--description")
    p.add_argument("-t", "--tag", dest="tags", action="append", metavar="TAG")
    _add_wait(p)
    p.set_defaults(handler=resource.handle_image_create)

    p = add("delete", aliases=["rm"], help="Delete images")
    p.add_argument("images", nargs="+", metavar="IMAGE")
    p.set_defaults(handler=resource.handle_image_delete)


def _add_simple(subparsers, name: str, help_text: str, list_handler, get_handler, filters: bool = True) -> None:
    add = _resource(subparsers, name, help_text)
    p = add("list", aliases=["ls"], help=f"List {name}s")
    if filters:
        p.add_argument("filters", nargs="*", metavar="FILTER=VALUE")
    p.set_defaults(handler=list_handler)
    p = add("get", help=f"Show a {name}")
    p.add_argument(name)
    p.set_defaults(handler=get_handler)


def _add_vpc(subparsers) -> None:
    add = _resource(subparsers, "vpc", "Virtual private clouds")

    add("list", aliases=["ls"], help="List VPCs").set_defaults(handler=resource.handle_vpc_list)

    p = add("get", help="Show a VPC")
    p.add_argument("vpc")
    p.set_defaults(handler=resource.handle_vpc_get)

    p = add("create", help="Create a VPC")
    p.add_argument("name")
    p.add_argument("ip4_cidr", metavar="CIDR")
    p.add_argument("-D", "--description")
    p.set_defaults(handler=resource.handle_vpc_create)

    p = add("update", help="Update VPC name or description")
    p.add_argument("-f", "--file", metavar="FILE", help="JSON object of fields; '-' reads stdin")
    p.add_argument("vpc")
    p.add_argument("fields", nargs="*", metavar="FIELD=VALUE")
    p.set_defaults(handler=resource.handle_vpc_update)

    p = add("delete", aliases=["rm"], help="Delete VPCs")
    p.add_argument("vpcs", nargs="+", metavar="VPC")
    p.set_defaults(handler=resource.handle_vpc_delete)

    p = add("networks", help="List networks in a VPC")
    p.add_argument("vpc")
    p.set_defaults(handler=resource.handle_vpc_networks)


def _add_volume(subparsers) -> None:
    add = _resource(subparsers, "volume", "Volumes", aliases=["vol"])

    p = add("list", aliases=["ls"], help="List volumes")
    p.add_argument("filters", nargs="*", metavar="FILTER=VALUE")
    p.set_defaults(handler=resource.handle_volume_list)

    p = add("get", help="Show a volume")
    p.add_argument("volume")
    p.set_defaults(handler=resource.handle_volume_get)

    p = add("create", help="Create a volume")
    p.add_argument("-n", "--name")
    p.add_argument("-s", "--size", help="Size, e.g. 20G, or mebibytes")
    p.add_argument("-N", "--network", dest="networks", action="append", metavar="NETWORK")
    p.add_argument("--type", default=None)
    p.add_argument("-t", "--tag", dest="tags", action="append", metavar="TAG")
    p.add_argument("-a", "--affinity", action="append", metavar="RULE")
    _add_wait(p)
    p.set_defaults(handler=resource.handle_volume_create)

    p = add("delete", aliases=["rm"], help="Delete volumes")
    p.add_argument("volumes", nargs="+", metavar="VOLUME")
    _add_wait(p)
    p.set_defaults(handler=resource.handle_volume_delete)

    p = add("sizes", help="List available volume sizes")
    p.add_argument("--type", default=None)
    p.set_defaults(handler=resource.handle_volume_sizes)


def _add_fwrule(subparsers) -> None:
    add = _resource(subparsers, "fwrule", "Firewall rules")

    add("list", aliases=["ls"], help="List firewall rules").set_defaults(handler=resource.handle_fwrule_list)

    p = add("get", help="Show a firewall rule")
    p.add_argument("fwrule")
    p.set_defaults(handler=resource.handle_fwrule_get)

    p = add("create", help="Create a firewall rule")
    p.add_argument("rule")
    p.add_argument("-d", "--disabled", action="store_true")
    p.add_argument("-D", "--description")
    p.set_defaults(handler=resource.handle_fwrule_create)

    for action, enable in (("enable", True), ("disable", False)):
        p = add(action, help=f"{action.capitalize()} firewall rules")
        p.add_argument("fwrules", nargs="+", metavar="FWRULE")
        p.set_defaults(handler=_with_flag(resource.handle_fwrule_enable, enable=enable))

    p = add("delete", aliases=["rm"], help="Delete firewall rules")
    p.add_argument("fwrules", nargs="+", metavar="FWRULE")
    p.set_defaults(handler=resource.handle_fwrule_delete)


def _add_rbac(subparsers) -> None:
    add = _resource(subparsers, "rbac", "Role-based access control")
    role_tags = add("role-tags", help="Role tags on resources")
    actions = role_tags.add_subparsers(dest="role_tags_action", metavar="ACTION")
    actions.required = True

    p = actions.add_parser("get", help="Show role tags")
    p.add_argument("kind", help="instance, image, package, network, fwrule, user, role, policy, key, volume or vpc")
    p.add_argument("id", nargs="?", default=None, help="Resource identifier; omit for the collection")
    p.set_defaults(handler=account.handle_role_tags_get)

    p = actions.add_parser("set", help="Replace role tags")
    p.add_argument("kind")
    p.add_argument("id")
    p.add_argument("roles", nargs="*", metavar="ROLE")
    p.set_defaults(handler=account.handle_role_tags_set)


def _add_profile(subparsers) -> None:
    add = _resource(subparsers, "profile", "CLI profiles")
    add("list", aliases=["ls"], help="List profiles").set_defaults(handler=account.handle_profile_list)
    p = add("get", help="Show a profile")
    p.add_argument("name", nargs="?", default=None)
    p.set_defaults(handler=account.handle_profile_get)


def build_parser() -> argparse.ArgumentParser:
    """Build the ``tritoncloud`` argument parser."""
    parser = argparse.ArgumentParser(prog="tritoncloud", description="Triton CloudAPI command line client")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-p", "--profile", help="Profile name (default: TRITON_PROFILE, config, then env)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    parser.add_argument("-j", "--json", action="store_true", help="JSON output")
    parser.add_argument("--accept-version", metavar="VER", help="Accept-Version header for CloudAPI")
    parser.add_argument("-k", "--insecure", action="store_true", help="Do not verify the TLS certificate")

    subparsers = parser.add_subparsers(dest="resource", metavar="RESOURCE")

    _add_account(subparsers)
    _add_instance(subparsers)
    _add_image(subparsers)
    _add_simple(subparsers, "package", "Packages", resource.handle_package_list, resource.handle_package_get)
    _add_simple(subparsers, "network", "Networks", resource.handle_network_list, resource.handle_network_get)
    _add_simple(
        subparsers, "key", "SSH keys", resource.handle_key_list, resource.handle_key_get, filters=False
    )
    _add_vpc(subparsers)
    _add_volume(subparsers)
    _add_fwrule(subparsers)
    _add_rbac(subparsers)
    _add_profile(subparsers)

    p = subparsers.add_parser("changefeed", help="Stream VM change events")
    p.add_argument("instances", nargs="*", metavar="INST")
    p.set_defaults(handler=account.handle_changefeed)

    p = subparsers.add_parser("cloudapi", help="Raw signed CloudAPI request")
    p.add_argument("-X", "--method", default="GET")
    p.add_argument("-d", "--data", help="JSON body, or @file")
    p.add_argument("-i", "--include", action="store_true", help="Print status line and headers")
    p.add_argument("path", help="Request path, e.g. /my/machines")
    p.set_defaults(handler=account.handle_cloudapi)

    return parser
