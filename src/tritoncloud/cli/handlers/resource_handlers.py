"""Handlers for images, packages, networks, keys, VPCs, volumes and firewall rules."""

import sys
from typing import TYPE_CHECKING, Optional

from tritoncloud.cli.console import print_info, print_success
from tritoncloud.cli.context import api_from_args
from tritoncloud.cli.decorators import handle_cli_exceptions
from tritoncloud.cli.output import emit_list, emit_one, with_short_ids
from tritoncloud.exceptions import UsageError
from tritoncloud.schemas import ImageUpdate, VpcUpdate, update_fields_from_args
from tritoncloud.utils.kv import kv_to_obj, tags_from_args

if TYPE_CHECKING:
    import argparse

IMAGE_COLUMNS = ["shortid", "name", "version", "state", "os", "type", "published_at"]
PACKAGE_COLUMNS = ["shortid", "name", "memory", "swap", "disk", "vcpus"]
NETWORK_COLUMNS = ["shortid", "name", "subnet", "gateway", "fabric", "public"]
KEY_COLUMNS = ["fingerprint", "name"]
VPC_COLUMNS = ["shortid", "name", "ip4_cidr", "description"]
VOLUME_COLUMNS = ["shortid", "name", "size", "type", "state", "created"]
FWRULE_COLUMNS = ["shortid", "enabled", "global", "rule"]


def _read_update_file(path: Optional[str]) -> tuple[Optional[str], str]:
    """JSON text from ``-f FILE`` (``-`` is stdin) and its description."""
    if path is None:
        return None, "arguments"
    if path == "-":
        return sys.stdin.read(), "stdin"
    with open(path, encoding="utf-8") as f:
        return f.read(), f'file "{path}"'


def _filters(args: "argparse.Namespace") -> dict:
    return kv_to_obj(args.filters, disable_dotted=True) if getattr(args, "filters", None) else {}


# ---- images


@handle_cli_exceptions(context="image list")
async def handle_image_list(args: "argparse.Namespace") -> None:
    """List images; the unfiltered listing may come from the local cache."""
    filters = _filters(args)
    if args.all:
        filters.setdefault("state", "all")
    with api_from_args(args) as api:
        images = api.list_images(use_cache=not filters, **filters)
    emit_list(args, images if args.json else with_short_ids(images), IMAGE_COLUMNS)


@handle_cli_exceptions(context="image get")
async def handle_image_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_image(args.image))


@handle_cli_exceptions(context="image update")
async def handle_image_update(args: "argparse.Namespace") -> None:
    """Update image fields from ``FIELD=VALUE`` arguments or a JSON file."""
    if args.file and args.fields:
        raise UsageError("cannot give both FIELD=VALUE arguments and -f FILE")
    json_text, source = _read_update_file(args.file)
    fields = update_fields_from_args(ImageUpdate, args.fields, json_text, source)
    if not fields:
        raise UsageError("no fields to update were given")
    with api_from_args(args) as api:
        image = api.update_image(args.image, fields)
    print_success(f"Updated image {image['id']} ({image.get('name')}@{image.get('version')})")


@handle_cli_exceptions(context="image create")
async def handle_image_create(args: "argparse.Namespace") -> None:
    """Create an image from an instance."""
    with api_from_args(args) as api:
        image = api.create_image_from_instance(
            args.instance,
            args.name,
            args.version,
            description=args.description,
            tags=tags_from_args(args.tags) if args.tags else None,
            wait=args.wait,
            wait_timeout=args.wait_timeout,
        )
    if args.json:
        emit_one(args, image)
    else:
        verb = "Created" if args.wait else "Creating"
        print_success(f"{verb} image {image['id']} ({args.name}@{args.version})")


@handle_cli_exceptions(context="image delete")
async def handle_image_delete(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        for query in args.images:
            image = api.delete_image(query)
            print_success(f"Deleted image {image['id']} ({image.get('name')}@{image.get('version')})")


# ---- packages, networks, keys


@handle_cli_exceptions(context="package list")
async def handle_package_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        packages = api.cloudapi.list_packages(**_filters(args))
    emit_list(args, packages if args.json else with_short_ids(packages), PACKAGE_COLUMNS)


@handle_cli_exceptions(context="package get")
async def handle_package_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_package(args.package))


@handle_cli_exceptions(context="network list")
async def handle_network_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        networks = api.cloudapi.list_networks(**_filters(args))
    emit_list(args, networks if args.json else with_short_ids(networks), NETWORK_COLUMNS)


@handle_cli_exceptions(context="network get")
async def handle_network_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_network(args.network))


@handle_cli_exceptions(context="key list")
async def handle_key_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_list(args, api.cloudapi.list_keys(), KEY_COLUMNS)


@handle_cli_exceptions(context="key get")
async def handle_key_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_key(args.key))


# ---- VPCs


@handle_cli_exceptions(context="vpc list")
async def handle_vpc_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        vpcs = api.cloudapi.list_vpcs()
    emit_list(args, vpcs if args.json else with_short_ids(vpcs), VPC_COLUMNS)


@handle_cli_exceptions(context="vpc get")
async def handle_vpc_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_vpc(args.vpc))


@handle_cli_exceptions(context="vpc create")
async def handle_vpc_create(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        vpc = api.cloudapi.create_vpc(args.name, args.ip4_cidr, description=args.description)
    if args.json:
        emit_one(args, vpc)
    else:
        print_success(f"Created VPC {vpc.get('name')} ({vpc['id']})")


@handle_cli_exceptions(context="vpc update")
async def handle_vpc_update(args: "argparse.Namespace") -> None:
    if args.file and args.fields:
        raise UsageError("cannot give both FIELD=VALUE arguments and -f FILE")
    json_text, source = _read_update_file(args.file)
    fields = update_fields_from_args(VpcUpdate, args.fields, json_text, source)
    if not fields:
        raise UsageError("no fields to update were given")
    with api_from_args(args) as api:
        vpc = api.update_vpc(args.vpc, fields)
    print_success(f"Updated VPC {vpc['id']} ({', '.join(sorted(fields))})")


@handle_cli_exceptions(context="vpc delete")
async def handle_vpc_delete(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        for query in args.vpcs:
            vpc = api.delete_vpc(query)
            print_success(f"Deleted VPC {vpc['id']}")


@handle_cli_exceptions(context="vpc networks")
async def handle_vpc_networks(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        networks = api.list_vpc_networks(args.vpc)
    emit_list(args, networks if args.json else with_short_ids(networks), NETWORK_COLUMNS)


# ---- volumes


@handle_cli_exceptions(context="volume list")
async def handle_volume_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        volumes = api.cloudapi.list_volumes(**_filters(args))
    emit_list(args, volumes if args.json else with_short_ids(volumes), VOLUME_COLUMNS)


@handle_cli_exceptions(context="volume get")
async def handle_volume_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_volume(args.volume))


@handle_cli_exceptions(context="volume create")
async def handle_volume_create(args: "argparse.Namespace") -> None:
    """Create a volume; ``--size`` accepts ``20G`` or a number of mebibytes."""
    with api_from_args(args) as api:
        volume = api.create_volume(
            name=args.name,
            size=args.size,
            networks=args.networks,
            type=args.type,
            tags=tags_from_args(args.tags) if args.tags else None,
            affinity=args.affinity,
            wait=args.wait,
            wait_timeout=args.wait_timeout,
        )
    if args.json:
        emit_one(args, volume)
    elif args.wait:
        print_success(f"Created volume {volume.get('name')} ({volume['id']})")
    else:
        print_info(f"Creating volume {volume.get('name')} ({volume['id']})")


@handle_cli_exceptions(context="volume delete")
async def handle_volume_delete(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        volumes = await api.delete_volumes(args.volumes, wait=args.wait, wait_timeout=args.wait_timeout)
    for volume in volumes:
        label = volume.get("name") or volume["id"]
        if args.wait:
            print_success(f"Deleted volume {label}")
        else:
            print_info(f"Deleting volume {label}")


@handle_cli_exceptions(context="volume sizes")
async def handle_volume_sizes(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_list(args, api.cloudapi.list_volume_sizes(args.type), ["size", "type"])


# ---- firewall rules


@handle_cli_exceptions(context="fwrule list")
async def handle_fwrule_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        rules = api.cloudapi.list_firewall_rules()
    emit_list(args, rules if args.json else with_short_ids(rules), FWRULE_COLUMNS)


@handle_cli_exceptions(context="fwrule get")
async def handle_fwrule_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_fwrule(args.fwrule))


@handle_cli_exceptions(context="fwrule create")
async def handle_fwrule_create(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        rule = api.cloudapi.create_firewall_rule(
            args.rule, enabled=not args.disabled, description=args.description
        )
    if args.json:
        emit_one(args, rule)
    else:
        print_success(f"Created firewall rule {rule['id']}")


@handle_cli_exceptions(context="fwrule enable")
async def handle_fwrule_enable(args: "argparse.Namespace") -> None:
    """Enable or disable firewall rules, depending on ``args.enable``."""
    verb = "Enabled" if args.enable else "Disabled"
    with api_from_args(args) as api:
        for query in args.fwrules:
            rule = api.set_fwrule_enabled(query, args.enable)
            print_success(f"{verb} firewall rule {rule['id']}")


@handle_cli_exceptions(context="fwrule delete")
async def handle_fwrule_delete(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        for query in args.fwrules:
            rule = api.delete_fwrule(query)
            print_success(f"Deleted rule {rule['id']}")
