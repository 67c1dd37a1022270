"""Instance command handlers."""

from typing import TYPE_CHECKING

from tritoncloud.cli.console import print_info, print_success
from tritoncloud.cli.context import api_from_args
from tritoncloud.cli.decorators import handle_cli_exceptions
from tritoncloud.cli.output import age, emit_list, emit_one, with_short_ids
from tritoncloud.client.vnc import serve_vnc
from tritoncloud.exceptions import UsageError
from tritoncloud.utils.kv import kv_to_obj, metadata_from_args, tags_from_args

if TYPE_CHECKING:
    import argparse

INSTANCE_COLUMNS = ["shortid", "name", "image", "state", "primaryIp", "age"]
SNAPSHOT_COLUMNS = ["name", "state", "created"]
NIC_COLUMNS = ["ip", "mac", "state", "network", "primary"]
DISK_COLUMNS = ["shortid", "size", "state", "pci_slot", "boot"]


def _done(args: "argparse.Namespace", verb: str, inst: dict) -> None:
    label = inst.get("name") or inst.get("id")
    if args.wait:
        print_success(f"{verb} instance {label}")
    else:
        print_info(f"{verb} (async) instance {label}")


@handle_cli_exceptions(context="instance list")
async def handle_instance_list(args: "argparse.Namespace") -> None:
    """List instances, optionally filtered by ``key=value`` arguments."""
    with api_from_args(args) as api:
        filters = kv_to_obj(args.filters, disable_dotted=True) if args.filters else {}
        instances = api.cloudapi.list_machines(**filters)
    rows = [{**inst, "age": age(inst.get("created"))} for inst in with_short_ids(instances)]
    emit_list(args, instances if args.json else rows, INSTANCE_COLUMNS)


@handle_cli_exceptions(context="instance get")
async def handle_instance_get(args: "argparse.Namespace") -> None:
    """Show one instance."""
    with api_from_args(args) as api:
        emit_one(args, api.get_instance(args.instance, fields=["dns_names"]))


@handle_cli_exceptions(context="instance create")
async def handle_instance_create(args: "argparse.Namespace") -> None:
    """Create an instance from an image and package."""
    tags = tags_from_args(args.tags or [])
    metadata = metadata_from_args(args.metadata or [], args.metadata_files or [], args.script)
    with api_from_args(args) as api:
        inst = api.create_instance(
            args.image,
            args.package,
            name=args.name,
            networks=args.networks,
            tags=tags or None,
            metadata=metadata or None,
            affinity=args.affinity,
            firewall_enabled=True if args.firewall else None,
            deletion_protection=True if args.deletion_protection else None,
            wait=args.wait,
            wait_timeout=args.wait_timeout,
        )
    if args.json:
        emit_one(args, inst)
    else:
        _done(args, "Created", inst)


async def _fan_out(args: "argparse.Namespace", method: str, verb: str) -> None:
    with api_from_args(args) as api:
        results = await getattr(api, method)(args.instances, wait=args.wait, wait_timeout=args.wait_timeout)
    for inst in results:
        _done(args, verb, inst)


@handle_cli_exceptions(context="instance start")
async def handle_instance_start(args: "argparse.Namespace") -> None:
    await _fan_out(args, "start_instances", "Started" if args.wait else "Start")


@handle_cli_exceptions(context="instance stop")
async def handle_instance_stop(args: "argparse.Namespace") -> None:
    await _fan_out(args, "stop_instances", "Stopped" if args.wait else "Stop")


@handle_cli_exceptions(context="instance reboot")
async def handle_instance_reboot(args: "argparse.Namespace") -> None:
    await _fan_out(args, "reboot_instances", "Rebooted" if args.wait else "Reboot")


@handle_cli_exceptions(context="instance delete")
async def handle_instance_delete(args: "argparse.Namespace") -> None:
    await _fan_out(args, "delete_instances", "Deleted" if args.wait else "Delete")


@handle_cli_exceptions(context="instance rename")
async def handle_instance_rename(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        inst = api.rename_instance(args.instance, args.name, wait=args.wait, wait_timeout=args.wait_timeout)
    if args.wait:
        print_success(f"Renamed instance {inst['id']} to {args.name}")
    else:
        print_info(f"Rename (async) instance {inst['id']} to {args.name}")


@handle_cli_exceptions(context="instance resize")
async def handle_instance_resize(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        inst = api.resize_instance(args.instance, args.package, wait=args.wait, wait_timeout=args.wait_timeout)
    _done(args, "Resized" if args.wait else "Resize", inst)


@handle_cli_exceptions(context="instance firewall")
async def handle_instance_firewall(args: "argparse.Namespace") -> None:
    """Enable or disable the firewall on one or more instances."""
    verb = "Enabled firewall for" if args.enable else "Disabled firewall for"
    with api_from_args(args) as api:
        for query in args.instances:
            inst = api.set_instance_firewall(query, args.enable, wait=args.wait, wait_timeout=args.wait_timeout)
            print_success(f"{verb} instance {inst.get('name') or inst['id']}")


@handle_cli_exceptions(context="instance deletion-protection")
async def handle_instance_deletion_protection(args: "argparse.Namespace") -> None:
    verb = "Enabled deletion protection for" if args.enable else "Disabled deletion protection for"
    with api_from_args(args) as api:
        for query in args.instances:
            inst = api.set_instance_deletion_protection(
                query, args.enable, wait=args.wait, wait_timeout=args.wait_timeout
            )
            print_success(f"{verb} instance {inst.get('name') or inst['id']}")


@handle_cli_exceptions(context="instance audit")
async def handle_instance_audit(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        records = api.cloudapi.machine_audit(api.get_instance(args.instance)["id"])
    emit_list(args, records, ["time", "action", "success", "caller"])


@handle_cli_exceptions(context="instance fwrules")
async def handle_instance_fwrules(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        rules = api.list_instance_fwrules(args.instance)
    emit_list(args, with_short_ids(rules), ["shortid", "enabled", "global", "rule"])


# ---- tags


@handle_cli_exceptions(context="instance tag list")
async def handle_instance_tag_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.list_instance_tags(args.instance))


@handle_cli_exceptions(context="instance tag get")
async def handle_instance_tag_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_instance_tag(args.instance, args.key))


@handle_cli_exceptions(context="instance tag set")
async def handle_instance_tag_set(args: "argparse.Namespace") -> None:
    """Add or update tags; prints the resulting tag set."""
    tags = tags_from_args(args.tags)
    if not tags:
        raise UsageError("no tags were provided")
    with api_from_args(args) as api:
        if args.replace:
            result = api.replace_instance_tags(args.instance, tags, wait=args.wait, wait_timeout=args.wait_timeout)
        else:
            result = api.set_instance_tags(args.instance, tags, wait=args.wait, wait_timeout=args.wait_timeout)
    emit_one(args, result)


@handle_cli_exceptions(context="instance tag delete")
async def handle_instance_tag_delete(args: "argparse.Namespace") -> None:
    if args.all and args.keys:
        raise UsageError("cannot specify both tag names and --all")
    if not args.all and not args.keys:
        raise UsageError("give tag names to delete, or --all")
    with api_from_args(args) as api:
        if args.all:
            api.delete_all_instance_tags(args.instance, wait=args.wait, wait_timeout=args.wait_timeout)
            print_success(f"Deleted all tags on instance {args.instance}")
            return
        api.delete_instance_tags(args.instance, args.keys, wait=args.wait, wait_timeout=args.wait_timeout)
    for key in args.keys:
        print_success(f'Deleted tag "{key}" on instance {args.instance}')


# ---- snapshots


@handle_cli_exceptions(context="instance snapshot create")
async def handle_instance_snapshot_create(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        snapshot = api.create_instance_snapshot(
            args.instance, args.name, wait=args.wait, wait_timeout=args.wait_timeout
        )
    if args.json:
        emit_one(args, snapshot)
    elif args.wait:
        print_success(f'Created snapshot "{snapshot["name"]}"')
    else:
        print_info(f'Creating snapshot "{snapshot["name"]}"')


@handle_cli_exceptions(context="instance snapshot list")
async def handle_instance_snapshot_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_list(args, api.list_instance_snapshots(args.instance), SNAPSHOT_COLUMNS)


@handle_cli_exceptions(context="instance snapshot get")
async def handle_instance_snapshot_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_instance_snapshot(args.instance, args.name))


@handle_cli_exceptions(context="instance snapshot delete")
async def handle_instance_snapshot_delete(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        for name in args.names:
            api.delete_instance_snapshot(args.instance, name, wait=args.wait, wait_timeout=args.wait_timeout)
            print_success(f'Deleted snapshot "{name}"' if args.wait else f'Deleting snapshot "{name}"')


@handle_cli_exceptions(context="instance start-from-snapshot")
async def handle_instance_start_from_snapshot(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        inst = api.start_instance_from_snapshot(
            args.instance, args.name, wait=args.wait, wait_timeout=args.wait_timeout
        )
    _done(args, "Started" if args.wait else "Start", inst)


# ---- NICs


@handle_cli_exceptions(context="instance nic add")
async def handle_instance_nic_add(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        nic = api.add_nic(
            args.instance, args.network, primary=args.primary or None, wait=args.wait, wait_timeout=args.wait_timeout
        )
    if args.json:
        emit_one(args, nic)
    else:
        print_success(f"Created NIC {nic['mac']}")


@handle_cli_exceptions(context="instance nic list")
async def handle_instance_nic_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_list(args, api.list_nics(args.instance), NIC_COLUMNS)


@handle_cli_exceptions(context="instance nic get")
async def handle_instance_nic_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_nic(args.instance, args.mac))


@handle_cli_exceptions(context="instance nic remove")
async def handle_instance_nic_remove(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        api.remove_nic(args.instance, args.mac)
    print_success(f"Deleted NIC {args.mac}")


# ---- disks


@handle_cli_exceptions(context="instance disk add")
async def handle_instance_disk_add(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        disk = api.add_instance_disk(args.instance, args.size, wait=args.wait, wait_timeout=args.wait_timeout)
    if args.json and disk:
        emit_one(args, disk)
    elif args.wait:
        print_success(f'Added disk "{disk["id"]}" to instance {args.instance}')
    else:
        print_info(f"Adding disk to instance {args.instance}")


@handle_cli_exceptions(context="instance disk list")
async def handle_instance_disk_list(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        disks = api.list_instance_disks(args.instance)
    emit_list(args, disks if args.json else with_short_ids(disks), DISK_COLUMNS)


@handle_cli_exceptions(context="instance disk get")
async def handle_instance_disk_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.get_instance_disk(args.instance, args.disk))


@handle_cli_exceptions(context="instance disk resize")
async def handle_instance_disk_resize(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        api.resize_instance_disk(
            args.instance,
            args.disk,
            args.size,
            dangerous_allow_shrink=args.dangerous_allow_shrink,
            wait=args.wait,
            wait_timeout=args.wait_timeout,
        )
    if args.wait:
        print_success(f'Resized disk "{args.disk}" to {args.size} MiB')
    else:
        print_info(f'Resizing disk "{args.disk}"')


@handle_cli_exceptions(context="instance disk delete")
async def handle_instance_disk_delete(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        api.delete_instance_disk(args.instance, args.disk, wait=args.wait, wait_timeout=args.wait_timeout)
    print_success(f'Deleted disk "{args.disk}"' if args.wait else f'Deleting disk "{args.disk}"')


# ---- VNC


@handle_cli_exceptions(context="instance vnc")
async def handle_instance_vnc(args: "argparse.Namespace") -> None:
    """Serve the instance's VNC console on a local port until the viewer disconnects."""
    with api_from_args(args) as api:
        with api.get_instance_vnc(args.instance) as console:
            await serve_vnc(
                console,
                port=args.port,
                on_listening=lambda port: print_info(f"Bound VNC server to vnc://127.0.0.1:{port}"),
            )
