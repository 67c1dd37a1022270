"""Handlers for account, RBAC role tags, profiles, the change feed and raw requests."""

import asyncio
import json
from typing import TYPE_CHECKING, Any

from tritoncloud.cli.console import print_info, print_json, print_success, print_warning
from tritoncloud.cli.context import api_from_args
from tritoncloud.cli.decorators import handle_cli_exceptions
from tritoncloud.cli.output import emit_list, emit_one
from tritoncloud.client.cloudapi import UPDATE_ACCOUNT_FIELDS
from tritoncloud.config.loader import list_profiles, load_config, load_profile
from tritoncloud.exceptions import UsageError
from tritoncloud.logger import get_logger
from tritoncloud.utils.kv import kv_to_obj

if TYPE_CHECKING:
    import argparse

logger = get_logger(__name__)


# ---- account


@handle_cli_exceptions(context="account get")
async def handle_account_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_one(args, api.cloudapi.get_account())


@handle_cli_exceptions(context="account limits")
async def handle_account_limits(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        emit_list(args, api.cloudapi.get_account_limits(), ["used", "limit", "check", "by"])


@handle_cli_exceptions(context="account update")
async def handle_account_update(args: "argparse.Namespace") -> None:
    """Update account attributes from ``FIELD=VALUE`` arguments."""
    fields = kv_to_obj(
        args.fields,
        type_hints=UPDATE_ACCOUNT_FIELDS,
        valid_keys=UPDATE_ACCOUNT_FIELDS,
        disable_dotted=True,
    )
    if not fields:
        raise UsageError("no fields to update were given")
    with api_from_args(args) as api:
        api.cloudapi.update_account(**fields)
    print_success(f"Updated account ({', '.join(sorted(fields))})")


# ---- RBAC role tags


@handle_cli_exceptions(context="rbac role-tags get")
async def handle_role_tags_get(args: "argparse.Namespace") -> None:
    with api_from_args(args) as api:
        role_tags = api.get_role_tags(args.kind, args.id)
    if args.json:
        print_json(role_tags)
    else:
        for role in role_tags:
            print(role)


@handle_cli_exceptions(context="rbac role-tags set")
async def handle_role_tags_set(args: "argparse.Namespace") -> None:
    """Replace the role tags on a resource; no roles clears them."""
    with api_from_args(args) as api:
        api.set_role_tags(args.kind, args.id, args.roles)
    print_success(f"Set role tags on {args.kind} {args.id}: {', '.join(args.roles) or '(none)'}")


# ---- change feed


def _format_change(change: dict[str, Any]) -> str:
    kind = change.get("changeKind") or {}
    return "{}  {}  {}  {}".format(
        change.get("published", "-"),
        change.get("changedResourceId", "-"),
        change.get("resourceState", "-"),
        ",".join(kind.get("subResources") or []),
    )


@handle_cli_exceptions(context="changefeed")
async def handle_changefeed(args: "argparse.Namespace") -> None:
    """
    Print VM changes until interrupted.

    Messages are read on a worker thread so that Ctrl-C cancels the wait; the
    socket is then closed and the command exits successfully.
    """
    with api_from_args(args) as api:
        feed = api.change_feed(args.instances)
        try:
            feed.open()
            if not args.json:
                print_warning("Listening for changes (Ctrl-C to stop)")
            messages = iter(feed)
            while True:
                change = await asyncio.to_thread(next, messages, None)
                if change is None:
                    break
                if args.json:
                    print(json.dumps(change), flush=True)
                else:
                    print_info(_format_change(change))
        except asyncio.CancelledError:
            logger.debug("change feed interrupted")
        finally:
            feed.close()


# ---- raw requests


@handle_cli_exceptions(context="cloudapi")
async def handle_cloudapi(args: "argparse.Namespace") -> None:
    """Signed request to an arbitrary CloudAPI path."""
    body = None
    if args.data is not None:
        text = args.data
        if text.startswith("@"):
            with open(text[1:], encoding="utf-8") as f:
                text = f.read()
        try:
            body = json.loads(text)
        except ValueError as e:
            raise UsageError(f"invalid JSON for -d: {e}", cause=e) from e

    with api_from_args(args) as api:
        res = api.cloudapi.request(args.method.upper(), args.path, body)

    if args.include:
        print(f"HTTP {res.status}")
        for name, value in res.headers.items():
            print(f"{name}: {value}")
        print()
    if res.body is not None:
        print_json(res.body)
    elif res.raw_body:
        print(res.raw_body.decode("utf-8", errors="replace"))


# ---- profiles


@handle_cli_exceptions(context="profile list")
async def handle_profile_list(args: "argparse.Namespace") -> None:
    config = load_config()
    current = config.profile
    rows = []
    for profile in list_profiles(config):
        row = profile.model_dump(by_alias=True, exclude={"priv_key"})
        row["current"] = "*" if profile.name == current else ""
        rows.append(row)
    emit_list(args, rows, ["current", "name", "account", "user", "url"], ["", "NAME", "ACCOUNT", "USER", "URL"])


@handle_cli_exceptions(context="profile get")
async def handle_profile_get(args: "argparse.Namespace") -> None:
    profile = load_profile(args.name or getattr(args, "profile", None), load_config())
    emit_one(args, profile.model_dump(by_alias=True, exclude={"priv_key"}))
