"""Build a TritonApi from CLI arguments."""

import getpass
import sys
from typing import TYPE_CHECKING, Any, Optional

from tritoncloud.config.loader import CliConfig, load_config, load_profile
from tritoncloud.config.profile import Profile
from tritoncloud.exceptions import KeyLockedError
from tritoncloud.tritonapi import TritonApi

if TYPE_CHECKING:
    import argparse


def profile_from_args(args: "argparse.Namespace", config: Optional[CliConfig] = None) -> Profile:
    """Load the selected profile and apply ``--accept-version``/``--insecure``."""
    config = config or load_config()
    profile = load_profile(getattr(args, "profile", None), config)
    overrides: dict[str, Any] = {}
    if getattr(args, "accept_version", None):
        overrides["accept_version"] = args.accept_version
    if getattr(args, "insecure", False):
        overrides["insecure"] = True
    if overrides:
        profile = profile.model_copy(update=overrides)
    return profile


def unlock_if_needed(api: TritonApi) -> None:
    """Prompt for the key passphrase when the key is locked and stdin is a TTY."""
    key_pair = api.key_pair
    if not key_pair.is_locked:
        return
    if not sys.stdin.isatty():
        raise KeyLockedError(f"key {key_pair.source} is locked and no terminal is available for a passphrase")
    passphrase = getpass.getpass(f"Enter passphrase for {key_pair.source}: ")
    api.unlock_key(passphrase)


def api_from_args(args: "argparse.Namespace") -> TritonApi:
    """A ready-to-sign TritonApi for the selected profile."""
    config = load_config()
    profile = profile_from_args(args, config)
    api = TritonApi(profile, config=config)
    unlock_if_needed(api)
    return api
