"""Load the CLI config file and profiles."""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tritoncloud.config.platform_dirs import get_cache_dir, get_config_dir
from tritoncloud.config.profile import Profile
from tritoncloud.constants import (
    CONFIG_FILENAME,
    DEFAULT_CACHE_DIR,
    DEFAULT_PROFILE_NAME,
    PROFILES_DIRNAME,
)
from tritoncloud.exceptions import ConfigError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)

_TRUE_VALUES = ("1", "true", "yes")


class CliConfig(BaseModel):
    """Contents of ``config.json`` plus where it was found."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    config_dir: Path = Field(..., description="User configuration directory")
    profile: Optional[str] = Field(None, description="Current profile name")
    cache_dir: str = Field(
        DEFAULT_CACHE_DIR, alias="cacheDir", description="Cache root, relative to config_dir"
    )

    def cache_dir_for(self, profile: Profile) -> Path:
        return get_cache_dir(self.config_dir, self.cache_dir, profile.account, profile.url)

    @property
    def profiles_dir(self) -> Path:
        return self.config_dir / PROFILES_DIRNAME


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise ConfigError(f'invalid JSON in "{path}": {e}', cause=e) from e
    if not isinstance(data, dict):
        raise ConfigError(f'"{path}" does not hold a JSON object')
    return data


def load_config(config_dir: Optional[Path] = None) -> CliConfig:
    """Read ``config.json`` from the config directory. A missing file is not an error."""
    config_dir = Path(config_dir) if config_dir else get_config_dir()
    path = config_dir / CONFIG_FILENAME
    data = _read_json(path) if path.exists() else {}
    logger.debug("loaded config", path=str(path), exists=path.exists())
    try:
        return CliConfig(config_dir=config_dir, **data)
    except ValidationError as e:
        raise ConfigError(f'invalid config in "{path}": {e}', cause=e) from e


def _env(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        if env.get(name):
            return env[name]
    return None


def profile_from_env(env: Optional[Mapping[str, str]] = None) -> Profile:
    """Build the ``env`` profile from TRITON_* (or legacy SDC_*) variables."""
    env = os.environ if env is None else env
    insecure = _env(env, "TRITON_TLS_INSECURE", "SDC_TLS_INSECURE") or ""
    data = {
        "name": DEFAULT_PROFILE_NAME,
        "url": _env(env, "TRITON_URL", "SDC_URL"),
        "account": _env(env, "TRITON_ACCOUNT", "SDC_ACCOUNT"),
        "user": _env(env, "TRITON_USER", "SDC_USER"),
        "keyId": _env(env, "TRITON_KEY_ID", "SDC_KEY_ID"),
        "insecure": insecure.lower() in _TRUE_VALUES,
        "acceptVersion": _env(env, "TRITON_ACCEPT_VERSION"),
    }
    missing = [k for k in ("url", "account", "keyId") if not data[k]]
    if missing:
        raise ConfigError(
            "incomplete 'env' profile: missing TRITON_URL, TRITON_ACCOUNT or "
            f"TRITON_KEY_ID ({', '.join(missing)})"
        )
    return Profile(**data)


def _profile_from_file(path: Path, name: str) -> Profile:
    data = _read_json(path)
    data.setdefault("name", name)
    try:
        return Profile(**data)
    except ValidationError as e:
        raise ConfigError(f'invalid profile "{name}" in "{path}": {e}', cause=e) from e


def list_profiles(config: CliConfig, env: Optional[Mapping[str, str]] = None) -> list[Profile]:
    """All loadable profiles: ``env`` when complete, then profile files by name."""
    profiles = []
    try:
        profiles.append(profile_from_env(env))
    except ConfigError:
        logger.debug("no usable env profile")
    if config.profiles_dir.is_dir():
        for path in sorted(config.profiles_dir.glob("*.json")):
            profiles.append(_profile_from_file(path, path.stem))
    return profiles


def load_profile(
    name: Optional[str] = None,
    config: Optional[CliConfig] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Profile:
    """
    Load a profile by name.

    Selection order is ``name``, then ``TRITON_PROFILE``, then the config's
    current profile, then ``env``.

    Raises:
        ConfigError: When the profile does not exist or is invalid
    """
    env = os.environ if env is None else env
    config = config or load_config()
    name = name or env.get("TRITON_PROFILE") or config.profile or DEFAULT_PROFILE_NAME

    if name == DEFAULT_PROFILE_NAME:
        return profile_from_env(env)

    path = config.profiles_dir / f"{name}.json"
    if not path.exists():
        raise ConfigError(f'no such profile: "{name}"')
    return _profile_from_file(path, name)
