"""Platform-specific directory detection for tritoncloud configuration."""

import os
import re
import sys
from pathlib import Path
from urllib.parse import urlparse


def is_windows() -> bool:
    """Check if running on Windows."""
    return sys.platform.startswith("win")


def get_config_dir() -> Path:
    """Get the user configuration directory.

    Priority:
    1. TRITONTEST_CLI_CONFIG_DIR environment variable (test override)
    2. Windows: %APPDATA%/Joyent/Triton
    3. Fallback: ~/.triton
    """
    if env_dir := os.environ.get("TRITONTEST_CLI_CONFIG_DIR"):
        return Path(env_dir)

    if is_windows() and (appdata := os.environ.get("APPDATA")):
        return Path(appdata) / "Joyent" / "Triton"

    return Path.home() / ".triton"


def profile_slug(account: str, url: str) -> str:
    """Filesystem-safe name for a profile's cache directory."""
    host = urlparse(url).netloc or url
    return re.sub(r"[^A-Za-z0-9@._-]", "_", f"{account}@{host}")


def get_cache_dir(config_dir: Path, cache_dir: str, account: str, url: str) -> Path:
    """Get the per-profile artifact cache directory."""
    return (config_dir / cache_dir / profile_slug(account, url)).resolve()
