"""Configuration and profile loading."""

from tritoncloud.config.loader import CliConfig, load_config, load_profile
from tritoncloud.config.profile import Profile

__all__ = ["CliConfig", "Profile", "load_config", "load_profile"]
