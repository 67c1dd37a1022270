"""Shared constants."""

# Accept-Version sent when the profile does not pin one.
DEFAULT_ACCEPT_VERSION = "~8||~7"

# PollWaiter default interval, in seconds.
DEFAULT_POLL_INTERVAL = 2.0

# ListMachines page size.
MACHINES_PAGE_LIMIT = 1000

# Artifact cache.
DEFAULT_CACHE_DIR = "cache"
IMAGES_CACHE_KEY = "images.json"
IMAGES_CACHE_TTL = 300

DEFAULT_PROFILE_NAME = "env"
CONFIG_FILENAME = "config.json"
PROFILES_DIRNAME = "profiles.d"

# Resource kinds that accept role tags, keyed by the path segment.
ROLE_TAG_RESOURCE_TYPES = frozenset(
    [
        "machines",
        "packages",
        "images",
        "fwrules",
        "networks",
        "users",
        "roles",
        "policies",
        "keys",
        "datacenters",
        "volumes",
        "vpcs",
    ]
)

# Sub-resources subscribed to on the change feed.
CHANGEFEED_SUB_RESOURCES = [
    "alias",
    "customer_metadata",
    "destroyed",
    "nics",
    "owner_uuid",
    "server_uuid",
    "state",
    "tags",
]

# CLI exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_NOT_FOUND = 3
EXIT_INTERRUPTED = 130
