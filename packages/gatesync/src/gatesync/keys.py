"""Resource key codec and store key constants.

Redis key structure:
    apis                                  -> HASH  {api id: API JSON}
    tenants                               -> HASH  {tenant id: tenant JSON}
    resources:{tenantId}:{gatewayPath}    -> HASH  {"resources": Resource JSON}
    {subscription key}                    -> STRING ""

The gateway path is the API basePath (leading "/" stripped) followed by the
resource sub-path, stored unescaped. Artifacts on disk are named with the
percent-escaped form so every path maps to one flat file name.

Keyspace notifications arrive on channels of the form
    __keyspace@{db}__:resources:{tenantId}:{gatewayPath}
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, unquote

APIS_KEY = "apis"
TENANTS_KEY = "tenants"
RESOURCE_KEY_PREFIX = "resources"
KEY_SEPARATOR = ":"
KEYSPACE_CHANNEL_PREFIX = "__keyspace@"


@dataclass(frozen=True)
class ResourceKey:
    """A parsed resource key."""

    tenant_id: str
    gateway_path: str

    @property
    def key(self) -> str:
        return resource_key(self.tenant_id, self.gateway_path)

    @property
    def artifact_name(self) -> str:
        return escape_path(self.gateway_path)


def escape_path(path: str) -> str:
    """Percent-escape a path so it is a single opaque segment."""
    return quote(path, safe="")


def unescape_path(path: str) -> str:
    return unquote(path)


def gateway_path(base_path: str, path: str) -> str:
    """Build the gateway path for a resource sub-path of an API."""
    return unescape_path(base_path.removeprefix("/") + escape_path(path))


def resource_key(tenant_id: str, gateway_path: str) -> str:
    """Build the resource hash key."""
    return KEY_SEPARATOR.join([RESOURCE_KEY_PREFIX, tenant_id, gateway_path])


def resource_pattern() -> str:
    """SCAN pattern for every resource key."""
    return resource_key("*", "*")


def keyspace_pattern(db: int = 0) -> str:
    """PSUBSCRIBE pattern for keyspace notifications on resource keys."""
    return f"{KEYSPACE_CHANNEL_PREFIX}{db}__{KEY_SEPARATOR}{resource_pattern()}"


def parse_resource_key(key: str) -> ResourceKey:
    """
    Split ``resources:<tenantId>:<gatewayPath>`` into its parts.

    The gateway path keeps any further separators verbatim.

    Raises:
        ValueError: If the key is not a resource key.
    """
    parts = key.split(KEY_SEPARATOR, 2)
    if len(parts) != 3 or parts[0] != RESOURCE_KEY_PREFIX or not parts[1] or not parts[2]:
        raise ValueError(f"Not a resource key: {key!r}")
    return ResourceKey(tenant_id=parts[1], gateway_path=parts[2])


def parse_notification(channel: str) -> ResourceKey:
    """
    Extract the resource key from a keyspace notification channel.

    Segments are re-joined verbatim (no unescape) so the result addresses the
    same key the notification was raised for.

    Raises:
        ValueError: If the channel is not a resource keyspace channel.
    """
    if not channel.startswith(KEYSPACE_CHANNEL_PREFIX):
        raise ValueError(f"Not a keyspace channel: {channel!r}")
    _, _, key = channel.partition(KEY_SEPARATOR)
    return parse_resource_key(key)


__all__ = [
    "APIS_KEY",
    "KEY_SEPARATOR",
    "RESOURCE_KEY_PREFIX",
    "ResourceKey",
    "TENANTS_KEY",
    "escape_path",
    "gateway_path",
    "keyspace_pattern",
    "parse_notification",
    "parse_resource_key",
    "resource_key",
    "resource_pattern",
    "unescape_path",
]
