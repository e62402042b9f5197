"""Store access: sessions and typed entity operations."""

from gatesync.store.config_store import (
    ConfigStore,
    decode_resource,
    generate_resource_obj,
)
from gatesync.store.connection import StoreConnection

__all__ = [
    "ConfigStore",
    "StoreConnection",
    "decode_resource",
    "generate_resource_obj",
]
