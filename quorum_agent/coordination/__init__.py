# Coordination Package
# Shared cluster configuration, the pseudo-lock and the membership view

from .config_store import EPOCH_VERSION, ConfigStore
from .encoded import EncodedConfigParser, FieldValue
from .instance_config import (
    ALL_KEYS,
    DEFAULT_PROPERTIES,
    InstanceConfig,
    IntConfigs,
    LoadedInstanceConfig,
    StringConfigs,
    normalize_key,
    property_name,
)
from .membership import ServerList, ServerSpec, ServerType, UsState
from .properties import dump_properties, load_properties
from .pseudo_lock import LockHandle, LockMarker, LockResult, LockStatus, PseudoLock

__all__ = [
    "ConfigStore",
    "EPOCH_VERSION",
    "EncodedConfigParser",
    "FieldValue",
    "InstanceConfig",
    "LoadedInstanceConfig",
    "StringConfigs",
    "IntConfigs",
    "ALL_KEYS",
    "DEFAULT_PROPERTIES",
    "normalize_key",
    "property_name",
    "ServerList",
    "ServerSpec",
    "ServerType",
    "UsState",
    "load_properties",
    "dump_properties",
    "PseudoLock",
    "LockMarker",
    "LockHandle",
    "LockResult",
    "LockStatus",
]
