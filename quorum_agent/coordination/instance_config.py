"""
Cluster Configuration Model

The shared cluster configuration is a set of scalar values keyed by two fixed
enumerations: string-valued keys and integer-valued keys. An InstanceConfig is
an immutable snapshot layered over a defaults mapping, so every recognized key
always resolves to a value.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union

logger = logging.getLogger(__name__)

PROPERTY_PREFIX = "quorum-agent."


class StringConfigs(str, Enum):
    """String-valued configuration keys."""

    INSTALL_DIRECTORY = "install-directory"
    STARTUP_LEVEL = "startup-level"
    DATA_DIRECTORY = "data-directory"
    LOG_DIRECTORY = "log-directory"
    SERVERS_SPEC = "servers-spec"
    EXTRA_PROPERTIES = "extra-properties"
    AUXILIARY_INSTALL_DIRECTORY = "auxiliary-install-directory"
    JAVA_ENVIRONMENT = "java-environment"
    LOG4J_PROPERTIES = "log4j-properties"


class IntConfigs(str, Enum):
    """Integer-valued configuration keys."""

    CLIENT_PORT = "client-port"
    CONNECT_PORT = "connect-port"
    ELECTION_PORT = "election-port"
    AUXILIARY_ENABLED = "auxiliary-enabled"
    CHECK_MS = "check-ms"
    CLEANUP_PERIOD_MS = "cleanup-period-ms"
    CLEANUP_MAX_FILES = "cleanup-max-files"
    OBSERVER_THRESHOLD = "observer-threshold"
    AUTO_MANAGE_INSTANCES = "auto-manage-instances"


ConfigKey = Union[StringConfigs, IntConfigs]
ConfigValue = Union[str, int]

ALL_KEYS = tuple(StringConfigs) + tuple(IntConfigs)

DEFAULT_PROPERTIES: Mapping[ConfigKey, ConfigValue] = MappingProxyType(
    {
        StringConfigs.INSTALL_DIRECTORY: "",
        StringConfigs.STARTUP_LEVEL: "zookeeper",
        StringConfigs.DATA_DIRECTORY: "",
        StringConfigs.LOG_DIRECTORY: "",
        StringConfigs.SERVERS_SPEC: "",
        StringConfigs.EXTRA_PROPERTIES: "syncLimit=5&tickTime=2000&initLimit=10",
        StringConfigs.AUXILIARY_INSTALL_DIRECTORY: "",
        StringConfigs.JAVA_ENVIRONMENT: "",
        StringConfigs.LOG4J_PROPERTIES: "",
        IntConfigs.CLIENT_PORT: 2181,
        IntConfigs.CONNECT_PORT: 2888,
        IntConfigs.ELECTION_PORT: 3888,
        IntConfigs.AUXILIARY_ENABLED: 0,
        IntConfigs.CHECK_MS: 30000,
        IntConfigs.CLEANUP_PERIOD_MS: 12 * 60 * 60 * 1000,
        IntConfigs.CLEANUP_MAX_FILES: 3,
        IntConfigs.OBSERVER_THRESHOLD: 0,
        IntConfigs.AUTO_MANAGE_INSTANCES: 0,
    }
)


def property_name(key: ConfigKey) -> str:
    """Name of a key inside the stored properties text."""
    return f"{PROPERTY_PREFIX}{key.value}"


def key_for_property(name: str) -> Optional[ConfigKey]:
    """Map a stored property name (or a bare key name) back to its key."""
    if name.startswith(PROPERTY_PREFIX):
        name = name[len(PROPERTY_PREFIX) :]
    for key in ALL_KEYS:
        if key.value == name:
            return key
    return None


def normalize_key(key: Any) -> ConfigKey:
    """Accept a key enum member, its value, or its stored property name."""
    if isinstance(key, (StringConfigs, IntConfigs)):
        return key
    resolved = key_for_property(str(key))
    if resolved is None:
        raise KeyError(f"Unknown config key: {key!r}")
    return resolved


def _coerce_int(key: IntConfigs, value: Any, fallback: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        logger.warning(f"Config value for '{key.value}' is not an integer: {value!r}; using {fallback!r}")
        try:
            return int(fallback)
        except (TypeError, ValueError):
            return 0


class InstanceConfig:
    """Immutable mapping of config keys to values, layered over defaults."""

    __slots__ = ("_values", "_defaults")

    def __init__(
        self,
        values: Optional[Mapping[ConfigKey, Any]] = None,
        defaults: Optional[Mapping[ConfigKey, Any]] = None,
    ):
        merged_defaults = dict(DEFAULT_PROPERTIES)
        for key, value in (defaults or {}).items():
            merged_defaults[normalize_key(key)] = value
        self._defaults = MappingProxyType(merged_defaults)

        explicit = {}
        for key, value in (values or {}).items():
            if value is not None:
                explicit[normalize_key(key)] = value
        self._values = MappingProxyType(explicit)

    @classmethod
    def from_properties(
        cls, properties: Mapping[str, str], defaults: Optional[Mapping[ConfigKey, Any]] = None
    ) -> 'InstanceConfig':
        """Build a config from parsed properties text; unknown names are ignored."""
        values = {}
        for name, value in properties.items():
            key = key_for_property(name)
            if key is None:
                logger.debug(f"Ignoring unknown config property '{name}'")
                continue
            values[key] = value
        return cls(values, defaults)

    @property
    def defaults(self) -> Mapping[ConfigKey, Any]:
        return self._defaults

    def is_explicit(self, key: ConfigKey) -> bool:
        return key in self._values

    def get_string(self, key: StringConfigs) -> str:
        value = self._values.get(key, self._defaults.get(key, ""))
        return "" if value is None else str(value)

    def get_int(self, key: IntConfigs) -> int:
        default = self._defaults.get(key, 0)
        if key in self._values:
            return _coerce_int(key, self._values[key], default)
        return _coerce_int(key, default, 0)

    def get(self, key: ConfigKey) -> ConfigValue:
        if isinstance(key, IntConfigs):
            return self.get_int(key)
        return self.get_string(key)

    def resolved(self) -> Dict[ConfigKey, ConfigValue]:
        """Every recognized key with its effective value."""
        return {key: self.get(key) for key in ALL_KEYS}

    def to_properties(self) -> Dict[str, str]:
        return {property_name(key): str(value) for key, value in self.resolved().items()}

    def with_values(self, changes: Mapping[ConfigKey, Any]) -> 'InstanceConfig':
        """Return a new config with some values replaced."""
        values = dict(self._values)
        for key, value in changes.items():
            values[normalize_key(key)] = value
        return InstanceConfig(values, self._defaults)

    def __iter__(self) -> Iterator[ConfigKey]:
        return iter(ALL_KEYS)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InstanceConfig):
            return NotImplemented
        return self.resolved() == other.resolved()

    def __hash__(self) -> int:
        return hash(tuple(sorted((key.value, str(value)) for key, value in self.resolved().items())))

    def __repr__(self) -> str:
        explicit = ", ".join(f"{key.value}={value!r}" for key, value in self._values.items())
        return f"InstanceConfig({explicit})"


@dataclass(frozen=True)
class LoadedInstanceConfig:
    """A config plus the storage version it was read at (0 = nothing stored yet).

    ``etag`` is the stored content's entity tag when the store reports one.
    """

    config: InstanceConfig
    version: int
    etag: Optional[str] = None
