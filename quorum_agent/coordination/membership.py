"""
Cluster Membership View

Read-only projection of an InstanceConfig into the ordered server list and this
host's own entry. Nothing here is cached: callers rebuild the view from the
config they just loaded, so it always reflects the latest load.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..utils.error_handling import MembershipError
from .instance_config import InstanceConfig, StringConfigs

logger = logging.getLogger(__name__)


class ServerType(Enum):
    """Role of a cluster member."""

    STANDARD = ("S", "")
    OBSERVER = ("O", ":observer")

    def __init__(self, code: str, config_suffix: str):
        self.code = code
        self.config_suffix = config_suffix

    @classmethod
    def from_code(cls, code: str) -> 'ServerType':
        for server_type in cls:
            if server_type.code == code.upper():
                return server_type
        raise ValueError(f"Unknown server type code: {code!r}")

    @property
    def is_participant(self) -> bool:
        return self is ServerType.STANDARD


@dataclass(frozen=True)
class ServerSpec:
    """One cluster member."""

    server_id: int
    hostname: str
    server_type: ServerType = ServerType.STANDARD

    def to_code(self) -> str:
        return f"{self.server_type.code}:{self.server_id}:{self.hostname}"


@dataclass(frozen=True)
class ServerList:
    """Ordered collection of cluster members with unique server ids.

    Encoded form: ``S:1:host-a,S:2:host-b,O:3:host-c``; the type code may be
    omitted (``1:host-a``), meaning a standard participant.
    """

    specs: Tuple[ServerSpec, ...] = ()

    def __post_init__(self):
        seen = set()
        for spec in self.specs:
            if spec.server_id in seen:
                raise MembershipError(f"Duplicate server id {spec.server_id}")
            seen.add(spec.server_id)

    @classmethod
    def parse(cls, encoded: str) -> 'ServerList':
        specs: List[ServerSpec] = []
        for raw in (encoded or "").split(","):
            item = raw.strip()
            if not item:
                continue

            parts = [part.strip() for part in item.split(":")]
            if len(parts) == 2:
                type_code, id_text, hostname = "S", parts[0], parts[1]
            elif len(parts) == 3:
                type_code, id_text, hostname = parts
            else:
                raise MembershipError(f"Malformed server entry '{item}'", encoded=encoded)

            try:
                server_type = ServerType.from_code(type_code)
                server_id = int(id_text)
            except ValueError as e:
                raise MembershipError(f"Malformed server entry '{item}': {e}", encoded=encoded) from e

            if server_id <= 0:
                raise MembershipError(f"Server id must be positive in '{item}'", encoded=encoded)
            if not hostname:
                raise MembershipError(f"Missing hostname in '{item}'", encoded=encoded)

            specs.append(ServerSpec(server_id, hostname, server_type))

        try:
            return cls(tuple(specs))
        except MembershipError as e:
            raise MembershipError(e.message, encoded=encoded) from e

    def encode(self) -> str:
        return ",".join(spec.to_code() for spec in self.specs)

    def find_by_hostname(self, hostname: str) -> Optional[ServerSpec]:
        wanted = hostname.lower()
        for spec in self.specs:
            if spec.hostname.lower() == wanted:
                return spec
        return None

    def find_by_id(self, server_id: int) -> Optional[ServerSpec]:
        for spec in self.specs:
            if spec.server_id == server_id:
                return spec
        return None

    @property
    def server_ids(self) -> List[int]:
        return [spec.server_id for spec in self.specs]

    def __len__(self) -> int:
        return len(self.specs)

    def __iter__(self):
        return iter(self.specs)


@dataclass(frozen=True)
class UsState:
    """This host's entry (None means standalone) plus the full member list."""

    config: InstanceConfig
    server_list: ServerList = field(default_factory=ServerList)
    us: Optional[ServerSpec] = None

    @classmethod
    def from_config(cls, config: InstanceConfig, hostname: str) -> 'UsState':
        encoded = config.get_string(StringConfigs.SERVERS_SPEC)
        try:
            server_list = ServerList.parse(encoded)
        except MembershipError as e:
            logger.error(f"Could not parse server list, running standalone: {e.message}")
            server_list = ServerList()

        us = server_list.find_by_hostname(hostname)
        if us is None and len(server_list):
            logger.info(f"Host '{hostname}' is not in the server list")

        return cls(config=config, server_list=server_list, us=us)

    @property
    def is_standalone(self) -> bool:
        return self.us is None

    def to_dict(self) -> Dict[str, object]:
        return {
            "us": self.us.to_code() if self.us else None,
            "servers": [
                {"id": spec.server_id, "hostname": spec.hostname, "type": spec.server_type.name.lower()}
                for spec in self.server_list
            ],
        }
