"""
Process Supervision Data Models

Defines the managed process kinds, their lifecycle states and the records the
supervisor produces.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ProcessKind(str, Enum):
    """Managed process kinds"""

    PRIMARY = "primary"
    AUXILIARY = "auxiliary"


class ProcessState(str, Enum):
    """Lifecycle state of a managed process kind"""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class ProcessHandle:
    """A spawned process registered with the monitor"""

    kind: ProcessKind
    process: asyncio.subprocess.Process
    running: bool = True
    started_at: float = field(default_factory=time.time)
    command: str = ""

    @property
    def pid(self) -> Optional[int]:
        return getattr(self.process, "pid", None)

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'pid': self.pid,
            'running': self.running,
            'started_at': self.started_at,
            'command': self.command,
        }


@dataclass
class KillReport:
    """Outcome of stopping one process kind"""

    kind: ProcessKind
    process_name: str
    found: bool = False
    pid: Optional[int] = None
    stopped: bool = False
    graceful_attempts: int = 0
    forced_attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'process_name': self.process_name,
            'found': self.found,
            'pid': self.pid,
            'stopped': self.stopped,
            'graceful_attempts': self.graceful_attempts,
            'forced_attempts': self.forced_attempts,
        }
