"""
Command execution backends

The supervisor runs the service's control scripts (start, stop, forced kill)
and the process probe runs a listing command. Both go through a CommandRunner,
so tests can record the commands instead of executing them.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ExecutionStatus(Enum):
    """How a command run to completion ended"""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class ExecutionResult:
    """Outcome of a command run to completion"""

    status: ExecutionStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    execution_time: float = 0.0
    command: str = ""
    working_directory: str = ""
    pid: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS and self.exit_code == 0


@dataclass
class ExecutionConfig:
    """One command: an argument vector (no shell), where to run it and for how long.

    Output is piped to the caller unless ``output_file`` is set, in which case
    stdout and stderr are appended to that file. Control scripts that leave a
    daemon behind need the file: the daemon inherits the streams, and a pipe it
    holds open would keep the script looking alive after it has exited.
    """

    command: List[str]
    working_directory: Optional[str] = None
    timeout: float = 30
    environment: Dict[str, str] = field(default_factory=dict)
    output_file: Optional[str] = None

    def __post_init__(self):
        if not self.command:
            raise ValueError("ExecutionConfig requires a non-empty command")
        self.command = [str(part) for part in self.command]

    @property
    def command_line(self) -> str:
        return " ".join(self.command)


class CommandRunner(ABC):
    """Launches commands on behalf of the supervisor and the probe"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @abstractmethod
    async def spawn(self, exec_config: ExecutionConfig) -> asyncio.subprocess.Process:
        """Start a command and return the running process without waiting for it"""

    @abstractmethod
    async def run(self, exec_config: ExecutionConfig) -> ExecutionResult:
        """Run a command to completion, bounded by its timeout"""
