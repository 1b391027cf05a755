"""
Process Probes

Locate a managed process's OS pid by name. Two backends: an external listing
command whose output is ``pid name`` lines (``jps`` by default) and a psutil
scan of the local process table.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import psutil

from ..execution.base import CommandRunner, ExecutionConfig
from ..utils.error_handling import ProcessProbeError

logger = logging.getLogger(__name__)

_FIELD_SPLIT = re.compile(r"[ \t]")


class ProcessProbe(ABC):
    """Finds a process id by process name"""

    @abstractmethod
    async def find_pid(self, name: str) -> Optional[int]:
        """Return the pid of the first process called ``name``, or None"""
        pass


class CommandProcessProbe(ProcessProbe):
    """Probe backed by a listing command such as ``jps``"""

    def __init__(self, runner: CommandRunner, command: Optional[List[str]] = None, timeout: int = 30):
        self.runner = runner
        self.command = list(command or ["jps"])
        self.timeout = timeout

    @staticmethod
    def parse_listing(output: str, name: str) -> Optional[int]:
        """Find ``name`` in ``pid name`` lines; other line shapes are skipped."""
        for line in output.splitlines():
            components = _FIELD_SPLIT.split(line.strip())
            if len(components) != 2 or components[1] != name:
                continue
            try:
                return int(components[0])
            except ValueError:
                logger.debug(f"Ignoring listing line with a non-numeric pid: {line!r}")
        return None

    async def find_pid(self, name: str) -> Optional[int]:
        result = await self.runner.run(ExecutionConfig(command=self.command, timeout=self.timeout))
        if not result.success:
            raise ProcessProbeError(
                f"Process listing failed: {result.stderr.strip() or result.status.value}",
                command=" ".join(self.command),
                exit_code=result.exit_code,
            )
        return self.parse_listing(result.stdout, name)


class PsutilProcessProbe(ProcessProbe):
    """Probe backed by psutil, matching the process name or a command-line element"""

    def _scan(self, name: str) -> Optional[int]:
        for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
            try:
                info = proc.info
                cmdline = info.get('cmdline') or []
                if info.get('name') == name or name in cmdline:
                    return info['pid']
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return None

    async def find_pid(self, name: str) -> Optional[int]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._scan, name)
