"""
Process Monitor

Tracks the processes spawned by the supervisor, keyed by kind. The monitor owns
exit detection: it drains each process's output into the log and flips the
handle to not-running when the process exits.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import ProcessHandle, ProcessKind

logger = logging.getLogger(__name__)


class ProcessMonitor(ABC):
    """Collaborator that owns spawned process handles"""

    @abstractmethod
    async def register(self, kind: ProcessKind, handle: ProcessHandle):
        """Start tracking a spawned process"""
        pass

    @abstractmethod
    async def destroy(self, kind: ProcessKind):
        """Stop tracking a kind, terminating its process if still alive"""
        pass

    @abstractmethod
    def is_running(self, kind: ProcessKind) -> bool:
        """Whether a tracked process of this kind is alive"""
        pass


class LocalProcessMonitor(ProcessMonitor):
    """In-process monitor for asyncio subprocesses"""

    def __init__(self, destroy_grace_period: float = 5.0):
        self.destroy_grace_period = destroy_grace_period
        self._handles: Dict[ProcessKind, ProcessHandle] = {}
        self._tasks: Dict[ProcessKind, List[asyncio.Task]] = {}

    def get_handle(self, kind: ProcessKind) -> Optional[ProcessHandle]:
        return self._handles.get(kind)

    async def register(self, kind: ProcessKind, handle: ProcessHandle):
        if kind in self._handles:
            logger.warning(f"Replacing tracked {kind.value} process")
            await self.destroy(kind)

        self._handles[kind] = handle
        process = handle.process
        tasks = [asyncio.create_task(self._watch(kind, handle))]
        for stream, level in ((process.stdout, logging.INFO), (process.stderr, logging.WARNING)):
            if stream is not None:
                tasks.append(asyncio.create_task(self._drain(kind, stream, level)))
        self._tasks[kind] = tasks

        logger.debug(f"Monitoring {kind.value} process {handle.pid}")

    async def _drain(self, kind: ProcessKind, stream: asyncio.StreamReader, level: int):
        while True:
            line = await stream.readline()
            if not line:
                break
            logger.log(level, f"[{kind.value}] {line.decode('utf-8', errors='replace').rstrip()}")

    async def _watch(self, kind: ProcessKind, handle: ProcessHandle):
        exit_code = await handle.process.wait()
        handle.running = False
        logger.info(f"{kind.value} process {handle.pid} exited with code {exit_code}")

    async def destroy(self, kind: ProcessKind):
        handle = self._handles.pop(kind, None)
        tasks = self._tasks.pop(kind, [])
        if handle is None:
            return

        process = handle.process
        if process.returncode is None:
            logger.info(f"Terminating {kind.value} process {handle.pid}")
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self.destroy_grace_period)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning(f"{kind.value} process {handle.pid} ignored SIGTERM; killing")
                process.kill()
                await process.wait()

        handle.running = False
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def is_running(self, kind: ProcessKind) -> bool:
        handle = self._handles.get(kind)
        return handle is not None and handle.running

    async def close(self):
        """Stop watching without terminating; launched daemons outlive the agent."""
        for kind in list(self._handles):
            self._handles.pop(kind)
            tasks = self._tasks.pop(kind, [])
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
