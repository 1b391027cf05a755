"""
Process Supervisor

Starts, stops and cleans up the managed service on this host.

Start renders the config, launches the primary through its control script and
waits for the script's exit code; the auxiliary daemon is started only when
that exit code is zero, the auxiliary is enabled and installed, and the startup
level is one that needs it.

Stop is best-effort. Each process is located by name, asked to stop through its
own stop script, then re-probed with a linearly growing backoff. Forced
termination is used only once the stop script has had a full backoff interval
to work. A process that survives every retry is logged as an error and left
running; nothing is raised.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..config.settings import ProcessSettings
from ..coordination.instance_config import InstanceConfig
from ..coordination.membership import UsState
from ..execution.base import CommandRunner, ExecutionConfig
from .details import Details
from .launcher import ProcessLauncher
from .models import KillReport, ProcessHandle, ProcessKind, ProcessState
from .monitor import ProcessMonitor
from .probe import ProcessProbe
from .renderer import ProcessConfigRenderer

logger = logging.getLogger(__name__)


class ProcessOperations(ABC):
    """Lifecycle operations on the managed service"""

    @abstractmethod
    async def start_instance(self, config: InstanceConfig, hostname: str) -> bool:
        """Render the config and start the service"""
        pass

    @abstractmethod
    async def kill_instance(self, config: Optional[InstanceConfig] = None) -> Dict[ProcessKind, KillReport]:
        """Stop the service, escalating to a forced kill when needed"""
        pass

    @abstractmethod
    async def cleanup_instance(self):
        """Periodic data cleanup"""
        pass


class ProcessSupervisor(ProcessOperations):
    """Drives the primary and auxiliary processes through their lifecycle"""

    def __init__(
        self,
        settings: ProcessSettings,
        monitor: ProcessMonitor,
        runner: CommandRunner,
        probe: ProcessProbe,
        launcher: Optional[ProcessLauncher] = None,
        renderer: Optional[ProcessConfigRenderer] = None,
    ):
        self.settings = settings
        self.monitor = monitor
        self.runner = runner
        self.probe = probe
        self.launcher = launcher or ProcessLauncher(settings)
        self.renderer = renderer or ProcessConfigRenderer(settings)

        self._states: Dict[ProcessKind, ProcessState] = {kind: ProcessState.STOPPED for kind in ProcessKind}
        self._last_config: Optional[InstanceConfig] = None

    def state(self, kind: ProcessKind) -> ProcessState:
        return self._states[kind]

    def states(self) -> Dict[ProcessKind, ProcessState]:
        return dict(self._states)

    def _transition(self, kind: ProcessKind, new_state: ProcessState):
        old_state = self._states[kind]
        self._states[kind] = new_state
        if old_state != new_state:
            logger.debug(f"{kind.value}: {old_state.value} -> {new_state.value}")

    def process_name(self, kind: ProcessKind) -> str:
        if kind is ProcessKind.PRIMARY:
            return self.settings.primary_process_name
        return self.settings.auxiliary_process_name

    def should_start_auxiliary(self, exit_code: int, details: Details) -> bool:
        return (
            exit_code == 0
            and details.auxiliary_enabled
            and self._states[ProcessKind.AUXILIARY] != ProcessState.RUNNING
            and details.is_valid_path(details.auxiliary_directory)
            and details.startup_level in self.settings.auxiliary_startup_levels
        )

    async def _launch(self, kind: ProcessKind, exec_config: ExecutionConfig) -> ProcessHandle:
        self._transition(kind, ProcessState.STARTING)
        try:
            process = await self.runner.spawn(exec_config)
            handle = ProcessHandle(kind=kind, process=process, command=exec_config.command_line)
            await self.monitor.register(kind, handle)
        except BaseException:
            self._transition(kind, ProcessState.STOPPED)
            raise

        self._transition(kind, ProcessState.RUNNING)
        return handle

    async def start_instance(self, config: InstanceConfig, hostname: str) -> bool:
        details = Details.from_config(config, self.settings)
        state = UsState.from_config(config, hostname)
        self._last_config = config

        if self.renderer.prepare(state, details) is None:
            logger.error("Not starting: process configuration is invalid")
            return False

        start_command = self.launcher.primary_start(details)
        handle = await self._launch(ProcessKind.PRIMARY, start_command)
        logger.info(f"A new process started via: {handle.command}")

        try:
            exit_code = await asyncio.wait_for(handle.process.wait(), timeout=start_command.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Start script did not exit within {start_command.timeout}s: {handle.command}")
            return False
        except asyncio.CancelledError:
            logger.error(f"Interrupted while waiting for: {handle.command}")
            raise

        if exit_code != 0:
            logger.error(f"Start script exited with code {exit_code}: {handle.command}")

        if self.should_start_auxiliary(exit_code, details):
            auxiliary = await self._launch(ProcessKind.AUXILIARY, self.launcher.auxiliary_start(details))
            logger.info(f"A new process started via: {auxiliary.command}")

        return exit_code == 0

    async def _run_stop_command(self, exec_config: ExecutionConfig):
        result = await self.runner.run(exec_config)
        logger.info(f"Kill attempted result: {result.exit_code} ({exec_config.command_line})")

    async def _stop(self, kind: ProcessKind, graceful: Optional[ExecutionConfig]) -> KillReport:
        self._transition(kind, ProcessState.STOPPING)
        try:
            return await self._stop_process(kind, graceful)
        finally:
            # Also reached when a probe fails mid-kill
            self._transition(kind, ProcessState.STOPPED)

    async def _stop_process(self, kind: ProcessKind, graceful: Optional[ExecutionConfig]) -> KillReport:
        name = self.process_name(kind)
        report = KillReport(kind=kind, process_name=name)

        pid = await self.probe.find_pid(name)
        if pid is None:
            logger.info(f"Process probe did not find '{name}'; assuming it is not running")
            report.stopped = True
            return report

        report.found = True
        report.pid = pid

        if graceful is not None:
            await self._run_stop_command(graceful)
            report.graceful_attempts += 1
        else:
            logger.error(f"No install directory configured; cannot run the stop script for '{name}'")

        backoff = self.settings.kill_backoff_ms / 1000
        wait_count = self.settings.kill_wait_count
        for attempt in range(wait_count):
            if attempt:
                await asyncio.sleep(attempt * backoff)

            # A different pid under the same name is a fresh process, not ours
            if await self.probe.find_pid(name) != pid:
                report.stopped = True
                break

            if 0 < attempt < wait_count - 1:
                await self._run_stop_command(self.launcher.force_kill(pid))
                report.forced_attempts += 1

        if report.stopped:
            logger.info(f"Stopped '{name}' process {pid}")
        else:
            logger.error(f"Could not kill '{name}' process: {pid}")

        return report

    async def kill_instance(self, config: Optional[InstanceConfig] = None) -> Dict[ProcessKind, KillReport]:
        details = Details.from_config(config or self._last_config or InstanceConfig(), self.settings)
        reports: Dict[ProcessKind, KillReport] = {}

        logger.info("Stopping managed processes")
        await self.monitor.destroy(ProcessKind.PRIMARY)

        primary_stop = self.launcher.primary_stop(details) if details.install_directory else None
        reports[ProcessKind.PRIMARY] = await self._stop(ProcessKind.PRIMARY, primary_stop)

        if self._states[ProcessKind.AUXILIARY] == ProcessState.RUNNING:
            await self.monitor.destroy(ProcessKind.AUXILIARY)
            auxiliary_stop = self.launcher.auxiliary_stop(details) if details.auxiliary_directory else None
            reports[ProcessKind.AUXILIARY] = await self._stop(ProcessKind.AUXILIARY, auxiliary_stop)

        return reports

    async def cleanup_instance(self):
        logger.info(
            "Data cleanup is handled by the managed service itself through its autopurge settings "
            "(autopurge.purgeInterval); nothing to do"
        )
