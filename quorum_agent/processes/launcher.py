"""
Process Launcher

Builds the command lines for starting, stopping and force-killing the managed
processes. Start scripts write their output to a file in the log directory
rather than to pipes, since the daemons they leave behind inherit it.
"""

from pathlib import Path
from typing import Optional

from ..config.settings import ProcessSettings
from ..execution.base import ExecutionConfig
from .details import Details
from .models import ProcessKind


class ProcessLauncher:
    """Command builder for the managed processes"""

    def __init__(self, settings: Optional[ProcessSettings] = None):
        self.settings = settings or ProcessSettings()

    def _script(self, root: Path, script: str) -> Path:
        return (root / "bin" / script).absolute()

    def _launch_output(self, details: Details, kind: ProcessKind) -> Optional[str]:
        if details.log_directory is None:
            return None
        return str(details.log_directory / f"quorum-agent-{kind.value}.out")

    def primary_start(self, details: Details) -> ExecutionConfig:
        root = details.install_directory
        return ExecutionConfig(
            command=[self._script(root, self.settings.primary_script), "start", details.startup_level],
            working_directory=str(root),
            timeout=self.settings.command_timeout,
            output_file=self._launch_output(details, ProcessKind.PRIMARY),
        )

    def primary_stop(self, details: Details) -> ExecutionConfig:
        root = details.install_directory
        return ExecutionConfig(
            command=[self._script(root, self.settings.primary_script), "stop", self.settings.primary_service],
            working_directory=str(root),
            timeout=self.settings.command_timeout,
        )

    def auxiliary_start(self, details: Details) -> ExecutionConfig:
        root = details.auxiliary_directory
        return ExecutionConfig(
            command=[
                self._script(root, self.settings.auxiliary_start_script),
                "-daemon",
                (root / self.settings.auxiliary_properties).absolute(),
            ],
            working_directory=str(root),
            timeout=self.settings.command_timeout,
            output_file=self._launch_output(details, ProcessKind.AUXILIARY),
        )

    def auxiliary_stop(self, details: Details) -> ExecutionConfig:
        root = details.auxiliary_directory
        return ExecutionConfig(
            command=[self._script(root, self.settings.auxiliary_stop_script)],
            working_directory=str(root),
            timeout=self.settings.command_timeout,
        )

    def force_kill(self, pid: int) -> ExecutionConfig:
        return ExecutionConfig(
            command=[*self.settings.kill_command, str(pid)],
            timeout=self.settings.command_timeout,
        )
