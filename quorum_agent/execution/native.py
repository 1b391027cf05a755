"""
Native execution backend - direct command execution on the host system
"""

import asyncio
import os
import subprocess
import time
from pathlib import Path
from typing import Dict

from .base import CommandRunner, ExecutionConfig, ExecutionResult, ExecutionStatus


class NativeCommandRunner(CommandRunner):
    """Execute commands directly on the host system"""

    def _environment(self, exec_config: ExecutionConfig) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(exec_config.environment or {})
        return env

    async def spawn(self, exec_config: ExecutionConfig) -> asyncio.subprocess.Process:
        """Start the command; output goes to pipes, or to ``output_file`` when set."""
        if exec_config.output_file is None:
            stdout, stderr = subprocess.PIPE, subprocess.PIPE
            output = None
        else:
            log_path = Path(exec_config.output_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            output = open(log_path, "ab")
            stdout, stderr = output, subprocess.STDOUT

        try:
            process = await asyncio.create_subprocess_exec(
                *exec_config.command,
                cwd=exec_config.working_directory,
                env=self._environment(exec_config),
                stdout=stdout,
                stderr=stderr,
                stdin=subprocess.DEVNULL,
            )
        finally:
            # The child holds its own descriptor
            if output is not None:
                output.close()

        self.logger.info(f"A new process started via: {exec_config.command_line} (pid {process.pid})")
        return process

    async def run(self, exec_config: ExecutionConfig) -> ExecutionResult:
        """Run a command to completion, killing it when the timeout expires."""
        start_time = time.time()
        work_dir = exec_config.working_directory or ""

        try:
            process = await self.spawn(exec_config)
        except FileNotFoundError as e:
            return ExecutionResult(
                status=ExecutionStatus.FAILED,
                stderr=f"Command not found: {str(e)}",
                exit_code=127,
                command=exec_config.command_line,
                working_directory=work_dir,
                execution_time=time.time() - start_time,
            )
        except PermissionError as e:
            return ExecutionResult(
                status=ExecutionStatus.FAILED,
                stderr=f"Permission denied: {str(e)}",
                exit_code=126,
                command=exec_config.command_line,
                working_directory=work_dir,
                execution_time=time.time() - start_time,
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=exec_config.timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"Command execution timed out after {exec_config.timeout}s: {exec_config.command_line}")
            await self._kill(process)
            return ExecutionResult(
                status=ExecutionStatus.TIMEOUT,
                stderr=f"Command timed out after {exec_config.timeout} seconds",
                exit_code=124,  # Standard timeout exit code
                command=exec_config.command_line,
                working_directory=work_dir,
                execution_time=exec_config.timeout,
            )
        except asyncio.CancelledError:
            self.logger.error(f"Interrupted while waiting for: {exec_config.command_line}")
            await self._kill(process)
            raise

        stdout_str = stdout.decode('utf-8', errors='replace') if stdout else ""
        stderr_str = stderr.decode('utf-8', errors='replace') if stderr else ""
        status = ExecutionStatus.SUCCESS if process.returncode == 0 else ExecutionStatus.FAILED

        result = ExecutionResult(
            status=status,
            stdout=stdout_str,
            stderr=stderr_str,
            exit_code=process.returncode,
            command=exec_config.command_line,
            working_directory=work_dir,
            execution_time=time.time() - start_time,
            pid=process.pid,
        )
        self.logger.debug(f"Command finished with exit code {result.exit_code}: {exec_config.command_line}")
        return result

    async def _kill(self, process: asyncio.subprocess.Process):
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
