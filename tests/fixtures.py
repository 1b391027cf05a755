"""
Test Fixtures

Fakes for the process-side collaborators: a command runner that records what it
was asked to run, a probe with a scripted sequence of answers, and a monitor
that only records calls.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Sequence

from quorum_agent.execution.base import CommandRunner, ExecutionConfig, ExecutionResult, ExecutionStatus
from quorum_agent.processes.models import ProcessHandle, ProcessKind
from quorum_agent.processes.monitor import ProcessMonitor
from quorum_agent.processes.probe import ProcessProbe


class FakeProcess:
    """Stands in for asyncio.subprocess.Process"""

    def __init__(self, pid: int = 4242, exit_code: int = 0, wait_delay: float = 0.0):
        self.pid = pid
        self.exit_code = exit_code
        self.wait_delay = wait_delay
        self.returncode = None
        self.stdout = None
        self.stderr = None
        self.terminated = False
        self.killed = False

    async def wait(self) -> int:
        if self.returncode is not None:
            return self.returncode
        if self.wait_delay:
            await asyncio.sleep(self.wait_delay)
        self.returncode = self.exit_code
        return self.exit_code

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def kill(self):
        self.killed = True
        self.returncode = -9


class RecordingRunner(CommandRunner):
    """Records spawned and run commands; exit codes come from ``spawn_exit_code`` and ``run_handler``"""

    def __init__(
        self,
        spawn_exit_code: int = 0,
        wait_delay: float = 0.0,
        run_handler: Optional[Callable[[ExecutionConfig], ExecutionResult]] = None,
    ):
        super().__init__()
        self.spawn_exit_code = spawn_exit_code
        self.wait_delay = wait_delay
        self.run_handler = run_handler
        self.spawned: List[ExecutionConfig] = []
        self.ran: List[ExecutionConfig] = []
        self.processes: List[FakeProcess] = []

    async def spawn(self, exec_config: ExecutionConfig) -> FakeProcess:
        self.spawned.append(exec_config)
        process = FakeProcess(
            pid=1000 + len(self.spawned), exit_code=self.spawn_exit_code, wait_delay=self.wait_delay
        )
        self.processes.append(process)
        return process

    async def run(self, exec_config: ExecutionConfig) -> ExecutionResult:
        self.ran.append(exec_config)
        if self.run_handler:
            return self.run_handler(exec_config)
        return ExecutionResult(status=ExecutionStatus.SUCCESS, command=exec_config.command_line)

    def ran_matching(self, predicate: Callable[[List[str]], bool]) -> List[ExecutionConfig]:
        return [config for config in self.ran if predicate(config.command)]

    def graceful_stops(self) -> List[ExecutionConfig]:
        return self.ran_matching(lambda command: "stop" in command or command[0].endswith("-stop"))

    def forced_kills(self) -> List[ExecutionConfig]:
        return self.ran_matching(lambda command: command[:2] == ["kill", "-9"])


class ScriptedProbe(ProcessProbe):
    """Answers each name from a script; the last answer repeats once the script runs out"""

    def __init__(self, scripts: Optional[Dict[str, Sequence[Optional[int]]]] = None):
        self.scripts = {name: list(answers) for name, answers in (scripts or {}).items()}
        self.calls: List[str] = []

    async def find_pid(self, name: str) -> Optional[int]:
        self.calls.append(name)
        answers = self.scripts.get(name)
        if not answers:
            return None
        if len(answers) > 1:
            return answers.pop(0)
        return answers[0]

    def call_count(self, name: str) -> int:
        return self.calls.count(name)


class RecordingMonitor(ProcessMonitor):
    """Monitor that tracks registrations without watching anything"""

    def __init__(self):
        self.handles: Dict[ProcessKind, ProcessHandle] = {}
        self.registered: List[ProcessKind] = []
        self.destroyed: List[ProcessKind] = []

    async def register(self, kind: ProcessKind, handle: ProcessHandle):
        self.registered.append(kind)
        self.handles[kind] = handle

    async def destroy(self, kind: ProcessKind):
        self.destroyed.append(kind)
        handle = self.handles.pop(kind, None)
        if handle is not None:
            handle.running = False

    def is_running(self, kind: ProcessKind) -> bool:
        handle = self.handles.get(kind)
        return handle is not None and handle.running
