"""
Node Agent

Composition root: wires the blob store, the configuration store and the process
supervisor for one host, and exposes the operations the CLI drives.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .config.settings import Settings
from .coordination.config_store import ConfigStore
from .coordination.instance_config import ConfigKey, LoadedInstanceConfig, key_for_property
from .coordination.membership import UsState
from .coordination.properties import load_properties
from .coordination.pseudo_lock import LockMarker
from .execution.base import CommandRunner
from .execution.native import NativeCommandRunner
from .observability.logging import operation_context
from .processes.details import Details
from .processes.models import KillReport, ProcessKind, ProcessState
from .processes.monitor import LocalProcessMonitor, ProcessMonitor
from .processes.probe import CommandProcessProbe, ProcessProbe, PsutilProcessProbe
from .processes.supervisor import ProcessSupervisor
from .storage import BlobStore, create_blob_store
from .utils.error_handling import ConfigValidationError

logger = logging.getLogger(__name__)


def load_defaults_file(path: str) -> Dict[ConfigKey, str]:
    """Read cluster config defaults from a properties file; unknown names are skipped."""
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ConfigValidationError(f"Cannot read defaults file {path}: {e}", "agent_defaults_file", path) from e

    defaults = {}
    for name, value in load_properties(text).items():
        key = key_for_property(name)
        if key is None:
            logger.warning(f"Ignoring unknown property '{name}' in defaults file {path}")
            continue
        defaults[key] = value
    return defaults


def create_probe(settings: Settings, runner: CommandRunner) -> ProcessProbe:
    if settings.process.probe_backend == "psutil":
        return PsutilProcessProbe()
    return CommandProcessProbe(runner, settings.process.probe_command, timeout=settings.process.command_timeout)


class NodeAgent:
    """Per-host agent over the shared configuration and the local service"""

    def __init__(
        self,
        settings: Settings,
        config_store: ConfigStore,
        supervisor: ProcessSupervisor,
        monitor: Optional[ProcessMonitor] = None,
    ):
        self.settings = settings
        self.config_store = config_store
        self.supervisor = supervisor
        self.monitor = monitor or supervisor.monitor

    @property
    def hostname(self) -> str:
        return self.settings.agent.hostname

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: Optional[BlobStore] = None,
        runner: Optional[CommandRunner] = None,
        probe: Optional[ProcessProbe] = None,
        monitor: Optional[ProcessMonitor] = None,
    ) -> 'NodeAgent':
        if not settings.storage.bucket:
            raise ConfigValidationError("A storage bucket is required", "storage_bucket", settings.storage.bucket)

        defaults = load_defaults_file(settings.agent.defaults_file) if settings.agent.defaults_file else {}
        config_store = ConfigStore(
            store or create_blob_store(settings.storage),
            settings.storage.bucket,
            settings.storage.key,
            settings.agent.hostname,
            defaults=defaults,
            lock_settings=settings.lock,
        )

        runner = runner or NativeCommandRunner()
        monitor = monitor or LocalProcessMonitor()
        supervisor = ProcessSupervisor(
            settings.process,
            monitor,
            runner,
            probe or create_probe(settings, runner),
        )
        return cls(settings, config_store, supervisor, monitor)

    async def load_config(self) -> LoadedInstanceConfig:
        with operation_context("load-config"):
            loaded = await self.config_store.load_config()
            logger.debug(f"Loaded cluster config version {loaded.version}")
            return loaded

    async def update_config(self, changes: Mapping[Any, Any], lock_timeout: Optional[float] = None) -> LoadedInstanceConfig:
        with operation_context("update-config"):
            logger.info(f"Updating cluster config keys: {', '.join(str(key) for key in changes)}")
            return await self.config_store.update_config(changes, lock_timeout=lock_timeout)

    async def membership(self) -> UsState:
        loaded = await self.load_config()
        return UsState.from_config(loaded.config, self.hostname)

    async def render_config(self, now: Optional[datetime] = None) -> Optional[str]:
        """Rendered process config for this host, or None when the details are incomplete."""
        loaded = await self.load_config()
        details = Details.from_config(loaded.config, self.settings.process)
        if not details.is_valid():
            return None
        state = UsState.from_config(loaded.config, self.hostname)
        return self.supervisor.renderer.render(state, details, now)

    async def start(self) -> bool:
        with operation_context("start"):
            loaded = await self.config_store.load_config()
            return await self.supervisor.start_instance(loaded.config, self.hostname)

    async def stop(self) -> Dict[ProcessKind, KillReport]:
        with operation_context("stop"):
            loaded = await self.config_store.load_config()
            return await self.supervisor.kill_instance(loaded.config)

    async def restart(self) -> bool:
        with operation_context("restart"):
            loaded = await self.config_store.load_config()
            await self.supervisor.kill_instance(loaded.config)
            return await self.supervisor.start_instance(loaded.config, self.hostname)

    async def cleanup(self):
        with operation_context("cleanup"):
            await self.supervisor.cleanup_instance()

    async def lock_markers(self) -> List[LockMarker]:
        return await self.config_store.new_pseudo_lock().list_markers()

    def process_states(self) -> Dict[ProcessKind, ProcessState]:
        return self.supervisor.states()

    async def close(self):
        if isinstance(self.monitor, LocalProcessMonitor):
            await self.monitor.close()
        await self.config_store.close()
