"""
Process Supervision Module

Renders the managed service's configuration and drives its processes through
start, stop and cleanup.
"""

from .details import Details
from .launcher import ProcessLauncher
from .models import KillReport, ProcessHandle, ProcessKind, ProcessState
from .monitor import LocalProcessMonitor, ProcessMonitor
from .probe import CommandProcessProbe, ProcessProbe, PsutilProcessProbe
from .renderer import ID_FILE_NAME, ProcessConfigRenderer
from .supervisor import ProcessOperations, ProcessSupervisor

__all__ = [
    'Details',
    'ProcessLauncher',
    'KillReport',
    'ProcessHandle',
    'ProcessKind',
    'ProcessState',
    'ProcessMonitor',
    'LocalProcessMonitor',
    'ProcessProbe',
    'CommandProcessProbe',
    'PsutilProcessProbe',
    'ID_FILE_NAME',
    'ProcessConfigRenderer',
    'ProcessOperations',
    'ProcessSupervisor',
]
