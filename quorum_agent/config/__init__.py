"""
Configuration Package

Local settings of the node agent: file loading, environment overrides and
validation.
"""

from .manager import ConfigFormat, ConfigManager, ConfigSchema
from .settings import (
    AgentSettings,
    LockSettings,
    MonitoringSettings,
    ProcessSettings,
    Settings,
    StorageSettings,
    get_settings,
    initialize_settings,
)

__all__ = [
    'ConfigManager',
    'ConfigSchema',
    'ConfigFormat',
    'AgentSettings',
    'StorageSettings',
    'LockSettings',
    'ProcessSettings',
    'MonitoringSettings',
    'Settings',
    'initialize_settings',
    'get_settings',
]
