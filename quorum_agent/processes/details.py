"""
Process Details

Paths and flags the supervisor needs, derived from the live cluster config.
Details are rebuilt from the config on every operation and never cached.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from ..config.settings import ProcessSettings
from ..coordination.encoded import EncodedConfigParser
from ..coordination.instance_config import InstanceConfig, IntConfigs, StringConfigs


def _path_or_none(value: str) -> Optional[Path]:
    value = (value or "").strip()
    return Path(value) if value else None


@dataclass(frozen=True)
class Details:
    """Immutable view of the process-related config values"""

    install_directory: Optional[Path]
    config_directory: Optional[Path]
    data_directory: Optional[Path]
    log_directory: Optional[Path]
    startup_level: str
    auxiliary_directory: Optional[Path]
    auxiliary_enabled: bool
    properties: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: InstanceConfig, settings: Optional[ProcessSettings] = None) -> 'Details':
        settings = settings or ProcessSettings()

        install_directory = _path_or_none(config.get_string(StringConfigs.INSTALL_DIRECTORY))
        config_directory = install_directory / settings.config_subdirectory if install_directory else None
        data_directory = _path_or_none(config.get_string(StringConfigs.DATA_DIRECTORY))
        log_directory = _path_or_none(config.get_string(StringConfigs.LOG_DIRECTORY)) or data_directory

        details = cls(
            install_directory=install_directory,
            config_directory=config_directory,
            data_directory=data_directory,
            log_directory=log_directory,
            startup_level=config.get_string(StringConfigs.STARTUP_LEVEL).strip(),
            auxiliary_directory=_path_or_none(config.get_string(StringConfigs.AUXILIARY_INSTALL_DIRECTORY)),
            auxiliary_enabled=config.get_int(IntConfigs.AUXILIARY_ENABLED) != 0,
        )
        if not details.is_valid():
            return details

        properties = {}
        for field_value in EncodedConfigParser(config.get_string(StringConfigs.EXTRA_PROPERTIES)).get_field_values():
            properties[field_value.field] = field_value.value
        properties["dataDir"] = str(data_directory)
        properties["dataLogDir"] = str(log_directory)

        object.__setattr__(details, "properties", properties)
        return details

    @staticmethod
    def is_valid_path(path: Optional[Path]) -> bool:
        return path is not None and str(path).strip() != ""

    def is_valid(self) -> bool:
        return all(
            self.is_valid_path(path)
            for path in (self.install_directory, self.config_directory, self.data_directory, self.log_directory)
        )
