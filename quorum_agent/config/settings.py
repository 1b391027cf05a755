"""
Agent Settings

Structured settings for every component of the node agent. Each group declares
its schemas (keys, types, defaults and environment variables) and is built from
a loaded ConfigManager.
"""

import socket
from dataclasses import dataclass, field
from typing import List, Optional

from .manager import ConfigManager, ConfigSchema

ENV_PREFIX = "QUORUM_AGENT_"


def _env(name: str) -> str:
    return f"{ENV_PREFIX}{name}"


def _positive(value) -> bool:
    return value > 0


def _non_negative(value) -> bool:
    return value >= 0


@dataclass
class AgentSettings:
    """Identity of this host."""

    hostname: str = field(default_factory=socket.gethostname)
    defaults_file: Optional[str] = None

    @classmethod
    def get_schemas(cls) -> List[ConfigSchema]:
        return [
            ConfigSchema("agent_hostname", default_value=None, env_var=_env("HOSTNAME")),
            ConfigSchema("agent_defaults_file", default_value=None, env_var=_env("DEFAULTS_FILE")),
        ]


@dataclass
class StorageSettings:
    """Location of the shared configuration blob."""

    backend: str = "s3"  # s3, memory
    bucket: str = ""
    key: str = "quorum-agent/config.properties"
    region: Optional[str] = None
    endpoint_url: Optional[str] = None

    @classmethod
    def get_schemas(cls) -> List[ConfigSchema]:
        return [
            ConfigSchema(
                "storage_backend",
                default_value="s3",
                validator=lambda value: value in ("s3", "memory"),
                env_var=_env("STORAGE_BACKEND"),
            ),
            ConfigSchema("storage_bucket", default_value="", env_var=_env("BUCKET")),
            ConfigSchema("storage_key", default_value="quorum-agent/config.properties", env_var=_env("CONFIG_KEY")),
            ConfigSchema("storage_region", default_value=None, env_var=_env("REGION")),
            ConfigSchema("storage_endpoint_url", default_value=None, env_var=_env("ENDPOINT_URL")),
        ]


@dataclass
class LockSettings:
    """Pseudo-lock timings.

    ``settling_ms`` must exceed the blob store's list-after-write propagation
    delay; nothing can verify this at runtime.
    """

    prefix: str = "quorum-agent/lock"
    timeout_ms: int = 15 * 60 * 1000
    polling_ms: int = 1000
    settling_ms: int = 5000
    separator: str = "_"
    stale_warning_ms: int = 60 * 60 * 1000

    @classmethod
    def get_schemas(cls) -> List[ConfigSchema]:
        return [
            ConfigSchema("lock_prefix", default_value="quorum-agent/lock", env_var=_env("LOCK_PREFIX")),
            ConfigSchema(
                "lock_timeout_ms",
                data_type=int,
                default_value=15 * 60 * 1000,
                validator=_non_negative,
                env_var=_env("LOCK_TIMEOUT_MS"),
            ),
            ConfigSchema(
                "lock_polling_ms",
                data_type=int,
                default_value=1000,
                validator=_positive,
                env_var=_env("LOCK_POLLING_MS"),
            ),
            ConfigSchema(
                "lock_settling_ms",
                data_type=int,
                default_value=5000,
                validator=_non_negative,
                env_var=_env("LOCK_SETTLING_MS"),
            ),
            ConfigSchema(
                "lock_separator",
                default_value="_",
                validator=lambda value: len(value) == 1 and value not in "/\\",
                env_var=_env("LOCK_SEPARATOR"),
            ),
            ConfigSchema(
                "lock_stale_warning_ms",
                data_type=int,
                default_value=60 * 60 * 1000,
                validator=_positive,
                env_var=_env("LOCK_STALE_WARNING_MS"),
            ),
        ]


@dataclass
class ProcessSettings:
    """Launcher scripts, probe and shutdown tuning for the managed processes."""

    primary_script: str = "confluent"
    primary_service: str = "zookeeper"
    primary_process_name: str = "QuorumPeerMain"
    auxiliary_start_script: str = "ksql-server-start"
    auxiliary_stop_script: str = "ksql-server-stop"
    auxiliary_properties: str = "config/ksqlserver.properties"
    auxiliary_process_name: str = "KsqlRestApplication"
    auxiliary_startup_levels: List[str] = field(default_factory=lambda: ["kafka-rest", "connect"])
    config_subdirectory: str = "current/zookeeper"
    config_file_name: str = "zookeeper.properties"
    probe_backend: str = "command"  # command, psutil
    probe_command: List[str] = field(default_factory=lambda: ["jps"])
    kill_command: List[str] = field(default_factory=lambda: ["kill", "-9"])
    kill_backoff_ms: int = 100
    kill_wait_count: int = 3
    command_timeout: int = 60

    @classmethod
    def get_schemas(cls) -> List[ConfigSchema]:
        return [
            ConfigSchema("process_primary_script", default_value="confluent", env_var=_env("PRIMARY_SCRIPT")),
            ConfigSchema("process_primary_service", default_value="zookeeper", env_var=_env("PRIMARY_SERVICE")),
            ConfigSchema(
                "process_primary_process_name", default_value="QuorumPeerMain", env_var=_env("PRIMARY_PROCESS_NAME")
            ),
            ConfigSchema(
                "process_auxiliary_start_script",
                default_value="ksql-server-start",
                env_var=_env("AUXILIARY_START_SCRIPT"),
            ),
            ConfigSchema(
                "process_auxiliary_stop_script", default_value="ksql-server-stop", env_var=_env("AUXILIARY_STOP_SCRIPT")
            ),
            ConfigSchema(
                "process_auxiliary_properties",
                default_value="config/ksqlserver.properties",
                env_var=_env("AUXILIARY_PROPERTIES"),
            ),
            ConfigSchema(
                "process_auxiliary_process_name",
                default_value="KsqlRestApplication",
                env_var=_env("AUXILIARY_PROCESS_NAME"),
            ),
            ConfigSchema(
                "process_auxiliary_startup_levels",
                data_type=list,
                default_value=["kafka-rest", "connect"],
                env_var=_env("AUXILIARY_STARTUP_LEVELS"),
            ),
            ConfigSchema(
                "process_config_subdirectory", default_value="current/zookeeper", env_var=_env("CONFIG_SUBDIRECTORY")
            ),
            ConfigSchema(
                "process_config_file_name", default_value="zookeeper.properties", env_var=_env("CONFIG_FILE_NAME")
            ),
            ConfigSchema(
                "process_probe_backend",
                default_value="command",
                validator=lambda value: value in ("command", "psutil"),
                env_var=_env("PROBE_BACKEND"),
            ),
            ConfigSchema(
                "process_probe_command", data_type=list, default_value=["jps"], env_var=_env("PROBE_COMMAND")
            ),
            ConfigSchema(
                "process_kill_command", data_type=list, default_value=["kill", "-9"], env_var=_env("KILL_COMMAND")
            ),
            ConfigSchema(
                "process_kill_backoff_ms",
                data_type=int,
                default_value=100,
                validator=_non_negative,
                env_var=_env("KILL_BACKOFF_MS"),
            ),
            ConfigSchema(
                "process_kill_wait_count",
                data_type=int,
                default_value=3,
                validator=lambda value: value >= 3,
                env_var=_env("KILL_WAIT_COUNT"),
            ),
            ConfigSchema(
                "process_command_timeout",
                data_type=int,
                default_value=60,
                validator=_positive,
                env_var=_env("COMMAND_TIMEOUT"),
            ),
        ]


@dataclass
class MonitoringSettings:
    """Logging settings."""

    logging_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    @classmethod
    def get_schemas(cls) -> List[ConfigSchema]:
        return [
            ConfigSchema(
                "monitoring_logging_level",
                default_value="INFO",
                validator=lambda value: value.upper() in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
                env_var=_env("LOG_LEVEL"),
            ),
            ConfigSchema(
                "monitoring_log_format",
                default_value="text",
                validator=lambda value: value in ("json", "text", "colored"),
                env_var=_env("LOG_FORMAT"),
            ),
            ConfigSchema("monitoring_log_file", default_value=None, env_var=_env("LOG_FILE")),
            ConfigSchema(
                "monitoring_log_max_bytes",
                data_type=int,
                default_value=10 * 1024 * 1024,
                validator=lambda value: value > 0,
                description="Rotate the log file once it reaches this size",
            ),
            ConfigSchema(
                "monitoring_log_backup_count",
                data_type=int,
                default_value=5,
                validator=lambda value: value >= 0,
                description="Rotated log files to keep",
            ),
        ]


@dataclass
class Settings:
    """Main settings container."""

    agent: AgentSettings = field(default_factory=AgentSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    lock: LockSettings = field(default_factory=LockSettings)
    process: ProcessSettings = field(default_factory=ProcessSettings)
    monitoring: MonitoringSettings = field(default_factory=MonitoringSettings)

    @classmethod
    def from_config_manager(cls, config_manager: ConfigManager) -> 'Settings':
        """Create settings from a loaded configuration manager."""
        config = config_manager.get_all()
        process_defaults = ProcessSettings()

        return cls(
            agent=AgentSettings(
                hostname=config.get("agent_hostname") or socket.gethostname(),
                defaults_file=config.get("agent_defaults_file"),
            ),
            storage=StorageSettings(
                backend=config.get("storage_backend", "s3"),
                bucket=config.get("storage_bucket", ""),
                key=config.get("storage_key", "quorum-agent/config.properties"),
                region=config.get("storage_region"),
                endpoint_url=config.get("storage_endpoint_url"),
            ),
            lock=LockSettings(
                prefix=config.get("lock_prefix", "quorum-agent/lock"),
                timeout_ms=config.get("lock_timeout_ms", 15 * 60 * 1000),
                polling_ms=config.get("lock_polling_ms", 1000),
                settling_ms=config.get("lock_settling_ms", 5000),
                separator=config.get("lock_separator", "_"),
                stale_warning_ms=config.get("lock_stale_warning_ms", 60 * 60 * 1000),
            ),
            process=ProcessSettings(
                primary_script=config.get("process_primary_script", process_defaults.primary_script),
                primary_service=config.get("process_primary_service", process_defaults.primary_service),
                primary_process_name=config.get("process_primary_process_name", process_defaults.primary_process_name),
                auxiliary_start_script=config.get(
                    "process_auxiliary_start_script", process_defaults.auxiliary_start_script
                ),
                auxiliary_stop_script=config.get("process_auxiliary_stop_script", process_defaults.auxiliary_stop_script),
                auxiliary_properties=config.get("process_auxiliary_properties", process_defaults.auxiliary_properties),
                auxiliary_process_name=config.get(
                    "process_auxiliary_process_name", process_defaults.auxiliary_process_name
                ),
                auxiliary_startup_levels=config.get(
                    "process_auxiliary_startup_levels", process_defaults.auxiliary_startup_levels
                ),
                config_subdirectory=config.get("process_config_subdirectory", process_defaults.config_subdirectory),
                config_file_name=config.get("process_config_file_name", process_defaults.config_file_name),
                probe_backend=config.get("process_probe_backend", process_defaults.probe_backend),
                probe_command=config.get("process_probe_command", process_defaults.probe_command),
                kill_command=config.get("process_kill_command", process_defaults.kill_command),
                kill_backoff_ms=config.get("process_kill_backoff_ms", process_defaults.kill_backoff_ms),
                kill_wait_count=config.get("process_kill_wait_count", process_defaults.kill_wait_count),
                command_timeout=config.get("process_command_timeout", process_defaults.command_timeout),
            ),
            monitoring=MonitoringSettings(
                logging_level=config.get("monitoring_logging_level", "INFO"),
                log_format=config.get("monitoring_log_format", "text"),
                log_file=config.get("monitoring_log_file"),
                log_max_bytes=config.get("monitoring_log_max_bytes", 10 * 1024 * 1024),
                log_backup_count=config.get("monitoring_log_backup_count", 5),
            ),
        )

    @classmethod
    def get_all_schemas(cls) -> List[ConfigSchema]:
        """Get all configuration schemas."""
        schemas = []
        schemas.extend(AgentSettings.get_schemas())
        schemas.extend(StorageSettings.get_schemas())
        schemas.extend(LockSettings.get_schemas())
        schemas.extend(ProcessSettings.get_schemas())
        schemas.extend(MonitoringSettings.get_schemas())
        return schemas


# Global settings instance
_settings: Optional[Settings] = None


def initialize_settings(config_manager: ConfigManager) -> Settings:
    """Register schemas, load configuration and build the global settings."""
    global _settings

    config_manager.register_schemas(Settings.get_all_schemas())
    config_manager.load_config()

    _settings = Settings.from_config_manager(config_manager)

    return _settings


def get_settings() -> Settings:
    """Get global settings instance."""
    if _settings is None:
        raise RuntimeError("Settings not initialized. Call initialize_settings first.")
    return _settings
