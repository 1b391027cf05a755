"""
Configuration Manager

Loads the node agent's local settings from YAML, JSON or .env files, applies
environment variable overrides and validates the result against registered
schemas.

These are the settings of the agent process itself (where the shared config
blob lives, lock timings, launcher scripts). The shared cluster configuration is
handled by quorum_agent.coordination.
"""

import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from ..utils.error_handling import ConfigValidationError


class ConfigFormat(str, Enum):
    """Configuration file formats."""

    JSON = "json"
    YAML = "yaml"
    ENV = "env"


@dataclass
class ConfigSchema:
    """Configuration schema definition."""

    key: str
    required: bool = False
    data_type: type = str
    default_value: Any = None
    validator: Optional[Callable[[Any], bool]] = None
    description: str = ""
    env_var: Optional[str] = None

    def validate(self, value: Any) -> Any:
        """Validate and convert a configuration value."""
        if value is None:
            if self.required:
                raise ConfigValidationError(f"Required configuration key '{self.key}' is missing", self.key)
            return self.default_value

        try:
            if self.data_type == bool and isinstance(value, str):
                value = value.lower() in ("true", "1", "yes", "on")
            elif self.data_type == int:
                value = int(value)
            elif self.data_type == float:
                value = float(value)
            elif self.data_type == list and isinstance(value, str):
                value = [item.strip() for item in value.split(",") if item.strip()]
            else:
                value = self.data_type(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"Invalid type for '{self.key}': expected {self.data_type.__name__}, got {type(value).__name__}",
                self.key,
                value,
            )

        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Validation failed for '{self.key}' with value '{value}'", self.key, value)

        return value


@dataclass
class LoadedSettings:
    """Snapshot of the most recent load."""

    config_files: List[str] = field(default_factory=list)
    config_data: Dict[str, Any] = field(default_factory=dict)
    checksum: Optional[str] = None


class ConfigManager:
    """Centralized management of the agent's local settings."""

    def __init__(self, base_path: str = "."):
        self.base_path = Path(base_path)
        self.logger = logging.getLogger(__name__)

        self.loaded = LoadedSettings()
        self.schemas: Dict[str, ConfigSchema] = {}

        self.lock = threading.RLock()

    def register_schema(self, schema: ConfigSchema):
        """Register configuration schema."""
        with self.lock:
            self.schemas[schema.key] = schema
            self.logger.debug(f"Registered schema for '{schema.key}'")

    def register_schemas(self, schemas: List[ConfigSchema]):
        """Register multiple configuration schemas."""
        for schema in schemas:
            self.register_schema(schema)

    def add_config_file(self, file_path: str):
        """Add a configuration file; later files override earlier ones."""
        file_path = str(self.base_path / file_path)

        with self.lock:
            if file_path not in self.loaded.config_files:
                self.loaded.config_files.append(file_path)
                self.logger.info(f"Added config file: {file_path}")

    def load_config(self) -> Dict[str, Any]:
        """Load, merge and validate all configured sources."""
        with self.lock:
            merged_config = {}

            for file_path in self.loaded.config_files:
                merged_config.update(self._load_config_file(file_path))

            merged_config.update(self._load_env_overrides())

            validated_config = self._validate_config(merged_config)

            self.loaded.config_data = validated_config
            self.loaded.checksum = self._calculate_checksum(validated_config)

            self.logger.info(
                f"Loaded agent configuration from {len(self.loaded.config_files)} file(s) "
                f"(checksum {self.loaded.checksum[:12]})"
            )
            return validated_config

    def _load_config_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from file."""
        if not os.path.exists(file_path):
            self.logger.warning(f"Configuration file not found: {file_path}")
            return {}

        try:
            with open(file_path, 'r') as f:
                if file_path.endswith('.json'):
                    data = json.load(f)
                elif file_path.endswith(('.yaml', '.yml')):
                    data = yaml.safe_load(f) or {}
                elif file_path.endswith('.env'):
                    data = self._parse_env_file(f.read())
                else:
                    self.logger.warning(f"Unsupported config file format: {file_path}")
                    return {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            self.logger.error(f"Error loading config file {file_path}: {e}")
            raise ConfigValidationError(f"Failed to load config file: {file_path}") from e

        if not isinstance(data, dict):
            raise ConfigValidationError(f"Config file must contain a mapping: {file_path}")
        return self._flatten(data)

    def _flatten(self, data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
        """Flatten nested sections: {"lock": {"timeout_ms": 1}} -> {"lock_timeout_ms": 1}."""
        flat = {}
        for key, value in data.items():
            name = f"{prefix}{key}"
            if isinstance(value, dict):
                flat.update(self._flatten(value, f"{name}_"))
            else:
                flat[name] = value
        return flat

    def _parse_env_file(self, content: str) -> Dict[str, Any]:
        """Parse .env file content."""
        config = {}

        for line in content.strip().split('\n'):
            line = line.strip()
            if line and not line.startswith('#'):
                if '=' in line:
                    key, value = line.split('=', 1)
                    config[key.strip()] = value.strip().strip('"\'')

        return config

    def _load_env_overrides(self) -> Dict[str, Any]:
        """Load configuration overrides from environment variables."""
        overrides = {}

        for key, schema in self.schemas.items():
            if schema.env_var:
                env_value = os.getenv(schema.env_var)
                if env_value is not None:
                    overrides[key] = env_value

        return overrides

    def _validate_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Validate configuration against registered schemas."""
        validated = {}

        for key, schema in self.schemas.items():
            validated[key] = schema.validate(config.get(key))

        for key, value in config.items():
            if key not in self.schemas:
                self.logger.debug(f"Ignoring unknown configuration key '{key}'")

        return validated

    def _calculate_checksum(self, config: Dict[str, Any]) -> str:
        """Calculate checksum for configuration data."""
        config_str = json.dumps(config, sort_keys=True, default=str)
        return hashlib.md5(config_str.encode()).hexdigest()

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        with self.lock:
            return self.loaded.config_data.copy()

    def export_config(self, format: ConfigFormat = ConfigFormat.YAML) -> str:
        """Export configuration in specified format."""
        config = self.get_all()

        if format == ConfigFormat.JSON:
            return json.dumps(config, indent=2, default=str)
        elif format == ConfigFormat.YAML:
            return yaml.safe_dump(config, default_flow_style=False)
        elif format == ConfigFormat.ENV:
            return '\n'.join(f"{key}={value}" for key, value in config.items())
        raise ConfigValidationError(f"Unsupported export format: {format}")
