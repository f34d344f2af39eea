from __future__ import annotations

import json
import os
import pathlib
import shlex
from copy import deepcopy
from typing import Any, Dict, List, Optional, Union

import aiofiles
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from mixerpack.utils.exceptions import ConfigurationError


class PackagingSettings(BaseModel):
    """Where the pipeline finds its inputs and how it names the artifact."""

    manifest: str = Field(default='plugin.json', description='Default manifest path')
    metadata: str = Field(default='package.json', description='Project metadata file')
    extension: str = Field(default='midiMixerPlugin', description='Extension of the final artifact')


class ArchiverSettings(BaseModel):
    command: List[str] = Field(default_factory=lambda: ['npm', 'pack'])
    extension: str = Field(default='tgz', description='Extension of the archiver output')

    @field_validator('command', mode='before')
    @classmethod
    def split_command(cls, v: Any) -> Any:
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @field_validator('command')
    @classmethod
    def validate_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError('Archiver command cannot be empty')
        return v


class LogFileSettings(BaseModel):
    enabled: bool = False
    path: str = 'logs/mixerpack.log'


class LoggingSettings(BaseModel):
    level: str = 'WARNING'
    format: str = 'text'
    file: LogFileSettings = Field(default_factory=LogFileSettings)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'Unknown log level: {v}')
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ('text', 'json'):
            raise ValueError("Log format must be 'text' or 'json'")
        return v.lower()


class ConfigSchema(BaseModel):
    """Schema for validating configuration data.

    This model defines the expected structure and default values for the
    packager configuration.
    """
    packaging: PackagingSettings = Field(default_factory=PackagingSettings, description='Packaging settings')
    archiver: ArchiverSettings = Field(default_factory=ArchiverSettings, description='External archiver settings')
    logging: LoggingSettings = Field(default_factory=LoggingSettings, description='Logging settings')


class ConfigManager:
    """Asynchronous configuration manager for the packager.

    Configuration is layered: schema defaults, then an optional YAML or JSON
    file, then environment variables such as
    ``MIXERPACK_ARCHIVER__EXTENSION=zip`` (sections and keys separated by a
    double underscore).

    Attributes:
        _config_path: Path to the configuration file
        _env_prefix: Prefix for environment variables
        _config: The loaded configuration
        _schema: The validated configuration model
        _loaded_from_file: Whether configuration was loaded from a file
    """

    ENV_SEPARATOR = '__'

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'MIXERPACK_'
    ) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
            env_prefix: Prefix for environment variables
        """
        self._config_path = pathlib.Path(config_path) if config_path else pathlib.Path('mixerpack.yaml')
        self._explicit_path = config_path is not None
        self._env_prefix = env_prefix
        self._config: Dict[str, Any] = {}
        self._schema: Optional[ConfigSchema] = None
        self._loaded_from_file = False
        self._initialized = False

    @property
    def loaded_from_file(self) -> bool:
        return self._loaded_from_file

    async def initialize(self) -> None:
        """Load configuration from defaults, file, and environment variables.

        Raises:
            ConfigurationError: If the file cannot be read or the resulting
                configuration is invalid
        """
        self._config = ConfigSchema().model_dump()
        await self._load_from_file()
        self._apply_env_vars()
        self._validate_config()
        self._initialized = True

    async def _load_from_file(self) -> None:
        """Load configuration from a file asynchronously.

        A missing default file is not an error; a missing file that was
        asked for explicitly is.

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        if not self._config_path.exists():
            if self._explicit_path:
                raise ConfigurationError(
                    f'Config file not found: {self._config_path}',
                    config_key='config_path'
                )
            return

        suffix = self._config_path.suffix.lower()
        if suffix not in ('.yaml', '.yml', '.json'):
            raise ConfigurationError(
                f'Unsupported config file format: {self._config_path.suffix}',
                config_key='config_path'
            )

        try:
            async with aiofiles.open(self._config_path, 'r', encoding='utf-8') as f:
                content = await f.read()

            if suffix == '.json':
                file_config = json.loads(content)
            else:
                file_config = yaml.safe_load(content)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f'Error reading config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigurationError(
                    f'Config file {self._config_path} must contain a mapping',
                    config_key='config_path'
                )
            self._merge_config(self._config, file_config)
            self._loaded_from_file = True

    def _merge_config(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge_config(target[key], value)
            else:
                target[key] = deepcopy(value)

    def _apply_env_vars(self) -> None:
        """Apply environment variables to the configuration.

        Overrides configuration values with environment variables.
        """
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            config_path = env_name[len(self._env_prefix):].lower().split(self.ENV_SEPARATOR)
            self._set_nested_value(self._config, config_path, self._parse_env_value(env_value))

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable values into appropriate types.

        Args:
            value: The string value from the environment

        Returns:
            The parsed value (bool, int, float, or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
                return int(value)
            return float(value)
        except ValueError:
            return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        """Set a nested value in the configuration dictionary.

        Args:
            config: The configuration dictionary
            path: List of keys forming the path to the value
            value: The value to set
        """
        if not path:
            return

        if len(path) == 1:
            config[path[0]] = value
            return

        key = path[0]
        if not isinstance(config.get(key), dict):
            config[key] = {}

        self._set_nested_value(config[key], path[1:], value)

    def _validate_config(self) -> None:
        """Validate the configuration against the schema.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            self._schema = ConfigSchema(**self._config)
            self._config = self._schema.model_dump()
        except ValidationError as e:
            errors = e.errors()
            error_details = ', '.join((
                f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
                for error in errors
            ))
            raise ConfigurationError(
                f'Invalid configuration: {error_details}',
                details={'validation_errors': [
                    {'loc': list(error['loc']), 'msg': error['msg']} for error in errors
                ]}
            ) from e

    @property
    def schema(self) -> ConfigSchema:
        if self._schema is None:
            raise ConfigurationError('Cannot access configuration before initialization')
        return self._schema

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key.

        Args:
            key: The configuration key (dot-separated for nested values)
            default: Default value if the key doesn't exist

        Returns:
            The configuration value or default

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        result: Any = self._config
        try:
            for part in key.split('.'):
                result = result[part]
            return result
        except (KeyError, TypeError):
            return default
