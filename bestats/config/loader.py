"""Configuration loader with YAML parsing and environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..utils.errors import ConfigurationError
from .models import CollectorSystemConfig


class ConfigLoader:
    """Load and validate collector configuration."""

    @staticmethod
    def load_from_file(config_path: str) -> CollectorSystemConfig:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            CollectorSystemConfig: Validated configuration object

        Raises:
            ConfigurationError: If the file is missing, is not valid YAML,
                or fails validation
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        return ConfigLoader.load_from_dict(raw_config or {})

    @staticmethod
    def load_from_dict(raw_config: Any) -> CollectorSystemConfig:
        """
        Validate an already-parsed configuration mapping.

        Args:
            raw_config: Parsed YAML document

        Returns:
            CollectorSystemConfig: Validated configuration object

        Raises:
            ConfigurationError: If validation fails
        """
        if not isinstance(raw_config, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        # Substitute environment variables
        raw_config = ConfigLoader._substitute_env_vars(raw_config)

        try:
            config = CollectorSystemConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        if not config.engines:
            raise ConfigurationError("No engines configured")
        return config

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """
        Recursively substitute ${ENV_VAR} placeholders with environment values.

        Args:
            obj: Object to process (str, dict, list, or primitive)

        Returns:
            Object with environment variables substituted
        """
        if isinstance(obj, str):
            # Replace ${VAR_NAME} with os.getenv('VAR_NAME')
            pattern = r'\$\{(\w+)\}'
            return re.sub(pattern, lambda m: os.getenv(m.group(1), ''), obj)

        elif isinstance(obj, dict):
            return {k: ConfigLoader._substitute_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [ConfigLoader._substitute_env_vars(item) for item in obj]

        return obj
