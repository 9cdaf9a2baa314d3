"""Runtime configuration loading with Pydantic validation."""

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from repo_mirror.exceptions import ConfigurationError
from repo_mirror.scheduler import MAX_ATTEMPTS, RETRY_DELAY_SECONDS

CONFIG_ENV_VAR = "REPO_MIRROR_CONFIG"
DEFAULT_CONFIG_PATH = "~/.repo-mirror/config.yml"
DEFAULT_SETTINGS_FILE = "~/.repo-mirror/settings.json"


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails."""

    pass


class MirrorConfig(BaseModel):
    """Process-wide settings for the mirror service."""

    settings_file: str = Field(DEFAULT_SETTINGS_FILE, description="Mirror settings JSON file")
    max_workers: int = Field(4, gt=0, description="Concurrent mirror pushes")
    max_attempts: int = Field(MAX_ATTEMPTS, gt=0, description="Attempts per mirror per trigger")
    retry_delay_seconds: float = Field(
        RETRY_DELAY_SECONDS, gt=0, description="Delay between failed attempts"
    )
    log_level: str = Field("INFO", description="Log level")
    log_file: Optional[str] = Field(None, description="Also write logs to this file")
    json_logs: bool = Field(False, description="JSON-formatted logs")
    dry_run: bool = Field(False, description="Describe pushes without running them")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a standard logging level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got '{v}'")
        return v.upper()


class ConfigLoader:
    """Load and validate configuration from YAML files."""

    def _substitute_env_vars(self, value: Any) -> Any:
        """
        Recursively substitute environment variables in configuration values.

        Supports ``${VAR}`` (required), ``${VAR:-default}`` and ``$$`` for a
        literal ``$``.

        Raises:
            ConfigValidationError: If a required environment variable is not set
        """
        if isinstance(value, str):
            result = value.replace("$$", "\x00")

            def replace_var(match: "re.Match[str]") -> str:
                var_with_default = match.group(1)

                if ":-" in var_with_default:
                    var_name, default_value = var_with_default.split(":-", 1)
                    env_value = os.environ.get(var_name)
                    if env_value is None or env_value == "":
                        return default_value
                    return env_value

                env_value = os.environ.get(var_with_default)
                if env_value is None:
                    raise ConfigValidationError(
                        f"Required environment variable '{var_with_default}' is not set"
                    )
                return env_value

            result = re.sub(r"\$\{([^}]+)\}", replace_var, result)
            return result.replace("\x00", "$")

        elif isinstance(value, dict):
            return {k: self._substitute_env_vars(v) for k, v in value.items()}

        elif isinstance(value, list):
            return [self._substitute_env_vars(item) for item in value]

        return value

    def load_from_file(self, file_path: str) -> MirrorConfig:
        """
        Load configuration from a YAML file.

        Args:
            file_path: Path to YAML configuration file

        Returns:
            Validated configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigValidationError: If the YAML or its values are invalid
        """
        config_path = Path(file_path).expanduser()

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        try:
            with open(config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in {file_path}: {e}") from e

        if not isinstance(raw_config, dict):
            raise ConfigValidationError(f"Configuration in {file_path} must be a mapping")

        substituted_config = self._substitute_env_vars(raw_config)

        try:
            return MirrorConfig(**substituted_config)
        except ValidationError as e:
            raise ConfigValidationError(f"Configuration validation failed: {e}") from e

    def load_default(self) -> MirrorConfig:
        """
        Load configuration from $REPO_MIRROR_CONFIG or the default path.

        Returns:
            Validated configuration, or defaults when no file exists
        """
        file_path = os.environ.get(CONFIG_ENV_VAR)
        if file_path:
            return self.load_from_file(file_path)

        if Path(DEFAULT_CONFIG_PATH).expanduser().exists():
            return self.load_from_file(DEFAULT_CONFIG_PATH)

        return MirrorConfig()
