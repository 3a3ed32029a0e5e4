"""
Configuration management for service-flow.

This module provides environment-based configuration using Pydantic
BaseSettings. The values here seed the global service configuration
(``service_flow.get_config()``) and the logging setup, so a deployment can
change framework defaults without touching code.

Environment variables are loaded with the ``SERVICE_FLOW_`` prefix. For
example, ``SERVICE_FLOW_BREAK_ON_ERROR=false`` changes the default break
policy for every service that does not override it.
"""

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENV_FILE = Path.cwd() / ".env"
ENV_FILE_OVERRIDE = os.getenv("SERVICE_FLOW_ENV_FILE")
if ENV_FILE_OVERRIDE:
    env_file_candidate = Path(ENV_FILE_OVERRIDE).expanduser()
    if not env_file_candidate.is_absolute():
        env_file_candidate = Path.cwd() / env_file_candidate
    SETTINGS_ENV_FILE = env_file_candidate
else:
    SETTINGS_ENV_FILE = DEFAULT_ENV_FILE

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """
    Framework settings with environment variable support.

    Service policy defaults (all overridable per class and per run):
    - use_transactions: wrap each run in the configured transaction provider
    - break_on_error / rollback_on_error / raise_on_error / load_errors
    - break_on_warning / rollback_on_warning / raise_on_warning / load_warnings
    - require_arg_type / require_output_type: definition-time type checks

    Logging:
    - log_level: level for the structlog/stdlib pipeline
    - log_to_file: also write logs to a daily rotating file
    - log_file_dir: directory for log files
    """

    # Transaction handling
    use_transactions: bool = Field(
        default=True, description="Wrap service runs in a transaction"
    )

    # Error policy
    load_errors: bool = Field(
        default=True, description="Copy child errors to the chaining parent"
    )
    break_on_error: bool = Field(
        default=True, description="Stop running steps once an error is added"
    )
    raise_on_error: bool = Field(
        default=False, description="Raise ServiceFailedError when a run fails"
    )
    rollback_on_error: bool = Field(
        default=True, description="Roll back the transaction when an error is added"
    )

    # Warning policy
    load_warnings: bool = Field(
        default=True, description="Copy child warnings to the chaining parent"
    )
    break_on_warning: bool = Field(
        default=False, description="Stop running steps once a warning is added"
    )
    raise_on_warning: bool = Field(
        default=False, description="Raise ServiceFailedError when a run has warnings"
    )
    rollback_on_warning: bool = Field(
        default=False,
        description="Roll back the transaction when a warning is added",
    )

    # Definition checks
    require_arg_type: bool = Field(
        default=True, description="Arguments must declare a type"
    )
    require_output_type: bool = Field(
        default=True, description="Outputs must declare a type"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(
        default=False, description="Also write logs to a rotating file"
    )
    log_file_dir: str = Field(default="logs", description="Directory for log files")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the log level name."""
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}, got {v!r}"
            )
        return level

    def service_defaults(self) -> dict:
        """Return the subset of settings that seeds ServiceConfig."""
        return self.model_dump(
            include={
                "use_transactions",
                "load_errors",
                "break_on_error",
                "raise_on_error",
                "rollback_on_error",
                "load_warnings",
                "break_on_warning",
                "raise_on_warning",
                "rollback_on_warning",
                "require_arg_type",
                "require_output_type",
            }
        )

    model_config = SettingsConfigDict(
        env_prefix="SERVICE_FLOW_",
        env_file=str(SETTINGS_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once and reused; tests that change the environment
    call ``get_settings.cache_clear()`` first.

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()
