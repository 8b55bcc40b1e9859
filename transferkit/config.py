"""
Configuration management for transferkit.

This module provides Pydantic-based configuration models with strict validation
so that a transfer can never start with settings the retry and multipart
machinery cannot honor. The configuration enforces:

- Retry delays are present whenever retries are enabled
- min_delay <= max_delay
- Part sizes and concurrency ceilings are positive
- Part plans stay within the object store's part-count limit

Configuration can be loaded from:
- YAML files (recommended for deployment)
- Environment variables (for container overrides)
- Direct instantiation (for testing)
"""

import os
from pathlib import Path
from typing import Any, Literal, Self

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from transferkit.exceptions import ConfigurationError

MiB = 1024 * 1024
GiB = 1024 * MiB


def validate_retry_settings(retry_count: int, min_delay: float | None, max_delay: float | None) -> None:
    """Fail fast on retry settings that cannot produce a backoff.

    Raises:
        ConfigurationError: If retries are requested without both delay bounds
    """
    if retry_count < 0:
        raise ConfigurationError(
            "retry_count must be non-negative",
            details={"retry_count": retry_count},
        )
    if retry_count and (not min_delay or not max_delay):
        raise ConfigurationError(
            "retry_min_delay and retry_max_delay are required when retry_count is set",
            details={
                "retry_count": retry_count,
                "retry_min_delay": min_delay,
                "retry_max_delay": max_delay,
            },
        )


class RetryConfig(BaseModel):
    """
    Retry policy configuration.

    Delays are in seconds. The defaults match S3-style object stores under load:
    three retries, backing off between 15 seconds and 5 minutes.
    """

    model_config = ConfigDict(frozen=True)

    retry_count: int = Field(default=3, ge=0, le=20, description="Retries after the first attempt")
    min_delay: float = Field(default=15.0, ge=0.0, description="Minimum backoff delay")
    max_delay: float = Field(default=300.0, ge=0.0, description="Maximum backoff delay")

    @model_validator(mode="after")
    def validate_delays(self) -> Self:
        """Reject retries without usable delay bounds."""
        validate_retry_settings(self.retry_count, self.min_delay, self.max_delay)
        if self.min_delay > self.max_delay:
            raise ConfigurationError(
                "retry min_delay must be <= max_delay",
                details={"min_delay": self.min_delay, "max_delay": self.max_delay},
            )
        return self


class BreakerConfig(BaseModel):
    """
    Circuit breaker configuration.

    The breaker's open/half-open/closed judgement belongs to pybreaker; these
    values are handed to it when transferkit creates the breaker itself.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="fetch", description="Breaker name used in logs and metrics")
    fail_max: int = Field(
        default=10, ge=1, description="Failures before the breaker opens"
    )
    reset_timeout: float = Field(
        default=30.0, gt=0.0, description="Seconds the breaker stays open before a trial call"
    )
    call_timeout: float = Field(
        default=60.0, gt=0.0, description="Per-call timeout recorded as a breaker failure"
    )


class TimeoutConfig(BaseModel):
    """Per-call wall-clock timeouts in seconds."""

    model_config = ConfigDict(frozen=True)

    upload: float = Field(default=60.0, gt=0.0, description="Upload timeout")
    download: float = Field(default=60.0, gt=0.0, description="Download timeout")


class MultipartConfig(BaseModel):
    """Multipart transfer configuration."""

    model_config = ConfigDict(frozen=True)

    part_size: int = Field(default=5 * MiB, ge=1, description="Bytes per part")
    max_parts: int = Field(default=10000, ge=1, description="Maximum parts per transfer")
    max_upload_size: int = Field(default=5 * GiB, ge=1, description="Largest single upload")
    upload_concurrency: int = Field(default=10, ge=1, le=1000, description="Parts uploaded at once")
    download_concurrency: int = Field(default=10, ge=1, le=1000, description="Parts downloaded at once")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    format: Literal["json", "text"] = Field(
        default="text", description="Log format"
    )


class TransferConfig(BaseModel):
    """
    Complete transfer configuration.

    Example:
        config = TransferConfig.from_file("transfer.yaml")
        config = TransferConfig.from_env()
    """

    model_config = ConfigDict(frozen=True)

    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retry policy")
    breaker: BreakerConfig = Field(default_factory=BreakerConfig, description="Circuit breaker")
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig, description="Timeouts")
    multipart: MultipartConfig = Field(
        default_factory=MultipartConfig, description="Multipart transfers"
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging")

    @model_validator(mode="after")
    def validate_multipart(self) -> Self:
        """A single part can never be larger than the largest allowed upload."""
        if self.multipart.part_size > self.multipart.max_upload_size:
            raise ConfigurationError(
                "multipart.part_size must not exceed multipart.max_upload_size",
                details={
                    "part_size": self.multipart.part_size,
                    "max_upload_size": self.multipart.max_upload_size,
                },
            )
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> "TransferConfig":
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Validated TransferConfig instance

        Raises:
            ConfigurationError: If file cannot be read or configuration is invalid
        """
        try:
            config_path = Path(path)
            if not config_path.exists():
                raise ConfigurationError(
                    f"Configuration file not found: {path}",
                    details={"path": str(path)},
                )

            with open(config_path) as f:
                data = yaml.safe_load(f)

            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise ConfigurationError(
                    "Configuration file must contain a YAML dictionary",
                    details={"path": str(path)},
                )

            return cls(**data)

        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {e}",
                details={"path": str(path), "error": str(e)},
            ) from e
        except Exception as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(
                f"Failed to load configuration: {e}",
                details={"path": str(path), "error": str(e)},
            ) from e

    @classmethod
    def from_env(cls, prefix: str = "TRANSFERKIT_") -> "TransferConfig":
        """
        Load configuration from environment variables.

        Variable names follow the pattern: {prefix}{SECTION}_{KEY}

        Examples:
            TRANSFERKIT_RETRY_RETRY_COUNT=5
            TRANSFERKIT_RETRY_MIN_DELAY=1
            TRANSFERKIT_BREAKER_RESET_TIMEOUT=10
            TRANSFERKIT_MULTIPART_PART_SIZE=8388608

        Args:
            prefix: Environment variable prefix (default: "TRANSFERKIT_")

        Returns:
            Validated TransferConfig instance

        Raises:
            ConfigurationError: If a variable cannot be validated
        """
        env_data: dict[str, dict[str, Any]] = {
            "retry": {},
            "breaker": {},
            "timeouts": {},
            "multipart": {},
            "logging": {},
        }

        for key, value in os.environ.items():
            if not key.startswith(prefix):
                continue

            config_path = key[len(prefix) :].lower().split("_", 1)
            if len(config_path) != 2:
                continue

            section, field = config_path
            if section in env_data:
                env_data[section][field] = value

        try:
            return cls(**{k: v for k, v in env_data.items() if v})
        except Exception as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(
                f"Failed to load configuration from environment: {e}",
                details={"error": str(e)},
            ) from e
