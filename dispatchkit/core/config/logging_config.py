"""Logging configuration models for dispatchkit."""

import sys
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, field_validator

_LEVEL_ORDER: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
    "CRITICAL": 50,
}
VALID_LEVELS = set(_LEVEL_ORDER)

CONSOLE_FORMAT = "<level>{level: <8}</level> | {name}:{function} - {message}"


class FileLoggingConfig(BaseModel):
    """Configuration for file-based logging."""

    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(default="dispatchkit.log", description="Path to log file")
    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    rotation: str = Field(default="10 MB", description="Log rotation size (e.g., '10 MB', '1 week')")
    retention: str = Field(default="1 week", description="Log retention period (e.g., '1 week', '30 days')")
    format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        description="Log message format",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        if v.upper() not in VALID_LEVELS:
            raise ValueError(f"Invalid log level '{v}'. Must be one of: {', '.join(sorted(VALID_LEVELS))}")
        return v.upper()

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate log file path."""
        if not v.strip():
            raise ValueError("Log file path cannot be empty")
        try:
            Path(v)
        except Exception as e:
            raise ValueError(f"Invalid log file path '{v}': {e}")
        return v


class LoggingConfig(BaseModel):
    """Top-level logging configuration."""

    file: FileLoggingConfig = Field(default_factory=FileLoggingConfig)
    console_level: str = Field(default="WARNING", description="Console logging level (DEBUG, INFO, WARNING, ERROR)")

    @field_validator("console_level")
    @classmethod
    def validate_console_level(cls, v: str) -> str:
        """Validate console logging level."""
        if v.upper() not in VALID_LEVELS:
            raise ValueError(f"Invalid console log level '{v}'. Must be one of: {', '.join(sorted(VALID_LEVELS))}")
        return v.upper()

    def is_enabled(self) -> bool:
        """Check if file logging is enabled."""
        return self.file.enabled


def setup_logging(verbose: bool = False, config: LoggingConfig | None = None) -> None:
    """Install loguru sinks for console and optional file logging.

    Verbose mode always logs DEBUG to the console. Otherwise the console uses
    the configured level, raised to WARNING when a log file is active so that
    routine progress goes to the file only.
    """
    logger.remove()

    if verbose:
        console_level = "DEBUG"
    elif config is None:
        console_level = "WARNING"
    elif config.is_enabled():
        console_level = max(
            config.console_level, "WARNING", key=lambda lvl: _LEVEL_ORDER[lvl]
        )
    else:
        console_level = config.console_level

    logger.add(sys.stderr, level=console_level, format=CONSOLE_FORMAT)

    if config is not None and config.is_enabled():
        file_cfg = config.file
        logger.add(
            file_cfg.path,
            level=file_cfg.level,
            rotation=file_cfg.rotation,
            retention=file_cfg.retention,
            format=file_cfg.format,
            enqueue=True,
        )
