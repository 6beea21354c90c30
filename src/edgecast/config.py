"""Process-level runtime settings for edgecast."""

from enum import Enum
from pathlib import Path

from platformdirs import user_data_dir
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Log levels accepted by ``EDGECAST_LOG_LEVEL``."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class EdgecastSettings(BaseSettings):
    """Runtime settings read from ``EDGECAST_*`` variables or ``.env``."""

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Root log level for the command line tools",
        alias="EDGECAST_LOG_LEVEL",
    )

    seed: int | None = Field(
        default=None,
        description="Default seed for sampling and shuffling when none is given",
        alias="EDGECAST_SEED",
    )

    config_path: Path | None = Field(
        default=None,
        description="Base YAML configuration file",
        alias="EDGECAST_CONFIG",
    )

    reports_dir: Path = Field(
        default_factory=lambda: Path(user_data_dir("edgecast")) / "reports",
        description="Directory where backtest and simulation reports are written",
        alias="EDGECAST_REPORTS_DIR",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
config = EdgecastSettings()


def get_config() -> EdgecastSettings:
    """Get the current runtime settings."""
    return config


def update_config(**kwargs) -> None:
    """Update runtime settings in place."""
    global config
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ValueError(f"Unknown configuration option: {key}")


def reset_config() -> None:
    """Re-read runtime settings from the environment."""
    global config
    config = EdgecastSettings()
