"""
Configuration management for kindle-mtp.

Handles loading, saving, and accessing configuration values from
environment variables, config files, and default values.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from kindle_mtp.constants import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_LOG_DIR,
)

logger = logging.getLogger(__name__)

# Values kept verbatim: a selector like "1:7" or "3" is never a number
RAW_ENV_VARS = frozenset({"KINDLE_MTP_DEVICE", "KINDLE_MTP_LOG_DIR", "KINDLE_MTP_CONFIG_DIR"})


@dataclass
class DeviceConfig:
    """Configuration for device selection."""

    selector: Optional[str] = None  # "bus:devnum"


@dataclass
class TransferConfig:
    """Configuration for file transfers."""

    overwrite: bool = True  # pulls may replace existing local files


@dataclass
class Config:
    """
    Main configuration container for kindle-mtp.

    Configuration is loaded from (in order of precedence):
    1. Environment variables (KINDLE_MTP_*)
    2. Config file (~/.kindle-mtp/config.json)
    3. Default values

    Example:
        config = Config.load()
        print(config.device.selector)

        # Or with custom config file
        config = Config.load(Path("/custom/config.json"))
    """

    # Directory paths
    config_dir: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR)
    log_dir: Path = field(default_factory=lambda: DEFAULT_LOG_DIR)

    # Sub-configurations
    device: DeviceConfig = field(default_factory=DeviceConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)

    # Logging
    log_level: str = "WARNING"
    log_to_file: bool = False

    def __post_init__(self) -> None:
        """Ensure paths are Path objects."""
        self.config_dir = Path(self.config_dir)
        self.log_dir = Path(self.log_dir)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> Config:
        """
        Load configuration from file and environment.

        Args:
            config_path: Optional path to config file. If not provided,
                        uses default location (~/.kindle-mtp/config.json).

        Returns:
            Config instance with loaded values.
        """
        # Load environment variables from .env file if present
        load_dotenv()

        config_path = Path(config_path) if config_path else DEFAULT_CONFIG_FILE
        config_data: dict[str, Any] = {}

        if config_path.exists():
            try:
                with open(config_path) as f:
                    config_data = json.load(f)
                logger.debug(f"Loaded config from {config_path}")
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")

        if not isinstance(config_data, dict):
            logger.warning(f"Ignoring config at {config_path}: not a JSON object")
            config_data = {}

        config_data = cls._apply_env_overrides(config_data)
        return cls._from_dict(config_data)

    @classmethod
    def _apply_env_overrides(cls, config_data: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variable overrides to config data."""
        env_mappings = {
            "KINDLE_MTP_CONFIG_DIR": "config_dir",
            "KINDLE_MTP_LOG_DIR": "log_dir",
            "KINDLE_MTP_LOG_LEVEL": "log_level",
            "KINDLE_MTP_LOG_TO_FILE": "log_to_file",
            "KINDLE_MTP_DEVICE": ("device", "selector"),
            "KINDLE_MTP_OVERWRITE": ("transfer", "overwrite"),
        }

        for env_var, config_key in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                if env_var not in RAW_ENV_VARS:
                    value = cls._parse_env_value(value)
                if isinstance(config_key, tuple):
                    section, key = config_key
                    if not isinstance(config_data.get(section), dict):
                        config_data[section] = {}
                    config_data[section][key] = value
                else:
                    config_data[config_key] = value

        return config_data

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable value to appropriate type."""
        if value.lower() in ("true", "yes", "1"):
            return True
        if value.lower() in ("false", "no", "0"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Config:
        """Create Config from dictionary."""
        device_data = data.pop("device", None) or {}
        transfer_data = data.pop("transfer", None) or {}

        return cls(
            config_dir=Path(data.get("config_dir", DEFAULT_CONFIG_DIR)),
            log_dir=Path(data.get("log_dir", DEFAULT_LOG_DIR)),
            device=DeviceConfig(**device_data),
            transfer=TransferConfig(**transfer_data),
            log_level=str(data.get("log_level", "WARNING")).upper(),
            log_to_file=bool(data.get("log_to_file", False)),
        )

    def save(self, config_path: Optional[Path] = None) -> None:
        """
        Save configuration to file.

        Args:
            config_path: Optional path to save to. If not provided,
                        uses default location.
        """
        config_path = Path(config_path) if config_path else DEFAULT_CONFIG_FILE
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(f"Saved config to {config_path}")

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "config_dir": str(self.config_dir),
            "log_dir": str(self.log_dir),
            "device": asdict(self.device),
            "transfer": asdict(self.transfer),
            "log_level": self.log_level,
            "log_to_file": self.log_to_file,
        }

    def ensure_directories(self) -> None:
        """Create all configured directories if they don't exist."""
        for directory in [self.config_dir, self.log_dir]:
            directory.mkdir(parents=True, exist_ok=True)


# Global config instance (lazy loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def reload_config(config_path: Optional[Path] = None) -> Config:
    """Reload configuration from file."""
    global _config
    _config = Config.load(config_path)
    return _config
