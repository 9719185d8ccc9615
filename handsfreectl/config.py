"""
Configuration loading for the handsfree control client.
"""

import os
import tomllib
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
import logging

from handsfreectl.client import RESPONSE_TIMEOUT_SECONDS
from handsfreectl.protocol import OutputMode

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass
class ClientConfig:
    output: OutputMode = OutputMode.KEYBOARD
    response_timeout_seconds: float = RESPONSE_TIMEOUT_SECONDS


@dataclass
class LoggingConfig:
    level: str = "warning"
    file: Optional[str] = None


@dataclass
class Config:
    client: ClientConfig = field(default_factory=ClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_path() -> Path:
    """~/.config/handsfree/ctl.toml, honouring XDG_CONFIG_HOME"""
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "handsfree" / "ctl.toml"


def _section(toml_data, name, config_path):
    data = toml_data.get(name, {})
    if not isinstance(data, dict):
        logger.warning(f"Ignoring [{name}] in {config_path}: expected a table, got {data!r}")
        return {}
    return data


def load_config(config_path=None) -> Config:
    """Load configuration, falling back to defaults for anything missing or invalid"""
    config_path = Path(config_path) if config_path else get_config_path()

    # Default config
    config = Config()

    if not config_path.exists():
        logger.debug(f"No config file found at {config_path}, using defaults")
        return config

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        logger.info("Using default configuration")
        return config

    # Load client config
    client_data = _section(toml_data, "client", config_path)
    if "output" in client_data:
        try:
            config.client.output = OutputMode(client_data["output"])
        except ValueError:
            logger.warning(f"Ignoring unknown output mode {client_data['output']!r} in {config_path}")

    if "response_timeout_seconds" in client_data:
        timeout = client_data["response_timeout_seconds"]
        if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
            config.client.response_timeout_seconds = float(timeout)
        else:
            logger.warning(f"Ignoring invalid response_timeout_seconds {timeout!r} in {config_path}")

    # Load logging config
    logging_data = _section(toml_data, "logging", config_path)
    level = str(logging_data.get("level", config.logging.level)).lower()
    if level in LOG_LEVELS:
        config.logging.level = level
    else:
        logger.warning(f"Ignoring unknown log level {level!r} in {config_path}")

    log_file = logging_data.get("file")
    if log_file is None or isinstance(log_file, str):
        config.logging.file = log_file or None
    else:
        logger.warning(f"Ignoring invalid log file {log_file!r} in {config_path}")

    logger.debug(f"Loaded config from {config_path}")
    logger.debug(f"Output: {config.client.output.value}, Timeout: {config.client.response_timeout_seconds}s")

    return config
