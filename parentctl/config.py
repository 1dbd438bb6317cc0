"""Configuration loading for parentctl.

Loads settings from TOML config file with CLI override support.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli

from parentctl.blocker.hosts import get_default_hosts_path

logger = logging.getLogger(__name__)


def get_default_data_dir() -> Path:
    """Get the per-user directory for rules and the password record."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "parentctl"
    return Path.home() / ".config" / "parentctl"


def get_default_config_path() -> Path:
    """Get the default config file path."""
    return get_default_data_dir() / "parentctl.toml"


def get_config_search_paths() -> list[Path]:
    """Get list of paths to search for config file."""
    return [
        Path("parentctl.toml"),  # Current directory
        get_default_config_path(),
        Path("/etc/parentctl/parentctl.toml"),
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_search_paths():
        if path.exists():
            return path
    return None


@dataclass
class Config:
    """Loaded configuration with all sections."""

    # Storage
    data_dir: Path = field(default_factory=get_default_data_dir)

    # Monitor
    poll_interval: float = 2.0
    grace_period: float = 0.3

    # Website blocking
    hosts_path: Path = field(default_factory=get_default_hosts_path)
    hosts_backup_path: Optional[Path] = None  # Default: beside the hosts file
    remove_sites_on_exit: bool = True

    # Password
    kdf_iterations: int = 120_000
    kdf_key_length: int = 32
    kdf_salt_length: int = 16

    # Slack
    slack_enabled: bool = False
    slack_webhook_url: Optional[str] = None
    slack_failures_only: bool = False

    @property
    def password_path(self) -> Path:
        return self.data_dir / "parental_pwd.txt"


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from TOML file.

    Args:
        config_path: Explicit path to config file, or None to search

    Returns:
        Config object with loaded values
    """
    config = Config()

    # Find config file
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        logger.debug("No config file found, using defaults")
        return config

    logger.info(f"Loading config from {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config file: {e}")
        return config

    # Storage section
    if "storage" in data:
        storage = data["storage"]
        if "data_dir" in storage:
            config.data_dir = Path(storage["data_dir"]).expanduser()

    # Monitor section
    if "monitor" in data:
        monitor = data["monitor"]
        if "poll_interval" in monitor:
            config.poll_interval = float(monitor["poll_interval"])
        if "grace_period" in monitor:
            config.grace_period = float(monitor["grace_period"])

    # Sites section
    if "sites" in data:
        sites = data["sites"]
        if "hosts_path" in sites:
            config.hosts_path = Path(sites["hosts_path"]).expanduser()
        if "backup_path" in sites:
            config.hosts_backup_path = Path(sites["backup_path"]).expanduser()
        if "remove_on_exit" in sites:
            config.remove_sites_on_exit = sites["remove_on_exit"]

    # Security section
    if "security" in data:
        security = data["security"]
        if "kdf_iterations" in security:
            config.kdf_iterations = security["kdf_iterations"]
        if "key_length" in security:
            config.kdf_key_length = security["key_length"]
        if "salt_length" in security:
            config.kdf_salt_length = security["salt_length"]

    # Slack section
    if "slack" in data:
        slack = data["slack"]
        if "enabled" in slack:
            config.slack_enabled = slack["enabled"]
        if "webhook_url" in slack:
            config.slack_webhook_url = slack["webhook_url"]
        if "failures_only" in slack:
            config.slack_failures_only = slack["failures_only"]

    return config


def merge_cli_options(config: Config, **cli_options: Any) -> Config:
    """Merge CLI options into config (CLI takes precedence).

    Args:
        config: Base config from file
        **cli_options: CLI option overrides (None values are ignored)

    Returns:
        Config with CLI overrides applied
    """
    # Map CLI option names to config attributes
    mappings = {
        "data_dir": "data_dir",
        "interval": "poll_interval",
        "grace": "grace_period",
        "hosts": "hosts_path",
    }

    for cli_name, config_name in mappings.items():
        if cli_name in cli_options:
            value = cli_options[cli_name]
            if value is not None and value != "":
                if cli_name in ("data_dir", "hosts"):
                    value = Path(value)
                setattr(config, config_name, value)

    return config
