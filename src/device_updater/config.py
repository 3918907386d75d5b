"""Updater configuration.

Settings come from (in increasing priority) built-in defaults, a YAML
configuration file and ``DEVICE_UPDATER_*`` environment variables. Per-host
material such as a device's self-signed ``cert.pem`` lives in a directory
named after the host below the configuration root.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

APP_NAME = "device-updater"

ENV_PREFIX = "DEVICE_UPDATER_"


def default_config_root() -> Path:
    """Get the directory holding per-host configuration.

    Returns:
        ``$XDG_CONFIG_HOME/device-updater`` or ``~/.config/device-updater``
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_NAME
    return Path("~/.config").expanduser() / APP_NAME


def hostname_specific_config_dir(
    host: str,
    config_root: Optional[Path] = None
) -> Path:
    """Resolve the configuration directory for a single device.

    Args:
        host: Device host as it appears in the base URL (may include a port)
        config_root: Directory containing one subdirectory per host

    Returns:
        Path to the host's directory (it need not exist)
    """
    root = Path(config_root) if config_root else default_config_root()
    return root / host


class UpdaterConfig(BaseModel):
    """Configuration for pushing updates to one device."""

    host: Optional[str] = Field(
        default=None,
        description="Device host name, optionally with port"
    )

    tls: str = Field(
        default="",
        description=(
            "TLS mode: empty for plain HTTP, 'self-signed' to use the host's "
            "cert.pem, or a comma-separated list of certificate files"
        )
    )

    username: str = Field(
        default="admin",
        description="HTTP basic auth user name"
    )

    password: Optional[str] = Field(
        default=None,
        description="HTTP basic auth password"
    )

    request_timeout_sec: Optional[float] = Field(
        default=None,
        description="Overall request timeout; unset keeps the transport default",
        gt=0.0
    )

    config_root: Optional[Path] = Field(
        default=None,
        description="Directory containing per-host configuration"
    )

    reboot: bool = Field(
        default=True,
        description="Reboot the device after switching partitions"
    )

    @property
    def auth(self) -> Optional[tuple[str, str]]:
        """Basic auth credentials, if a password is configured."""
        if self.password is None:
            return None
        return (self.username, self.password)

    def host_config_dir(self, host: str) -> Path:
        """Per-host configuration directory under this config's root."""
        return hostname_specific_config_dir(host, self.config_root)


class ConfigLoader:
    """Loads updater settings from YAML."""

    DEFAULT_CONFIG_PATHS = [
        "/etc/device-updater/config.yaml",
        "./config/device-updater.yaml",
        "~/.config/device-updater/config.yaml"
    ]

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to configuration file (optional)
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from the first existing file.

        Returns:
            Configuration dictionary (empty when no file was found)

        Raises:
            yaml.YAMLError: If the file is not valid YAML
            OSError: If the file exists but cannot be read
        """
        if self.config_path:
            paths = [self.config_path]
        else:
            paths = self.DEFAULT_CONFIG_PATHS

        for path in paths:
            expanded_path = Path(path).expanduser()
            if expanded_path.exists():
                with open(expanded_path, "r") as f:
                    self.config = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {expanded_path}")
                return self.config

        if self.config_path:
            logger.warning(f"Configuration file {self.config_path} not found")
        else:
            logger.debug("No configuration file found, using defaults")
        self.config = {}
        return self.config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'updater.tls')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for field in ("host", "tls", "username", "password", "config_root"):
        value = os.environ.get(ENV_PREFIX + field.upper())
        if value is not None:
            overrides[field] = value
    return overrides


def load_config(config_path: Optional[str] = None, **overrides: Any) -> UpdaterConfig:
    """Build the effective configuration.

    Args:
        config_path: Explicit YAML file (otherwise the default locations)
        **overrides: Values that win over file and environment (None is ignored)

    Returns:
        Validated configuration
    """
    loader = ConfigLoader(config_path)
    values = dict(loader.get("updater", {}) or {})
    values.update(_env_overrides())
    values.update({k: v for k, v in overrides.items() if v is not None})
    return UpdaterConfig(**values)
