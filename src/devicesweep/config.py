"""
Configuration management for devicesweep.

Handles loading, validation, and access to Graph credentials, sweep
defaults and logging settings.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from devicesweep.policy.models import SweepOptions


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/devicesweep/devicesweep.yaml")
DEFAULT_EXPORT_FOLDER = Path(tempfile.gettempdir()) / "devicesweep"

DEFAULT_DAYS_BACK = 90

# Graph caps $top for /devices at 999
MAX_PAGE_SIZE = 999


class ConfigError(Exception):
    """Configuration is missing or unusable."""

    pass


def _env(*names: str) -> str | None:
    """Return the first non-empty environment variable among names."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


@dataclass
class GraphConfig:
    """Microsoft Graph connection settings."""

    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    authority: str = "https://login.microsoftonline.com"
    endpoint: str = "https://graph.microsoft.com/v1.0"
    timeout: int = 30
    page_size: int = MAX_PAGE_SIZE

    def __post_init__(self) -> None:
        # Load credentials from environment if not set
        if self.tenant_id is None:
            self.tenant_id = _env("DEVICESWEEP_TENANT_ID", "AZURE_TENANT_ID")
        if self.client_id is None:
            self.client_id = _env("DEVICESWEEP_CLIENT_ID", "AZURE_CLIENT_ID")
        if self.client_secret is None:
            self.client_secret = _env(
                "DEVICESWEEP_CLIENT_SECRET", "AZURE_CLIENT_SECRET"
            )

    @property
    def has_credentials(self) -> bool:
        """Check if all client-credential values are present."""
        return bool(self.tenant_id and self.client_id and self.client_secret)


@dataclass
class SweepConfig:
    """Default sweep settings, overridable from the command line."""

    days_back: int = DEFAULT_DAYS_BACK
    include_enabled: bool = True
    include_disabled: bool = True
    dry_run: bool = True
    export_folder: str = str(DEFAULT_EXPORT_FOLDER)

    def to_options(self, **overrides: Any) -> SweepOptions:
        """
        Freeze these settings into run options.

        Args:
            **overrides: Values that replace the configured ones. None
                values are ignored so unset CLI flags fall through.

        Returns:
            Immutable SweepOptions for a single run
        """
        values: dict[str, Any] = {
            "days_back": self.days_back,
            "include_enabled": self.include_enabled,
            "include_disabled": self.include_disabled,
            "dry_run": self.dry_run,
            "export_folder": self.export_folder,
        }
        for key, value in overrides.items():
            if key not in values:
                raise TypeError(f"Unknown sweep option: {key}")
            if value is not None:
                values[key] = value
        values["export_folder"] = Path(values["export_folder"])
        return SweepOptions(**values)


@dataclass
class LoggingConfig:
    """Logging settings."""

    log_level: str = "info"
    log_file: str | None = None


@dataclass
class DevicesweepConfig:
    """Main configuration container."""

    graph: GraphConfig = field(default_factory=GraphConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DevicesweepConfig:
        """Create configuration from dictionary."""
        return cls(
            graph=GraphConfig(**(data.get("graph") or {})),
            sweep=SweepConfig(**(data.get("sweep") or {})),
            logging=LoggingConfig(**(data.get("logging") or {})),
        )


def load_config(path: str | Path | None = None) -> DevicesweepConfig:
    """
    Load configuration from YAML file.

    Args:
        path: Path to configuration file. If None, uses default paths.

    Returns:
        DevicesweepConfig instance with loaded settings.

    Raises:
        FileNotFoundError: If an explicit config file is not found.
        yaml.YAMLError: If config file is invalid YAML.
        ConfigError: If the file is not a mapping.
    """
    if path is None:
        # Try default locations
        candidates = [
            DEFAULT_CONFIG_PATH,
            Path("config/devicesweep.yaml"),
            Path("devicesweep.yaml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path is None:
        # Return default configuration
        return DevicesweepConfig()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping: {path}")

    return DevicesweepConfig.from_dict(data)


def validate_config(
    config: DevicesweepConfig,
    require_credentials: bool = True,
) -> list[str]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate.
        require_credentials: Whether Graph credentials must be present.

    Returns:
        List of error messages. Empty list if valid.
    """
    errors: list[str] = []

    valid_log_levels = {"debug", "info", "warning", "error"}
    if config.logging.log_level not in valid_log_levels:
        errors.append(f"Invalid log_level: {config.logging.log_level}")

    if config.sweep.days_back < 0:
        errors.append(f"Invalid days_back: {config.sweep.days_back} (must be >= 0)")

    if config.graph.timeout <= 0:
        errors.append(f"Invalid Graph timeout: {config.graph.timeout}")

    if not (1 <= config.graph.page_size <= MAX_PAGE_SIZE):
        errors.append(f"Invalid Graph page_size: {config.graph.page_size}")

    if require_credentials:
        missing = [
            name
            for name in ("tenant_id", "client_id", "client_secret")
            if not getattr(config.graph, name)
        ]
        if missing:
            errors.append(
                "Graph credentials missing: " + ", ".join(missing)
            )

    return errors
