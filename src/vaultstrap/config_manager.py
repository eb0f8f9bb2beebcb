"""Configuration management module.

Persistent defaults for resource group, vault name, region and identity
settings, stored as TOML at ~/.vaultstrap/config.toml.

Security:
- Config file permissions: 0600 (owner read/write only)
- Never stores secrets (VM password and client secrets are not config)
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import tomli
import tomlkit

from vaultstrap.errors import ConfigError
from vaultstrap.models import DEFAULT_REGION, DEFAULT_RESOURCE_GROUP, DEFAULT_VAULT_NAME

logger = logging.getLogger(__name__)


@dataclass
class VaultstrapConfig:
    """vaultstrap configuration data."""

    default_resource_group: str = DEFAULT_RESOURCE_GROUP
    default_vault_name: str = DEFAULT_VAULT_NAME
    default_region: str = DEFAULT_REGION
    default_app_name: str = "ExampleApp"
    default_homepage: str = "http://www.contosorg.org"
    default_identifier_uris: str = "https://www.contosorg.org/example"
    default_role: str = "Contributor"
    az_timeout: int = 60

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VaultstrapConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigManager:
    """Manage the vaultstrap configuration file."""

    DEFAULT_CONFIG_DIR = Path.home() / ".vaultstrap"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If a custom path was given and does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path
        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> VaultstrapConfig:
        """Load configuration from file, falling back to defaults.

        Raises:
            ConfigError: If the file exists but cannot be parsed
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return VaultstrapConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)

            logger.debug(f"Loaded config from: {config_path}")
            return VaultstrapConfig.from_dict(data)

        except (OSError, tomli.TOMLDecodeError, TypeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: VaultstrapConfig, custom_path: str | None = None) -> Path:
        """Save configuration atomically with 0600 permissions.

        Existing comments and formatting are preserved.

        Returns:
            Path written

        Raises:
            ConfigError: If saving fails
        """
        config_path = (
            Path(custom_path).expanduser().resolve() if custom_path else cls.DEFAULT_CONFIG_FILE
        )
        temp_path = config_path.with_suffix(".tmp")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")
            return config_path

        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def set_value(cls, key: str, value: str, custom_path: str | None = None) -> Path:
        """Update one setting and save.

        Raises:
            ConfigError: If the key is unknown or the value has the wrong type
        """
        if custom_path and not Path(custom_path).expanduser().exists():
            config = VaultstrapConfig()
        else:
            config = cls.load_config(custom_path)
        field_types = {f.name: f.type for f in fields(VaultstrapConfig)}
        if key not in field_types:
            raise ConfigError(
                f"Unknown config key: {key}. Valid keys: {', '.join(sorted(field_types))}"
            )

        converted: Any = value
        if field_types[key] in (int, "int"):
            try:
                converted = int(value)
            except ValueError as e:
                raise ConfigError(f"{key} must be an integer, got {value!r}") from e

        setattr(config, key, converted)
        return cls.save_config(config, custom_path)


__all__ = ["ConfigManager", "VaultstrapConfig"]
