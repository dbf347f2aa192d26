"""
Configuration management for quintet.

This module loads settings from config.yaml and exposes them through dot-path
lookups and a handful of typed properties. Missing files fall back to the
built-in defaults so the library works without any configuration at all.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging


class ConfigManager:
    """
    Manages configuration loading and access for quintet.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file, merged over the defaults."""
        defaults = self._get_default_config()
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}

            if not isinstance(loaded, dict):
                raise ValueError(f"Configuration root must be a mapping: {self.config_path}")

            self._config = self._merge(defaults, loaded)
            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, ValueError, yaml.YAMLError) as e:
            logging.error(f"Failed to load configuration: {e}")
            self._config = defaults

    @staticmethod
    def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = ConfigManager._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "database": {
                "filename": "quintet.db",
                "table": "rel",
                "pool_size": 4
            },
            "paths": {
                "log_file": "quintet.log"
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "grants": {
                "admin_user": "admin",
                "max_depth": 64,
                "reference_exempt_types": [28, 116]
            },
            "reports": {
                "default_limit": 100,
                "max_limit": 10000,
                "row_cap": 99999
            },
            "dump": {
                "read_batch": 5000,
                "write_batch": 1000
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "reports.max_limit")
            default: Default value if key is not found

        Returns:
            The configuration value
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.

        Args:
            section: Name of the configuration section

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    # Convenience properties for commonly used values

    @property
    def database_filename(self) -> str:
        """Get database filename."""
        return self.get("database.filename", "quintet.db")

    @property
    def table_name(self) -> str:
        """Get the relation table name."""
        return self.get("database.table", "rel")

    @property
    def pool_size(self) -> int:
        """Get the cursor pool size."""
        return int(self.get("database.pool_size", 4))

    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "quintet.log")

    @property
    def admin_user(self) -> str:
        """Get the name of the principal that bypasses grant checks."""
        return self.get("grants.admin_user", "admin")

    @property
    def grant_max_depth(self) -> int:
        """Get the recursion guard for grant resolution."""
        return int(self.get("grants.max_depth", 64))

    @property
    def reference_exempt_types(self) -> List[int]:
        """Get row kinds whose value is never read as a reference during grant fallback."""
        return [int(t) for t in self.get("grants.reference_exempt_types", [28, 116])]

    @property
    def default_limit(self) -> int:
        return int(self.get("reports.default_limit", 100))

    @property
    def max_limit(self) -> int:
        return int(self.get("reports.max_limit", 10000))

    @property
    def row_cap(self) -> int:
        """Get the hard cap applied to totals/count-only report runs."""
        return int(self.get("reports.row_cap", 99999))

    @property
    def dump_read_batch(self) -> int:
        return int(self.get("dump.read_batch", 5000))

    @property
    def dump_write_batch(self) -> int:
        return int(self.get("dump.write_batch", 1000))


# Global configuration instance
config = ConfigManager()


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """
    Get the global configuration instance.

    Args:
        config_path: Optional path; when given, the global instance is reloaded from it
            in place, so modules holding a reference to it see the new settings

    Returns:
        The global ConfigManager instance
    """
    if config_path is not None:
        config.config_path = Path(config_path)
        config.reload()
    return config
