"""
Configuration management for the Guest Pass service.
Handles loading, validating, and providing access to application settings.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field


@dataclass
class CacheConfig:
    """Client-side cache settings."""
    prefix: str
    version: str
    storage_file: Optional[str]
    quota_bytes: Optional[int]
    ttl_hours: Dict[str, float] = field(default_factory=dict)


@dataclass
class FetchConfig:
    """Remote fetch bounds."""
    residents_limit: int
    units_page_size: int
    communities_limit: int


@dataclass
class QuotaDefaultsConfig:
    """Fallbacks for communities without guest pass settings."""
    monthly_limit: int
    validity_duration_hours: int
    family_roles: List[str]


@dataclass
class AppConfig:
    """Application configuration settings."""
    host: str
    port: int
    debug: bool


@dataclass
class PathsConfig:
    """Path configuration settings."""
    data_dir: str
    document_store_file: str


class ConfigManager:
    """Manages application configuration loading and access."""

    def __init__(self, config_file: str = "guestpass_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        self._config = self._get_default_config()

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                    self._merge_config(file_config)
            except (json.JSONDecodeError, FileNotFoundError):
                # Keep default config if file is invalid or not found
                pass

        self._override_with_env()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "cache": {
                "prefix": "guestpass_cache_",
                "version": "1.0",
                "storage_file": None,
                "quota_bytes": 5 * 1024 * 1024,
                "ttl_hours": {}
            },
            "fetch": {
                "residents_limit": 5000,
                "units_page_size": 1000,
                "communities_limit": 100
            },
            "quota": {
                "monthly_limit": 100,
                "validity_duration_hours": 24,
                "family_roles": ["family"]
            },
            "app": {
                "host": "0.0.0.0",
                "port": 22582,
                "debug": False
            },
            "paths": {
                "data_dir": "data",
                "document_store_file": "documents.json"
            }
        }

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge file configuration with current config."""
        for section, values in file_config.items():
            if section in self._config:
                if isinstance(values, dict):
                    self._config[section].update(values)
                else:
                    self._config[section] = values
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        """Override configuration with environment variables."""
        # Cache settings
        if os.getenv("GUESTPASS_CACHE_PREFIX"):
            self._config["cache"]["prefix"] = os.getenv("GUESTPASS_CACHE_PREFIX")

        if os.getenv("GUESTPASS_CACHE_VERSION"):
            self._config["cache"]["version"] = os.getenv("GUESTPASS_CACHE_VERSION")

        if os.getenv("GUESTPASS_CACHE_QUOTA_BYTES"):
            self._config["cache"]["quota_bytes"] = int(os.getenv("GUESTPASS_CACHE_QUOTA_BYTES"))

        # Fetch settings
        if os.getenv("RESIDENTS_FETCH_LIMIT"):
            self._config["fetch"]["residents_limit"] = int(os.getenv("RESIDENTS_FETCH_LIMIT"))

        if os.getenv("UNITS_PAGE_SIZE"):
            self._config["fetch"]["units_page_size"] = int(os.getenv("UNITS_PAGE_SIZE"))

        # Quota defaults
        if os.getenv("DEFAULT_MONTHLY_LIMIT"):
            self._config["quota"]["monthly_limit"] = int(os.getenv("DEFAULT_MONTHLY_LIMIT"))

        if os.getenv("DEFAULT_VALIDITY_HOURS"):
            self._config["quota"]["validity_duration_hours"] = int(os.getenv("DEFAULT_VALIDITY_HOURS"))

        # App settings
        if os.getenv("APP_HOST"):
            self._config["app"]["host"] = os.getenv("APP_HOST")

        if os.getenv("APP_PORT"):
            self._config["app"]["port"] = int(os.getenv("APP_PORT"))

        if os.getenv("APP_DEBUG"):
            self._config["app"]["debug"] = os.getenv("APP_DEBUG").lower() == "true"

        if os.getenv("DATA_DIR"):
            self._config["paths"]["data_dir"] = os.getenv("DATA_DIR")

    def get_cache_config(self) -> CacheConfig:
        """Get cache configuration."""
        cache_config = self._config["cache"]
        return CacheConfig(
            prefix=cache_config["prefix"],
            version=cache_config["version"],
            storage_file=cache_config["storage_file"],
            quota_bytes=cache_config["quota_bytes"],
            ttl_hours=dict(cache_config.get("ttl_hours") or {})
        )

    def get_fetch_config(self) -> FetchConfig:
        """Get remote fetch configuration."""
        fetch_config = self._config["fetch"]
        return FetchConfig(
            residents_limit=fetch_config["residents_limit"],
            units_page_size=fetch_config["units_page_size"],
            communities_limit=fetch_config["communities_limit"]
        )

    def get_quota_defaults_config(self) -> QuotaDefaultsConfig:
        """Get quota fallback configuration."""
        quota_config = self._config["quota"]
        return QuotaDefaultsConfig(
            monthly_limit=quota_config["monthly_limit"],
            validity_duration_hours=quota_config["validity_duration_hours"],
            family_roles=list(quota_config["family_roles"])
        )

    def get_app_config(self) -> AppConfig:
        """Get application configuration."""
        app_config = self._config["app"]
        return AppConfig(
            host=app_config["host"],
            port=app_config["port"],
            debug=app_config["debug"]
        )

    def get_paths_config(self) -> PathsConfig:
        """Get paths configuration."""
        paths_config = self._config["paths"]
        return PathsConfig(
            data_dir=paths_config["data_dir"],
            document_store_file=paths_config["document_store_file"]
        )

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return self._config.copy()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)


# Global configuration instance
config_manager = ConfigManager()


def get_cache_config() -> CacheConfig:
    """Get cache configuration."""
    return config_manager.get_cache_config()


def get_fetch_config() -> FetchConfig:
    """Get remote fetch configuration."""
    return config_manager.get_fetch_config()


def get_quota_defaults_config() -> QuotaDefaultsConfig:
    """Get quota fallback configuration."""
    return config_manager.get_quota_defaults_config()


def get_app_config() -> AppConfig:
    """Get application configuration."""
    return config_manager.get_app_config()


def get_paths_config() -> PathsConfig:
    """Get paths configuration."""
    return config_manager.get_paths_config()


def reload_config() -> None:
    """Reload configuration."""
    config_manager.reload()


def save_config() -> None:
    """Save configuration to file."""
    config_manager.save_config()
