"""
Hierarchical configuration management.

Loads configuration from multiple sources with this precedence (highest wins):
    1. Environment variables (PREFIX_SECTION__KEY)
    2. Config file (YAML or JSON)
    3. Built-in defaults

Usage:
    config = Config(config_file="sleepguard.yaml")

    config.get("network.chain_id")           # dot-notation access
    config.get("grant.duration_days")
    resolve_ledger_address(config)           # address for the active network
"""

import json
import os
from typing import Any

import yaml

from .exceptions import ConfigurationError

_DEFAULT_ENV_PREFIX = "SLEEPGUARD_"
_DEFAULT_DATA_DIR_NAME = ".sleepguard-data"

LOCAL_CHAIN_ID = 31337
MAX_GRANT_DURATION_DAYS = 30


class Config:
    """
    Central configuration manager.

    Loads and merges configuration from defaults, a config file, and
    environment variables. Env vars use double-underscore to denote nesting:
    SLEEPGUARD_GRANT__DURATION_DAYS=3 -> config["grant"]["duration_days"] = "3"
    """

    def __init__(
        self,
        config_file: str | None = None,
        env_prefix: str = _DEFAULT_ENV_PREFIX,
        data_dir: str | None = None,
        defaults: dict[str, Any] | None = None,
    ):
        """
        Args:
            config_file: Path to YAML or JSON configuration file.
            env_prefix: Prefix for environment variable overrides.
            data_dir: Base directory for data storage. Defaults to ~/.sleepguard-data.
            defaults: Additional default values to merge (consumer-specific).
        """
        self.config_file = config_file
        self.env_prefix = env_prefix or ""
        self._data_dir = data_dir or os.path.join("~", _DEFAULT_DATA_DIR_NAME)
        self._extra_defaults = defaults or {}
        self.config_data: dict[str, Any] = {}

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from all sources."""
        self.config_data = self._get_default_config()

        if self._extra_defaults:
            self._update_dict(self.config_data, self._extra_defaults)

        if self.config_file and os.path.exists(self.config_file):
            file_config = self._load_file(self.config_file)
            self._update_dict(self.config_data, file_config)

        # Env vars override everything
        self._load_from_env()

    def _get_default_config(self) -> dict[str, Any]:
        data_dir = os.path.expanduser(self._data_dir)
        return {
            "paths": {
                "data_dir": data_dir,
                "log_dir": os.path.join(data_dir, "logs"),
            },
            "network": {
                "chain_id": LOCAL_CHAIN_ID,
            },
            # Ledger addresses keyed by chain id; the local network fills its own in.
            "networks": {},
            "grant": {
                "duration_days": 7,
            },
            "logging": {
                "level": "WARNING",
            },
        }

    @staticmethod
    def _load_file(path: str) -> dict[str, Any]:
        """Load a YAML or JSON config file."""
        ext = os.path.splitext(path)[1].lower()
        with open(path) as f:
            if ext in (".yaml", ".yml"):
                return yaml.safe_load(f) or {}
            elif ext == ".json":
                return json.load(f)
        return {}

    def _update_dict(self, target: dict, source: dict) -> None:
        """Recursively merge source into target."""
        for key, value in source.items():
            key = str(key)
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._update_dict(target[key], value)
            else:
                target[key] = value

    def _load_from_env(self) -> None:
        """Override config values from environment variables."""
        if not self.env_prefix:
            return
        for env_key, env_value in os.environ.items():
            if not env_key.startswith(self.env_prefix):
                continue
            config_key = env_key[len(self.env_prefix) :].lower()
            key_parts = config_key.split("__")

            current = self.config_data
            for part in key_parts[:-1]:
                if part not in current:
                    current[part] = {}
                current = current[part]
            current[key_parts[-1]] = env_value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a config value by dot-notation path.

        Args:
            key_path: e.g. "network.chain_id", "grant.duration_days"
            default: Returned when key is not found.
        """
        parts = key_path.split(".")
        current = self.config_data
        for part in parts:
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def set(self, key_path: str, value: Any) -> None:
        """Set a config value by dot-notation path, creating intermediate dicts."""
        parts = key_path.split(".")
        current = self.config_data
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def get_log_file(self) -> str:
        """Path of the rotating log file under ``paths.log_dir``."""
        return os.path.join(os.path.expanduser(self.get("paths.log_dir")), "sleepguard.log")

    def get_grant_duration_days(self) -> int:
        """Return the configured grant window, validated to 1..30 days."""
        raw = self.get("grant.duration_days", 7)
        try:
            days = int(raw)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"grant.duration_days must be an integer, got {raw!r}") from e
        if not 1 <= days <= MAX_GRANT_DURATION_DAYS:
            raise ConfigurationError(f"grant.duration_days must be between 1 and {MAX_GRANT_DURATION_DAYS}, got {days}")
        return days


def resolve_ledger_address(config: Config, chain_id: int | None = None) -> str:
    """Return the ledger address deployed on *chain_id* (default: the active network)."""
    if chain_id is None:
        chain_id = int(config.get("network.chain_id", LOCAL_CHAIN_ID))
    entry = config.get(f"networks.{chain_id}")
    address = entry.get("ledger_address") if isinstance(entry, dict) else None
    if not address or int(address, 16) == 0:
        raise ConfigurationError(f"No ledger deployed for chain id {chain_id}")
    return address

