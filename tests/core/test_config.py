"""Tests for sleepguard.core.config."""

import os

import pytest
import yaml

from sleepguard.core.config import Config, resolve_ledger_address
from sleepguard.core.exceptions import ConfigurationError


class TestConfig:
    def test_defaults(self):
        config = Config(env_prefix="")
        assert config.get("paths.data_dir").endswith(".sleepguard-data")
        assert config.get("network.chain_id") == 31337
        assert config.get("grant.duration_days") == 7

    def test_custom_data_dir(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        assert config.get("paths.data_dir") == tmp_dir
        assert config.get("paths.log_dir") == os.path.join(tmp_dir, "logs")

    def test_custom_env_prefix(self, monkeypatch, tmp_dir):
        monkeypatch.setenv("MYAPP_GRANT__DURATION_DAYS", "3")
        config = Config(env_prefix="MYAPP_", data_dir=tmp_dir)
        assert config.get_grant_duration_days() == 3

    def test_yaml_config_file(self, tmp_config_file, tmp_dir):
        config = Config(config_file=tmp_config_file, data_dir=tmp_dir)
        assert config.get("grant.duration_days") == 2

    def test_json_config_file(self, tmp_dir):
        path = os.path.join(tmp_dir, "config.json")
        with open(path, "w") as f:
            f.write('{"logging": {"level": "DEBUG"}}')
        config = Config(config_file=path, data_dir=tmp_dir)
        assert config.get("logging.level") == "DEBUG"

    def test_env_overrides_file(self, tmp_config_file, tmp_dir, monkeypatch):
        monkeypatch.setenv("SLEEPGUARD_GRANT__DURATION_DAYS", "5")
        config = Config(config_file=tmp_config_file, data_dir=tmp_dir)
        assert config.get_grant_duration_days() == 5

    def test_get_missing_key(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        assert config.get("nonexistent.key") is None
        assert config.get("nonexistent.key", "fallback") == "fallback"

    def test_set(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        config.set("custom.nested.value", 42)
        assert config.get("custom.nested.value") == 42

    @pytest.mark.parametrize("days", [0, 31, "soon"])
    def test_grant_duration_out_of_range(self, tmp_dir, days):
        config = Config(env_prefix="", data_dir=tmp_dir)
        config.set("grant.duration_days", days)
        with pytest.raises(ConfigurationError):
            config.get_grant_duration_days()


class TestResolveLedgerAddress:
    def test_resolves_active_network(self, tmp_dir):
        config = Config(env_prefix="", data_dir=tmp_dir)
        config.set("networks.31337.ledger_address", "0x" + "ab" * 20)
        assert resolve_ledger_address(config) == "0x" + "ab" * 20

    def test_yaml_integer_chain_keys(self, tmp_dir):
        path = os.path.join(tmp_dir, "config.yaml")
        with open(path, "w") as f:
            yaml.dump({"networks": {11155111: {"ledger_address": "0x" + "cd" * 20}}}, f)
        config = Config(config_file=path, env_prefix="", data_dir=tmp_dir)
        assert resolve_ledger_address(config, 11155111) == "0x" + "cd" * 20

    def test_missing_network(self, tmp_dir):
        config = Config(env_prefix="", data_dir=tmp_dir)
        with pytest.raises(ConfigurationError, match="31337"):
            resolve_ledger_address(config)

    def test_zero_address_is_not_deployed(self, tmp_dir):
        config = Config(env_prefix="", data_dir=tmp_dir)
        config.set("networks.31337.ledger_address", "0x" + "00" * 20)
        with pytest.raises(ConfigurationError):
            resolve_ledger_address(config)


class TestLogFile:
    def test_log_file_under_log_dir(self, tmp_dir):
        config = Config(env_prefix="", data_dir=tmp_dir)
        assert config.get_log_file() == os.path.join(tmp_dir, "logs", "sleepguard.log")

    def test_log_dir_override(self, tmp_dir, monkeypatch):
        monkeypatch.setenv("SLEEPGUARD_PATHS__LOG_DIR", os.path.join(tmp_dir, "elsewhere"))
        config = Config(data_dir=tmp_dir)
        assert config.get_log_file() == os.path.join(tmp_dir, "elsewhere", "sleepguard.log")
