"""Shared test fixtures for sleepguard."""

import os
import tempfile

import pytest

from sleepguard.core.config import Config
from sleepguard.network import LocalNetwork
from sleepguard.payload import SleepEntry

# Small modulus keeps key generation fast; protocol behaviour does not depend on it.
TEST_KEY_LENGTH = 512
DAY = 86400
START = 1_760_000_000 - (1_760_000_000 % DAY)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_entry(day: int = 0, **overrides) -> SleepEntry:
    values = {
        "date": START + day * DAY,
        "bedtime": 1380,
        "wake_time": 420,
        "duration": 8.0,
        "deep_sleep_ratio": 45,
        "wake_count": 2,
        "sleep_score": 8,
    }
    values.update(overrides)
    return SleepEntry(**values)


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def tmp_config_file(tmp_dir):
    """Create a temporary YAML config file."""
    import yaml

    config_data = {
        "paths": {"data_dir": os.path.join(tmp_dir, "data")},
        "network": {"chain_id": 31337},
        "grant": {"duration_days": 2},
    }
    config_path = os.path.join(tmp_dir, "config.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def network(clock, tmp_dir):
    config = Config(env_prefix="", data_dir=tmp_dir)
    return LocalNetwork(config=config, key_length=TEST_KEY_LENGTH, clock=clock)


@pytest.fixture
def alice_wallet(network):
    return network.create_wallet(seed=b"a" * 32)


@pytest.fixture
def bob_wallet(network):
    return network.create_wallet(seed=b"b" * 32)


@pytest.fixture
def alice(network, alice_wallet):
    return network.client_for(alice_wallet)


@pytest.fixture
def bob(network, bob_wallet):
    return network.client_for(bob_wallet)


@pytest.fixture
def make_entry():
    """Factory for plaintext entries; ``day`` offsets the date by whole days."""
    return _make_entry
