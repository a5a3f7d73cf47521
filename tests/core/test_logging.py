"""Tests for sleepguard.core.utils.logging."""

from loguru import logger

from sleepguard.core.utils.logging import setup_logging, short_hex


def test_setup_logging_writes_file(tmp_dir):
    log_file = f"{tmp_dir}/sleepguard.log"
    setup_logging(level="DEBUG", log_file=log_file)
    logger.debug("hello ledger")
    logger.remove()
    with open(log_file) as f:
        assert "hello ledger" in f.read()


def test_short_hex():
    value = "0x" + "ab" * 32
    short = short_hex(value)
    assert short.startswith("0xabababab")
    assert short.endswith("abab")
    assert len(short) < len(value)


def test_short_hex_keeps_short_values():
    assert short_hex("0x1234") == "0x1234"
