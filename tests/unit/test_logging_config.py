"""
Tests for console logging setup.
"""

import logging

import pytest

import logging_config


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_replaces_handlers():
    logging_config.setup()
    logging_config.setup()

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.INFO
    assert logging.getLogger("dex").level == logging.INFO


def test_setup_debug_and_minimal():
    logging_config.setup_debug()
    assert logging.getLogger("pool_arbitrage").level == logging.DEBUG

    logging_config.setup_minimal()
    assert logging.getLogger().level == logging.WARNING


def test_setup_from_name():
    logging_config.setup_from_name("debug")
    assert logging.getLogger().level == logging.DEBUG


def test_setup_from_unknown_name():
    with pytest.raises(ValueError, match="Unknown log level"):
        logging_config.setup_from_name("chatty")
