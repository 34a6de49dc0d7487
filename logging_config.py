"""
Console logging setup for the scanner scripts.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Loggers whose level follows the root level
SCANNER_LOGGERS = ("__main__", "dex", "pool_arbitrage")


def setup(level=logging.INFO):
    """
    Route all scanner logging to stdout with a short HH:MM:SS prefix.

    Replaces any handlers already attached to the root logger. Skipped pools
    and trade-size samples log at DEBUG, so they stay hidden at INFO.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    for name in SCANNER_LOGGERS:
        logging.getLogger(name).setLevel(level)


def setup_minimal():
    """Warnings and errors only (overflow skips, cancelled scans)."""
    setup(level=logging.WARNING)


def setup_debug():
    """Everything, including every skipped pool and sample."""
    setup(level=logging.DEBUG)


def setup_from_name(name: str):
    """Configure from a level name such as "info" or "DEBUG"."""
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    setup(level=level)
