#!/usr/bin/env python3
"""
Pool arbitrage scanner CLI.

Loads a scanner config and a pool snapshot, runs scan cycles and prints
expected-value-ranked opportunities in a console-friendly format.

Usage:
    python3 run_scanner.py --config configs/scanner.example.yaml --pools configs/pools.example.yaml --once
"""

import argparse
import sys

import logging_config
from dex.runner import ScannerRunner
from pool_arbitrage import PROJECT_NAME, VERSION
from pool_arbitrage.config_loader import load_scanner_config
from pool_arbitrage.exceptions import InvalidConfiguration


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Liquidity-aware DEX pool arbitrage scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single scan (for testing/CI)
  python3 run_scanner.py --pools configs/pools.example.yaml --once

  # Ten scans, one every 2 seconds, with debug logging
  python3 run_scanner.py --pools configs/pools.example.yaml --cycles 10 --interval 2 --log-level debug
        """,
    )

    parser.add_argument(
        "--config",
        default="configs/scanner.example.yaml",
        help="Path to config YAML file (default: configs/scanner.example.yaml)",
    )
    parser.add_argument(
        "--pools",
        required=True,
        help="Path to a YAML or JSON pool snapshot, re-read every cycle",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan and exit (same as --cycles 1)",
    )
    parser.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Number of scans to run (default: until interrupted)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=5.0,
        help="Seconds between scans (default: 5)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging verbosity (default: info)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{PROJECT_NAME} {VERSION}",
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)
    logging_config.setup_from_name(args.log_level)

    if args.cycles is not None and args.cycles < 1:
        print("❌ Config error: --cycles must be >= 1", file=sys.stderr)
        return 1
    if args.interval < 0:
        print("❌ Config error: --interval cannot be negative", file=sys.stderr)
        return 1

    try:
        config = load_scanner_config(args.config)
        runner = ScannerRunner(config, args.pools)
    except InvalidConfiguration as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        return 1

    cycles = 1 if args.once else args.cycles

    try:
        runner.run(cycles=cycles, interval=args.interval)
    except InvalidConfiguration as e:
        print(f"❌ Pool snapshot error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        runner.stop()
        print("\n\n⏸ Stopped by user")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
