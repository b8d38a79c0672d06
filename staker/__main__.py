"""Command line entry point: ``python -m staker``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .client import StakerClient, StakerError
from .config import DEFAULT_CONFIG_FILE, ConfigError, load_config
from .logging_config import LOG_LEVEL, setup_logging


logger = logging.getLogger("staker")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="staker",
        description="Delegate CPU/NET stake from one account to a list of accounts.",
    )
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_FILE, help="path to config.toml")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="plan the run and check the balance without sending transactions",
    )
    parser.add_argument("--log-level", default=LOG_LEVEL, help="log level for staker output")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1
    if config.log_file:
        setup_logging(args.log_level, config.log_file)

    try:
        with StakerClient(config) as client:
            client.run(dry_run=args.dry_run)
    except StakerError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
