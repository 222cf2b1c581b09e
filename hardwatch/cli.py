#!/usr/bin/env python3
"""
cli.py — CLI entry point for hardwatch.

Applies the PaX flags listed in the configuration file to every target
once.  With ``--watch`` it then keeps running, re-applying flags whenever a
target changes on disk and reloading the configuration whenever it is
edited.

Usage
-----
    # Apply once; exit status reports whether every target succeeded
    python -m hardwatch.cli -c /etc/hardwatch.conf

    # Apply, then keep enforcing
    python -m hardwatch.cli -c /etc/hardwatch.conf --watch
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from hardwatch.applier import PolicyApplier, PolicyApplyError, find_paxctl
from hardwatch.config import ConfigError
from hardwatch.supervisor import DEFAULT_COOLDOWN, Supervisor

logger = logging.getLogger("hardwatch")

DEFAULT_CONFIG_PATH = "/etc/hardwatch.conf"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="hardwatch",
        description="hardwatch — keep PaX flags applied to a set of executables.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        metavar="PATH",
        help=f"Path to the config file (default: {DEFAULT_CONFIG_PATH}).",
    )
    parser.add_argument(
        "-w",
        "--watch",
        action="store_true",
        help="Keep running and re-apply flags when targets or the config change.",
    )
    parser.add_argument(
        "--cooldown",
        type=float,
        default=DEFAULT_COOLDOWN,
        metavar="SECONDS",
        help=f"Wait after a failed watch session (default: {DEFAULT_COOLDOWN:.0f}).",
    )
    parser.add_argument(
        "--paxctl",
        default=None,
        metavar="PATH",
        help="paxctl binary to use (default: looked up on $PATH).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    """Run hardwatch with parsed *args* and return the exit status."""
    try:
        paxctl = find_paxctl(args.paxctl)
    except PolicyApplyError as exc:
        logger.critical("%s", exc)
        return EXIT_FAILURE

    supervisor = Supervisor(args.config, PolicyApplier(paxctl), cooldown=args.cooldown)
    try:
        supervisor.load()
    except ConfigError as exc:
        logger.critical("Couldn't load config file: %s", exc)
        return EXIT_FAILURE

    ok = supervisor.enforce()
    if not args.watch:
        return EXIT_SUCCESS if ok else EXIT_FAILURE

    logger.info("Watching %d targets.  Press Ctrl+C to stop.", len(supervisor.registry))
    try:
        supervisor.run_forever()
    except ConfigError as exc:
        logger.critical("Failed to read config file: %s", exc)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("Stopped by user.")
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> None:
    """Parse CLI args and exit with hardwatch's status."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
