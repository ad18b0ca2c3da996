"""Command-line entry point for the Syncthing event handler."""
from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional

from .config import ConfigError, load_config
from .monitor import EventMonitor
from .poller import EXIT_UNAUTHORIZED, EventPoller
from .watchers import WatcherRegistry

AUTH_ENV_VAR = "ST_EVENTS_AUTH"

_EPILOG = (
    f"{AUTH_ENV_VAR} environment variable must contain the auth token for syncthing. "
    "This can be found in the syncthing UI by clicking Actions, then Settings, "
    "and copying the API Key value."
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="syncthing-events",
        description="Run commands when Syncthing finishes syncing matching files",
        epilog=_EPILOG,
    )
    parser.add_argument(
        "--config",
        default="config.json",
        help="Path to the JSON or YAML configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Override the Syncthing URL from the configuration file",
    )
    parser.add_argument(
        "-v",
        dest="verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (can be used multiple times)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def resolve_log_level(name: str, verbose: int) -> int:
    level = getattr(logging, name.upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    return max(logging.DEBUG, level - 10 * verbose)


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=resolve_log_level(args.log_level, args.verbose),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        app_config = load_config(Path(args.config))
    except ConfigError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    api_key = os.environ.get(AUTH_ENV_VAR)
    if not api_key:
        logging.error("%s not set. Please set this variable and re-run", AUTH_ENV_VAR)
        raise SystemExit(EXIT_UNAUTHORIZED)

    if args.url:
        app_config.syncthing_url = args.url.rstrip("/")

    watchers = WatcherRegistry(app_config.watchers)
    poller = EventPoller(app_config, api_key, watchers.event_types())
    monitor = EventMonitor(poller, watchers)
    raise SystemExit(monitor.run())


if __name__ == "__main__":
    main()
