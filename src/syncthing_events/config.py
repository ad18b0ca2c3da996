"""Configuration loading utilities for the Syncthing event handler."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

import yaml # type: ignore


logger = logging.getLogger(__name__)

DEFAULT_SYNCTHING_URL = "http://localhost:8384"
DEFAULT_MAX_RETRIES = 2**31 - 1
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_MAX_CONNECTION_FAILURES = 20
DEFAULT_REQUEST_TIMEOUT = 90.0
DEFAULT_EVENT_TYPE = "ItemFinished"
ANY_ACTION = "*"


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass(frozen=True)
class WatcherConfig:
    """A configured rule binding an event match to a command template."""

    folder: str
    path_pattern: str
    command: str
    action: str = ANY_ACTION
    event_type: str = DEFAULT_EVENT_TYPE


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    syncthing_url: str = DEFAULT_SYNCTHING_URL
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    max_connection_failures: int = DEFAULT_MAX_CONNECTION_FAILURES
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    watchers: List[WatcherConfig] = field(default_factory=list)


def load_config(path: Path) -> AppConfig:
    """Load and validate a JSON or YAML configuration file."""

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    data = _read_document(path)
    return parse_config(data)


def parse_config(data: Any) -> AppConfig:
    """Validate an already-decoded configuration document."""

    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    url = data.get("syncthing_url", DEFAULT_SYNCTHING_URL)
    if not isinstance(url, str) or not url.strip():
        raise ConfigError("syncthing_url must be a non-empty string")

    timeout = data.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("request_timeout must be a positive number")

    return AppConfig(
        syncthing_url=url.strip().rstrip("/"),
        max_retries=_parse_int(data, "max_retries", DEFAULT_MAX_RETRIES, minimum=1),
        retry_delay_ms=_parse_int(data, "retry_delay_ms", DEFAULT_RETRY_DELAY_MS, minimum=0),
        max_connection_failures=_parse_int(
            data, "max_connection_failures", DEFAULT_MAX_CONNECTION_FAILURES, minimum=1
        ),
        request_timeout=float(timeout),
        watchers=_parse_watchers_config(data.get("watchers")),
    )


def _read_document(path: Path) -> Any:
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {path}: {exc}") from exc

    if suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Failed to parse JSON configuration: {exc}") from exc
    if suffix in (".yaml", ".yml"):
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:  # pragma: no cover - logging helper
            raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc
    raise ConfigError(f"Unknown config file type '{suffix or path.name}' (expected .json, .yaml or .yml)")


def _parse_int(data: dict, key: str, default: int, *, minimum: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    if value < minimum:
        raise ConfigError(f"{key} must be at least {minimum}")
    return value


def _parse_watchers_config(raw: Any) -> List[WatcherConfig]:
    if raw is None:
        raise ConfigError("'watchers' section is required")
    if not isinstance(raw, list):
        raise ConfigError("'watchers' section must be a list")

    watchers: List[WatcherConfig] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(f"watchers[{index}] must be a mapping")

        pattern = item.get("path_pattern", item.get("pattern"))
        folder = item.get("folder")
        command = item.get("command")
        action = item.get("action", ANY_ACTION)
        event_type = item.get("event_type", DEFAULT_EVENT_TYPE)

        if not isinstance(folder, str):
            raise ConfigError(f"watchers[{index}].folder must be a string")
        if not isinstance(pattern, str):
            raise ConfigError(f"watchers[{index}].path_pattern must be a string")
        if not isinstance(command, str) or not command.strip():
            raise ConfigError(f"watchers[{index}].command must be a non-empty string")
        if not isinstance(action, str) or not action:
            raise ConfigError(f"watchers[{index}].action must be a non-empty string")
        if not isinstance(event_type, str) or not event_type:
            raise ConfigError(f"watchers[{index}].event_type must be a non-empty string")

        watcher_cfg = WatcherConfig(
            folder=folder,
            path_pattern=pattern,
            command=command,
            action=action,
            event_type=event_type,
        )
        logger.debug(
            "Watching folder %s for paths matching pattern '%s'",
            watcher_cfg.folder,
            watcher_cfg.path_pattern,
        )
        watchers.append(watcher_cfg)

    return watchers
