"""Command template expansion and shell execution."""
from __future__ import annotations

import logging
import subprocess
from typing import Callable, Dict, List

from .events import EventRecord

logger = logging.getLogger(__name__)

_VARIABLES: Dict[str, Callable[[EventRecord], str]] = {
    "path": lambda event: event.path,
    "folder": lambda event: event.folder,
    "id": lambda event: str(event.id),
    "data_type": lambda event: event.data_type,
    "type": lambda event: event.event_type,
    "action": lambda event: event.action,
    "time": lambda event: event.timestamp,
}


class CommandError(Exception):
    """Raised when a command could not be launched."""


def expand_command(template: str, event: EventRecord) -> str:
    """Substitute ``${name}`` placeholders with values from *event*.

    Unknown names expand to an empty string. An unterminated ``${`` is
    copied through unchanged along with the rest of the template.
    """

    parts: List[str] = []
    index = 0
    length = len(template)
    while index < length:
        start = template.find("${", index)
        if start < 0:
            parts.append(template[index:])
            break
        end = template.find("}", start + 2)
        if end < 0:
            parts.append(template[index:])
            break
        parts.append(template[index:start])
        name = template[start + 2 : end]
        resolver = _VARIABLES.get(name)
        if resolver is None:
            logger.debug("Unknown template variable ${%s}; substituting empty string", name)
        else:
            parts.append(resolver(event))
        index = end + 1
    return "".join(parts)


class CommandRunner:
    """Runs expanded command templates through ``sh -c``."""

    def __init__(self, shell: str = "sh"):
        self._shell = shell

    def run(self, template: str, event: EventRecord) -> int:
        command = expand_command(template, event)
        logger.debug("Executing command \n\t%s", command)
        return self.execute(command)

    def execute(self, command: str) -> int:
        """Run *command* with inherited stdio and return its exit status."""

        try:
            completed = subprocess.run([self._shell, "-c", command], check=False)
        except OSError as exc:
            raise CommandError(f"Unable to launch command {command!r}: {exc}") from exc
        if completed.returncode != 0:
            logger.warning("Command exited with status %s: %s", completed.returncode, command)
        return completed.returncode
