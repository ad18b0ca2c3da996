"""Watcher rules and dispatch of matching events to commands."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from .commands import CommandError, CommandRunner
from .config import ANY_ACTION, WatcherConfig
from .events import EventRecord

logger = logging.getLogger(__name__)


def compile_pattern(pattern: str) -> Optional[re.Pattern[str]]:
    """Compile a path pattern, returning None when it is not a valid regex."""

    try:
        return re.compile(pattern)
    except re.error as exc:
        logger.error("Invalid path pattern '%s': %s; watcher will never match", pattern, exc)
        return None


@dataclass(frozen=True)
class Watcher:
    """A configured rule with its path pattern compiled once at load time."""

    config: WatcherConfig
    compiled_pattern: Optional[re.Pattern[str]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "compiled_pattern", compile_pattern(self.config.path_pattern))

    @property
    def command(self) -> str:
        return self.config.command

    def matches(self, event: EventRecord) -> bool:
        if event.folder != self.config.folder:
            return False
        if event.event_type != self.config.event_type:
            return False
        if self.config.action != ANY_ACTION and event.action != self.config.action:
            return False
        if self.compiled_pattern is None:
            return False
        return self.compiled_pattern.search(event.path) is not None


class WatcherRegistry:
    """Holds configured watchers in order and dispatches events to them."""

    def __init__(self, watchers: Iterable[WatcherConfig], runner: Optional[CommandRunner] = None):
        self._watchers: List[Watcher] = [Watcher(cfg) for cfg in watchers]
        self._runner = runner or CommandRunner()

    def __iter__(self) -> Iterator[Watcher]:
        return iter(self._watchers)

    def __len__(self) -> int:
        return len(self._watchers)

    def event_types(self) -> List[str]:
        """Distinct event types requested by any watcher, in configured order."""

        seen: List[str] = []
        for watcher in self._watchers:
            if watcher.config.event_type not in seen:
                seen.append(watcher.config.event_type)
        return seen

    def matching(self, event: EventRecord) -> List[Watcher]:
        return [watcher for watcher in self._watchers if watcher.matches(event)]

    def dispatch_event(self, event: EventRecord) -> int:
        """Run the command of every watcher matching *event*; return how many ran."""

        dispatched = 0
        for watcher in self.matching(event):
            logger.info(
                "Match - Folder: %s Action: %s Event type: %s Path: %s",
                event.folder,
                event.action,
                event.event_type,
                event.path,
            )
            try:
                self._runner.run(watcher.command, event)
            except CommandError:
                logger.exception("Command for watcher on folder %s failed for event %s", watcher.config.folder, event.id)
                continue
            dispatched += 1
        return dispatched
