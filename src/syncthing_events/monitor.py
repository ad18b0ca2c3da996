"""Event monitoring loop: poll Syncthing and dispatch matching watchers."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .poller import (
    EventPoller,
    FatalPollError,
    MaxConnectionFailuresExceededError,
    MaxRetriesExceededError,
    PollError,
    UnauthorizedError,
)
from .watchers import WatcherRegistry

logger = logging.getLogger(__name__)

EXIT_OK = 0

_FATAL_MESSAGES = {
    UnauthorizedError: (
        "Not authorized to use syncthing. Please set ST_EVENTS_AUTH environment variable and try again"
    ),
    MaxRetriesExceededError: "Maximum retries exceeded - exiting",
    MaxConnectionFailuresExceededError: "Maximum unexpected connection failure retries exceeded - exiting",
}


@dataclass
class MonitorStats:
    """Counters emitted by the monitor for observability."""

    cycles: int = 0
    events_received: int = 0
    commands_run: int = 0
    poll_errors: int = 0


class EventMonitor:
    """Polls for events and runs the commands of every matching watcher."""

    def __init__(self, poller: EventPoller, watchers: WatcherRegistry):
        self._poller = poller
        self._watchers = watchers
        self._stop_event = threading.Event()
        self._stats = MonitorStats()

    @property
    def stats(self) -> MonitorStats:
        return self._stats

    def run(self) -> int:
        """Run the monitoring loop until stopped; return the process exit status."""

        logger.info("Monitoring Syncthing events at %s", self._poller.url())
        try:
            while not self._stop_event.is_set():
                exit_code = self.run_once()
                if exit_code is not None:
                    return exit_code
        except KeyboardInterrupt:
            logger.info("Monitor interrupted by user")
        finally:
            logger.info(
                "Monitor stopped after %s cycles, %s events, %s commands",
                self._stats.cycles,
                self._stats.events_received,
                self._stats.commands_run,
            )
        return EXIT_OK

    def run_once(self) -> Optional[int]:
        """Perform one poll and dispatch cycle.

        Returns an exit status when the poller failed fatally, otherwise None.
        """

        self._stats.cycles += 1
        try:
            events = self._poller.poll()
        except FatalPollError as exc:
            logger.error("%s", _FATAL_MESSAGES.get(type(exc), "Fatal polling error - exiting"))
            logger.debug("Fatal poll error detail: %s", exc)
            return exc.exit_code
        except PollError as exc:
            self._stats.poll_errors += 1
            logger.error("Error polling events: %s", exc)
            return None

        self._stats.events_received += len(events)
        for event in events:
            self._stats.commands_run += self._watchers.dispatch_event(event)
        return None

    def stop(self) -> None:
        """Signal the monitor to stop at the next opportunity."""

        self._stop_event.set()
