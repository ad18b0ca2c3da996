"""Polling client for the Syncthing events API.

The poller owns the event watermark: each successful poll advances it past
every event the server returned, so the next request asks only for newer
events. Failures are classified into three groups:

* authorization failures (HTTP 401/403), which are fatal immediately;
* dropped connections, which are retried at once against their own ceiling;
* everything else, which is retried after a fixed delay until the retry
  budget runs out.

On the first successful poll, events older than the freshness window are
dropped so a restart does not replay the service's backlog.
"""
from __future__ import annotations

import http.client
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

import requests
from urllib3.exceptions import ProtocolError

from .config import AppConfig
from .events import EventParseError, EventRecord, event_id_of

logger = logging.getLogger(__name__)

FRESHNESS_WINDOW = timedelta(seconds=60)

EXIT_MAX_RETRIES = 1
EXIT_UNAUTHORIZED = 2
EXIT_CONNECTION_FAILURES = 100

_UNAUTHORIZED_STATUSES = (401, 403)
_DROPPED_CONNECTION_ERRORS = (
    ConnectionResetError,
    ConnectionAbortedError,
    BrokenPipeError,
    http.client.RemoteDisconnected,
    ProtocolError,
)


class PollError(Exception):
    """Base class for errors raised by :meth:`EventPoller.poll`."""


class FatalPollError(PollError):
    """A poll failure the process should exit on."""

    exit_code = 1


class UnauthorizedError(FatalPollError):
    exit_code = EXIT_UNAUTHORIZED


class MaxRetriesExceededError(FatalPollError):
    exit_code = EXIT_MAX_RETRIES


class MaxConnectionFailuresExceededError(FatalPollError):
    exit_code = EXIT_CONNECTION_FAILURES


class TransportError(PollError):
    """The server answered, but the response could not be used."""


class PollState(str, Enum):
    """States of a single poll call."""

    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"


@dataclass
class RetryBudget:
    """Two independent failure counters with their own ceilings.

    Ordinary failures consume a retry slot; dropped connections consume a
    slot from a separate ceiling. Both reset after a successful poll.
    """

    max_retries: int
    max_connection_failures: int
    retries: int = 0
    connection_failures: int = 0

    def record_failure(self) -> bool:
        """Count an ordinary failure; return True if another attempt is allowed."""

        self.retries += 1
        return self.retries < self.max_retries

    def record_connection_failure(self) -> bool:
        """Count a dropped connection; return True if another attempt is allowed."""

        self.connection_failures += 1
        return self.connection_failures <= self.max_connection_failures

    def reset(self) -> None:
        self.retries = 0
        self.connection_failures = 0


class EventPoller:
    """Fetches new events from Syncthing and tracks the watermark."""

    def __init__(
        self,
        config: AppConfig,
        api_key: str,
        event_types: Sequence[str],
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._config = config
        self._event_types = list(event_types)
        self._session = session or requests.Session()
        self._session.headers["Authorization"] = f"Bearer {api_key}"
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._budget = RetryBudget(
            max_retries=config.max_retries,
            max_connection_failures=config.max_connection_failures,
        )
        self._last_id: Optional[int] = None
        self.state = PollState.IDLE

    @property
    def last_id(self) -> Optional[int]:
        """Highest event id seen so far, or None before the first successful poll."""

        return self._last_id

    @property
    def budget(self) -> RetryBudget:
        return self._budget

    def url(self) -> str:
        url = f"{self._config.syncthing_url}/rest/events?events={','.join(self._event_types)}"
        if self._last_id is not None:
            url += f"&since={self._last_id}"
        return url

    def poll(self) -> List[EventRecord]:
        """Fetch events newer than the watermark.

        Raises a :class:`FatalPollError` subclass when the process should
        exit, or :class:`TransportError` when the response body is unusable.
        """

        first_run = self._last_id is None
        url = self.url()
        while True:
            self.state = PollState.FETCHING
            try:
                response = self._session.get(url, timeout=self._config.request_timeout)
            except requests.ConnectionError as exc:
                if _is_dropped_connection(exc):
                    self._on_connection_dropped(exc)
                    continue
                self._on_retryable_failure(f"HTTP request failed: {exc}")
                continue
            except requests.RequestException as exc:
                self._on_retryable_failure(f"HTTP request failed: {exc}")
                continue

            if response.status_code in _UNAUTHORIZED_STATUSES:
                self.state = PollState.FATAL_FAILURE
                raise UnauthorizedError(
                    f"Syncthing rejected the API key (HTTP {response.status_code})"
                )
            if response.status_code != 200:
                self._on_retryable_failure(f"HTTP status code: {response.status_code}")
                continue

            self.state = PollState.SUCCESS
            self._budget.reset()
            return self._consume(response, first_run=first_run)

    def _on_connection_dropped(self, exc: Exception) -> None:
        if not self._budget.record_connection_failure():
            self.state = PollState.FATAL_FAILURE
            raise MaxConnectionFailuresExceededError(
                f"Connection dropped {self._budget.connection_failures} times in a row"
            ) from exc
        self.state = PollState.RETRYABLE_FAILURE
        logger.debug(
            "Connection dropped (%s/%s): %s",
            self._budget.connection_failures,
            self._budget.max_connection_failures,
            exc,
        )

    def _on_retryable_failure(self, reason: str) -> None:
        if not self._budget.record_failure():
            self.state = PollState.FATAL_FAILURE
            raise MaxRetriesExceededError(f"{reason} (after {self._budget.retries} attempts)")
        self.state = PollState.RETRYABLE_FAILURE
        logger.info("%s; retrying in %s ms", reason, self._config.retry_delay_ms)
        self._sleep(self._config.retry_delay_ms / 1000.0)

    def _consume(self, response: requests.Response, *, first_run: bool) -> List[EventRecord]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(f"Events response is not valid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise TransportError("Events response is not a JSON array")

        cutoff = self._clock() - FRESHNESS_WINDOW if first_run else None
        events: List[EventRecord] = []
        for item in payload:
            self._advance_watermark(item)
            try:
                event = EventRecord.from_json(item)
                if cutoff is not None and event.occurred_at() < cutoff:
                    logger.debug("Skipping stale event %s from %s", event.id, event.timestamp)
                    continue
            except EventParseError as exc:
                logger.warning("Skipping malformed event: %s", exc)
                continue
            events.append(event)
        return events

    def _advance_watermark(self, item: Any) -> None:
        event_id = event_id_of(item)
        if event_id is None:
            return
        if self._last_id is None or event_id > self._last_id:
            self._last_id = event_id


def _is_dropped_connection(exc: BaseException) -> bool:
    seen = set()
    pending: List[Any] = [exc]
    while pending:
        current = pending.pop()
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, _DROPPED_CONNECTION_ERRORS):
            return True
        pending.extend(current.args)
        pending.append(current.__cause__)
        pending.append(current.__context__)
    return False
