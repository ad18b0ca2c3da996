"""Event models shared across poller and watcher components."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


class EventParseError(ValueError):
    """Raised when a single event item from the events API is malformed."""


_FRACTION_RE = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class EventRecord:
    """A single change notification reported by Syncthing."""

    id: int
    event_type: str
    data_type: str
    folder: str
    path: str
    action: str
    timestamp: str

    @classmethod
    def from_json(cls, item: Any) -> "EventRecord":
        """Build an event from one element of the ``/rest/events`` array.

        The changed file is taken from ``data.item`` when present, falling
        back to ``data.path`` for event kinds that use the older field name.
        """

        if not isinstance(item, Mapping):
            raise EventParseError("event item must be an object")

        event_id = event_id_of(item)
        if event_id is None:
            raise EventParseError("event item has no integer 'id'")

        data = item.get("data")
        if not isinstance(data, Mapping):
            raise EventParseError(f"event {event_id} has no 'data' object")

        path = data.get("item")
        if path is None:
            path = data.get("path")

        return cls(
            id=event_id,
            event_type=_require_str(item, "type", event_id),
            data_type=_optional_str(data.get("type")),
            folder=_require_str(data, "folder", event_id),
            path=_require_value(path, "item/path", event_id),
            action=_optional_str(data.get("action")),
            timestamp=_require_str(item, "time", event_id),
        )

    def occurred_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


def event_id_of(item: Any) -> Optional[int]:
    """Return the integer id of a raw event item, or None if it has none."""

    if not isinstance(item, Mapping):
        return None
    value = item.get("id")
    # bool is an int subclass; a true/false id is not an id
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC3339 timestamp into an aware datetime.

    Syncthing reports nanosecond precision; fractions are truncated to
    microseconds so ``datetime.fromisoformat`` accepts them.
    """

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise EventParseError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_str(source: Mapping[str, Any], key: str, event_id: int) -> str:
    return _require_value(source.get(key), key, event_id)


def _require_value(value: Any, field_name: str, event_id: int) -> str:
    if not isinstance(value, str):
        raise EventParseError(f"event {event_id} is missing string field '{field_name}'")
    return value


def _optional_str(value: Any) -> str:
    return value if isinstance(value, str) else ""
