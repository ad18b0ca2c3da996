from __future__ import annotations

from typing import Any, Dict, Optional

import pytest

from syncthing_events.config import AppConfig, WatcherConfig
from syncthing_events.events import EventRecord

BASE_URL = "http://syncthing.test:8384"
EVENTS_URL = f"{BASE_URL}/rest/events"


def make_event(
    id: int = 1,
    *,
    folder: str = "photos",
    path: str = "vacation.jpg",
    action: str = "update",
    event_type: str = "ItemFinished",
    data_type: str = "file",
    timestamp: str = "2026-01-01T12:00:00Z",
) -> EventRecord:
    return EventRecord(
        id=id,
        event_type=event_type,
        data_type=data_type,
        folder=folder,
        path=path,
        action=action,
        timestamp=timestamp,
    )


def event_item(
    id: int,
    *,
    time: str = "2026-01-01T12:00:00Z",
    folder: str = "photos",
    item: Optional[str] = "vacation.jpg",
    action: str = "update",
    event_type: str = "ItemFinished",
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"folder": folder, "type": "file", "action": action, "error": None}
    if item is not None:
        data["item"] = item
    return {"id": id, "globalID": id + 1000, "type": event_type, "time": time, "data": data}


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        syncthing_url=BASE_URL,
        max_retries=3,
        retry_delay_ms=250,
        max_connection_failures=20,
        watchers=[WatcherConfig(folder="photos", path_pattern=r".*\.jpe?g$", command="echo ${path}")],
    )
