"""Event stores: the read-only lookups the pipeline is given at construction."""

import json
from pathlib import Path
from typing import Protocol

from certx.logging import audit, get_logger, mask_email
from certx.models import EventTemplate

log = get_logger("store")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class EventStore(Protocol):
    def find_event(self, event_id: str) -> EventTemplate | None: ...

    def resolve_registrant_name(self, event_id: str, email: str) -> str | None: ...


class InMemoryEventStore:
    """Events and registrants held in dicts. Not modified after construction.

    Args:
        events: EventTemplate objects (or stored dicts), keyed by their id.
        registrants: ``{event_id: {email: name}}``.
    """

    def __init__(self, events=(), registrants: dict | None = None):
        self._events: dict[str, EventTemplate] = {}
        for event in events:
            if isinstance(event, dict):
                event = EventTemplate.from_dict(event)
            self._events[event.id] = event
        self._registrants: dict[str, dict[str, str]] = {
            str(event_id): {normalize_email(email): name for email, name in people.items()}
            for event_id, people in (registrants or {}).items()
        }

    def __len__(self) -> int:
        return len(self._events)

    def find_event(self, event_id: str) -> EventTemplate | None:
        event = self._events.get(event_id)
        if event is None:
            audit("store.event_miss", logger=log, event_id=event_id)
        return event

    def resolve_registrant_name(self, event_id: str, email: str) -> str | None:
        name = self._registrants.get(event_id, {}).get(normalize_email(email))
        if not name:
            audit("store.registrant_miss", logger=log, event_id=event_id, email=mask_email(email))
            return None
        return name


class JsonEventStore(InMemoryEventStore):
    """Read-only store loaded once from a JSON file.

    Layout::

        {"events": [{"id": ..., "templateImage": ..., ...}],
         "registrants": {"<event id>": {"<email>": "<name>"}}}

    Relative ``templateImage`` paths are resolved against the file's directory.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)

        events = []
        for raw in data.get("events", []):
            event = dict(raw)
            key = "templateImage" if "templateImage" in event else "template_image"
            image = event.get(key)
            if isinstance(image, str) and image and not image.startswith("data:"):
                image_path = Path(image)
                if not image_path.is_absolute():
                    event[key] = str(self.path.parent / image_path)
            events.append(event)

        super().__init__(events, data.get("registrants", {}))
        log.info("Loaded %d events from %s", len(self), self.path)
