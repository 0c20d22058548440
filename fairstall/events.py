from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fairstall.records import Event, RecordError, RecordNotFound, clean_text, new_id, optional_ref
from fairstall.storage import KeyValueStorage, StorageError
from fairstall.time_utils import utcnow

logger = logging.getLogger(__name__)

EVENTS_KEY = "fairstall.events"
ACTIVE_EVENT_KEY = "fairstall.active_event"


class EventError(RuntimeError):
    """The registry is not in a state that allows the requested change."""


class EventRegistry:
    """
    Named sales windows. At most one event is open (no end time) at a time;
    the "current" event is the one the stall is working with, which may be a
    restored, already-closed event.
    """

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._events: List[Event] = []
        self._current_id: Optional[str] = None

    def load(self) -> None:
        raw_events = self.storage.read_json(EVENTS_KEY, [])
        try:
            self._events = [Event.from_dict(e) for e in (raw_events if isinstance(raw_events, list) else [])]
        except RecordError as e:
            raise StorageError(f"stored events are invalid: {e}") from e
        current_id = optional_ref(self.storage.read_json(ACTIVE_EVENT_KEY))
        self._current_id = current_id if self.get_event(current_id) else None

    def save(self) -> None:
        self.storage.write_json(EVENTS_KEY, [e.to_dict() for e in self._events])
        self.storage.write_json(ACTIVE_EVENT_KEY, self._current_id)

    # -------------------------
    # Read helpers
    # -------------------------
    @property
    def events(self) -> List[Event]:
        return list(self._events)

    def get_event(self, event_id: Optional[str]) -> Optional[Event]:
        if not event_id:
            return None
        return next((e for e in self._events if e.id == event_id), None)

    def require_event(self, event_id: str) -> Event:
        evt = self.get_event(event_id)
        if evt is None:
            raise RecordNotFound(f"event not found: {event_id}")
        return evt

    @property
    def current_event(self) -> Optional[Event]:
        return self.get_event(self._current_id)

    @property
    def is_active(self) -> bool:
        evt = self.current_event
        return evt is not None and evt.is_active

    def active_events(self) -> List[Event]:
        return [e for e in self._events if e.is_active]

    # -------------------------
    # Transitions
    # -------------------------
    def start_event(self, name: str, date: Optional[str] = None, location: str = "",
                    now: Optional[datetime] = None) -> Event:
        clean = clean_text(name)
        if not clean:
            raise RecordError("event name is empty")
        open_events = self.active_events()
        if open_events:
            raise EventError(f"event {open_events[0].name!r} is still running, end it first")

        evt = Event(
            id=new_id("evt"),
            name=clean,
            started_at=now or utcnow(),
            ended_at=None,
            date=optional_ref(date),
            location=clean_text(location),
        )
        self._events.append(evt)
        self._current_id = evt.id
        self.save()
        logger.info("Started event %s (%s)", evt.id, evt.name)
        return evt

    def end_event(self, event_id: Optional[str] = None, now: Optional[datetime] = None) -> Event:
        evt = self.require_event(event_id) if event_id else self.current_event
        if evt is None:
            raise EventError("no current event to end")
        if not evt.is_active:
            raise EventError(f"event {evt.name!r} has already ended")

        ended_at = now or utcnow()
        if ended_at < evt.started_at:
            raise EventError("an event cannot end before it started")
        evt.ended_at = ended_at
        if self._current_id == evt.id:
            self._current_id = None
        self.save()
        logger.info("Ended event %s (%s)", evt.id, evt.name)
        return evt

    def restore_event(self, event_id: str) -> Event:
        evt = self.require_event(event_id)
        others = [e for e in self.active_events() if e.id != evt.id]
        if others:
            raise EventError(f"event {others[0].name!r} is still running, end it first")
        self._current_id = evt.id
        self.save()
        return evt
