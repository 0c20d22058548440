from __future__ import annotations

import threading

from flask import current_app

from fairstall.events import EventRegistry
from fairstall.snapshots import SnapshotLog
from fairstall.storage import KeyValueStorage
from fairstall.store import SalesStore

EXTENSION_KEY = "fairstall"


class PosState:
    """Everything the stall keeps between requests, over one storage backend."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self.sales = SalesStore(storage)
        self.events = EventRegistry(storage)
        self.snapshots = SnapshotLog(storage)
        self.lock = threading.RLock()
        self.loaded = False

    def open(self) -> None:
        self.storage.open()
        self.sales.load()
        self.events.load()
        self.snapshots.load()
        self.loaded = True

    def close(self) -> None:
        self.storage.close()
        self.loaded = False


def get_state() -> PosState:
    state: PosState = current_app.extensions[EXTENSION_KEY]
    with state.lock:
        if not state.loaded:
            state.open()
    return state
