"""
Recorded event snapshots and the export steps that consume them.

Exports work on deep copies taken up front, so the stall can keep selling
while a PDF renders or rows are posted. Each slow step checks an optional
``threading.Event``; once it is set the export stops with ExportCancelled.
"""
from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fairstall.exporters import SheetRow
from fairstall.pdf import render_snapshot_pdf
from fairstall.records import Event, RecordError, Sale, Snapshot
from fairstall.rollup import compute_rollup
from fairstall.sheets import SheetConfig, post_to_sheet_batch
from fairstall.storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

SNAPSHOTS_KEY = "fairstall.snapshots"


class ExportCancelled(RuntimeError):
    pass


def check_cancelled(cancel: Optional[threading.Event], what: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.info("%s cancelled", what)
        raise ExportCancelled(f"{what} cancelled")


class SnapshotLog:
    """Immutable, recorded copies of rollups; one entry per snapshot id."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._snapshots: List[Snapshot] = []

    def load(self) -> None:
        raw = self.storage.read_json(SNAPSHOTS_KEY, [])
        try:
            self._snapshots = [Snapshot.from_dict(s) for s in (raw if isinstance(raw, list) else [])]
        except RecordError as e:
            raise StorageError(f"stored snapshots are invalid: {e}") from e

    def save(self) -> None:
        self.storage.write_json(SNAPSHOTS_KEY, [s.to_dict() for s in self._snapshots])

    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        return next((s for s in self._snapshots if s.id == snapshot_id), None)

    def for_event(self, event_id: str) -> List[Snapshot]:
        return [s for s in self._snapshots if s.event.id == event_id]

    def record(self, snapshot: Snapshot) -> Tuple[Snapshot, bool]:
        existing = self.get(snapshot.id)
        if existing is not None:
            return existing, False
        stored = copy.deepcopy(snapshot)
        self._snapshots.append(stored)
        self.save()
        logger.info("Recorded snapshot %s for event %s", stored.id, stored.event.id)
        return stored, True


def prepare_snapshot(event: Event, sales: Iterable[Sale], now: Optional[datetime] = None,
                     snapshot_id: Optional[str] = None) -> Snapshot:
    """Rollup over private copies of the event and the ledger."""
    return compute_rollup(copy.deepcopy(event), copy.deepcopy(list(sales)), now=now, snapshot_id=snapshot_id)


def export_snapshot_pdf(snapshot: Snapshot, fabric_names: Optional[Dict[str, str]] = None,
                        cancel: Optional[threading.Event] = None) -> bytes:
    snapshot = copy.deepcopy(snapshot)
    fabric_names = dict(fabric_names or {})
    check_cancelled(cancel, "PDF export")
    data = render_snapshot_pdf(snapshot, fabric_names)
    check_cancelled(cancel, "PDF export")
    return data


def export_rows_to_sheet(rows: Iterable[SheetRow], cfg: SheetConfig,
                         cancel: Optional[threading.Event] = None, session=None) -> Dict[str, Any]:
    rows = copy.deepcopy(list(rows))
    check_cancelled(cancel, "Sheets export")
    return post_to_sheet_batch(rows, cfg, session=session)
