"""
Snapshot log and cancellable export tests.
"""

import threading

import pytest

from conftest import at, make_event, make_sale
from fairstall.exporters import build_row
from fairstall.records import Snapshot
from fairstall.sheets import SheetConfig
from fairstall.snapshots import (
    SNAPSHOTS_KEY, ExportCancelled, SnapshotLog, export_rows_to_sheet, export_snapshot_pdf,
    prepare_snapshot,
)


@pytest.fixture
def log(storage):
    s = SnapshotLog(storage)
    s.load()
    return s


class TestSnapshotLog:

    def test_record_is_idempotent(self, log, storage):
        snap = prepare_snapshot(make_event(), [make_sale(at("10:05"), ("Keychain", 8, 1))], now=at("12:00"))

        first, created = log.record(snap)
        again, created_again = log.record(snap)

        assert created is True
        assert created_again is False
        assert again is first
        assert len(log.for_event("evt-market")) == 1

    def test_recorded_copy_is_frozen(self, log):
        snap = prepare_snapshot(make_event(), [make_sale(at("10:05"), ("Keychain", 8, 1))], now=at("12:00"))
        stored, _ = log.record(snap)
        snap.lines[0].qty = 99
        assert log.get(snap.id).lines[0].qty == 1
        assert stored.lines[0].qty == 1

    def test_survives_reload(self, log, storage):
        snap = prepare_snapshot(make_event(), [make_sale(at("10:05"), ("Keychain", 8, 2))], now=at("12:00"))
        log.record(snap)

        again = SnapshotLog(storage)
        again.load()
        restored = again.get(snap.id)
        assert isinstance(restored, Snapshot)
        assert restored.to_dict() == snap.to_dict()
        assert storage.get(SNAPSHOTS_KEY) is not None


class TestPrepare:

    def test_inputs_are_not_shared(self):
        evt = make_event()
        sale = make_sale(at("10:05"), ("Keychain", 8, 1))
        snap = prepare_snapshot(evt, [sale], now=at("12:00"))

        evt.name = "Renamed"
        sale.items[0].qty = 50

        assert snap.event.name == "Spring Market"
        assert snap.lines[0].qty == 1


class TestCancellation:

    def test_pdf_export_cancelled_before_start(self):
        cancel = threading.Event()
        cancel.set()
        snap = prepare_snapshot(make_event(), [], now=at("12:00"))
        with pytest.raises(ExportCancelled):
            export_snapshot_pdf(snap, cancel=cancel)

    def test_pdf_export_runs_when_not_cancelled(self):
        snap = prepare_snapshot(make_event(), [], now=at("12:00"))
        assert export_snapshot_pdf(snap, cancel=threading.Event()).startswith(b"%PDF")

    def test_sheet_export_cancelled_sends_nothing(self):
        class Session:
            calls = 0

            def post(self, *args, **kwargs):
                Session.calls += 1

        cancel = threading.Event()
        cancel.set()
        rows = [build_row(make_event(), make_sale(at("10:05"), ("Sticker", 3, 1)))]
        with pytest.raises(ExportCancelled):
            export_rows_to_sheet(rows, SheetConfig(endpoint_url="https://x.test"), cancel=cancel, session=Session())
        assert Session.calls == 0
