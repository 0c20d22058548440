"""
CSV rows, order numbers and export file names.
"""

import csv
import io
import json

import pytest

from conftest import at, make_event, make_sale
from fairstall.exporters import (
    CSV_HEADERS, build_row, build_rows_for_event, build_sales_order_number, csv_filename,
    display_zone, human_items, slugify_event_name, snapshot_pdf_filename, to_csv,
)


class TestOrderNumbers:

    def test_format(self):
        assert build_sales_order_number("Spring Market", at("10:05")) == "SpringMarket-240101-1005"

    def test_slug_strips_and_truncates(self):
        assert slugify_event_name("  Café & Crafts / 2024 ") == "CafCrafts2024"
        assert len(slugify_event_name("x" * 60)) == 40

    @pytest.mark.parametrize("name", ["", None, "!!!", "   "])
    def test_slug_fallback(self, name):
        assert slugify_event_name(name) == "Event"

    def test_uses_display_zone(self):
        tz = display_zone("America/New_York")
        assert build_sales_order_number("Fair", at("15:30"), tz) == "Fair-240101-1030"

    def test_unknown_zone(self):
        with pytest.raises(ValueError):
            display_zone("Mars/Olympus_Mons")


class TestHumanItems:

    def test_with_and_without_fabric(self):
        sale = make_sale(at("10:05"), ("Keychain", 8, 2, "fab-rose"), ("Sticker", 3, 1))
        text = human_items(sale.items, {"fab-rose": "Rose"})
        assert text == "2× Keychain — Rose • 1× Sticker"

    def test_unknown_fabric_falls_back_to_id(self):
        sale = make_sale(at("10:05"), ("Keychain", 8, 1, "fab-gone"))
        assert human_items(sale.items, {}) == "1× Keychain — fab-gone"


class TestRows:

    def test_row_fields(self):
        evt = make_event()
        sale = make_sale(at("10:05"), ("Keychain", 8, 2), note="paid cash")
        row = build_row(evt, sale)

        assert row.event_name == "Spring Market"
        assert row.event_id == "evt-market"
        assert row.date == "2024-01-01"
        assert row.time == "10:05"
        assert row.timestamp_iso == "2024-01-01T10:05:00.000Z"
        assert row.sales_order_number == "SpringMarket-240101-1005"
        assert row.notes == "paid cash"
        assert json.loads(row.items_json)[0]["name"] == "Keychain"
        assert row.to_dict()["total"] == 16

    def test_existing_order_number_is_kept(self):
        sale = make_sale(at("10:05"), ("Sticker", 3, 1), salesOrderNumber="SO-42")
        assert build_row(make_event(), sale).sales_order_number == "SO-42"

    def test_rows_oldest_first(self):
        sales = [make_sale(at("10:40"), ("A", 1, 1), sale_id="b"), make_sale(at("10:10"), ("A", 1, 1), sale_id="a")]
        rows = build_rows_for_event(make_event(), sales)
        assert [r.time for r in rows] == ["10:10", "10:40"]


class TestCsv:

    def test_comma_in_item_name_is_quoted(self):
        sale = make_sale(at("10:05"), ('Bow, "large"', 5, 1))
        text = to_csv([build_row(make_event(), sale)])

        assert '"1× Bow, ""large"""' in text
        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[0] == CSV_HEADERS
        assert parsed[1][7] == '1× Bow, "large"'
        assert parsed[1][6] == "5.00"

    def test_newline_in_notes(self):
        sale = make_sale(at("10:05"), ("Sticker", 3, 1), note="line one\nline two")
        parsed = list(csv.reader(io.StringIO(to_csv([build_row(make_event(), sale)]))))
        assert parsed[1][9] == "line one\nline two"

    def test_header_only_when_no_sales(self):
        assert to_csv([]) == ",".join(CSV_HEADERS) + "\n"


class TestFilenames:

    def test_csv_filename(self):
        assert csv_filename(make_event(name="Spring Market")) == "SpringMarket_sales.csv"

    def test_pdf_filename(self):
        evt = make_event(name="Spring Market", date="2024-01-01", location="Hall B/2")
        assert snapshot_pdf_filename(evt) == "SpringMarket_2024-01-01_HallB2_snapshot.pdf"

    def test_pdf_filename_without_date_or_location(self):
        assert snapshot_pdf_filename(make_event(name="")) == "Event_snapshot.pdf"
