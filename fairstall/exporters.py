"""Rows, CSV text and file names for exporting an event's sales."""
from __future__ import annotations

import csv
import io
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fairstall.records import CartLine, Event, Sale, money_out, round2
from fairstall.time_utils import to_utc_z

CSV_HEADERS = [
    "eventName",
    "eventId",
    "date",
    "time",
    "timestampISO",
    "salesOrderNumber",
    "total",
    "itemsList",
    "itemsJSON",
    "notes",
]


def display_zone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown DISPLAY_TIMEZONE: {name!r}") from None


def _compact(value: Optional[str]) -> str:
    s = re.sub(r"\s+", "", str(value or ""))
    return re.sub(r"[^A-Za-z0-9_-]", "", s)


def slugify_event_name(name: Optional[str]) -> str:
    return _compact(name or "Event")[:40] or "Event"


def build_sales_order_number(event_name: str, when: datetime, tz: tzinfo = timezone.utc) -> str:
    local = when.astimezone(tz)
    return f"{slugify_event_name(event_name)}-{local:%y%m%d}-{local:%H%M}"


def snapshot_pdf_filename(event: Event) -> str:
    parts = [_compact(event.name) or "Event", _compact(event.date), _compact(event.location)]
    return "_".join(p for p in parts if p) + "_snapshot.pdf"


def _fabric_label(line: CartLine, fabric_names: Dict[str, str]) -> Optional[str]:
    if not line.fabric_id:
        return line.extra.get("fabricName") or None
    return fabric_names.get(line.fabric_id) or line.extra.get("fabricName") or line.fabric_id


def human_items(lines: Iterable[CartLine], fabric_names: Optional[Dict[str, str]] = None) -> str:
    fabric_names = fabric_names or {}
    parts = []
    for ln in lines:
        fabric = _fabric_label(ln, fabric_names)
        parts.append(f"{ln.qty}× {ln.name}" + (f" — {fabric}" if fabric else ""))
    return " • ".join(parts)


@dataclass
class SheetRow:
    event_name: str
    event_id: str
    date: str
    time: str
    timestamp_iso: str
    sales_order_number: str
    total: Decimal
    items_list: str
    items_json: str
    notes: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "eventName": self.event_name,
            "eventId": self.event_id,
            "date": self.date,
            "time": self.time,
            "timestampISO": self.timestamp_iso,
            "salesOrderNumber": self.sales_order_number,
            "total": money_out(self.total),
            "itemsList": self.items_list,
            "itemsJSON": self.items_json,
            "notes": self.notes,
        }

    def csv_values(self) -> List[str]:
        return [
            self.event_name,
            self.event_id,
            self.date,
            self.time,
            self.timestamp_iso,
            self.sales_order_number,
            f"{round2(self.total):.2f}",
            self.items_list,
            self.items_json,
            self.notes,
        ]


def build_row(event: Event, sale: Sale, fabric_names: Optional[Dict[str, str]] = None,
              tz: tzinfo = timezone.utc) -> SheetRow:
    local = sale.created_at.astimezone(tz)
    return SheetRow(
        event_name=event.name,
        event_id=event.id,
        date=f"{local:%Y-%m-%d}",
        time=f"{local:%H:%M}",
        timestamp_iso=to_utc_z(sale.created_at),
        sales_order_number=sale.sales_order_number or build_sales_order_number(event.name, sale.created_at, tz),
        total=sale.total,
        items_list=human_items(sale.items, fabric_names),
        items_json=json.dumps([ln.to_dict() for ln in sale.items], ensure_ascii=False, separators=(",", ":")),
        notes=sale.note,
    )


def build_rows_for_event(event: Event, sales: Iterable[Sale], fabric_names: Optional[Dict[str, str]] = None,
                         tz: tzinfo = timezone.utc) -> List[SheetRow]:
    """One row per sale, oldest first. Window filtering is up to the caller."""
    ordered = sorted(sales, key=lambda s: s.created_at)
    return [build_row(event, s, fabric_names, tz) for s in ordered]


def to_csv(rows: Iterable[SheetRow]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for row in rows:
        writer.writerow(row.csv_values())
    return buf.getvalue()


def csv_filename(event: Event) -> str:
    return f"{slugify_event_name(event.name)}_sales.csv"
