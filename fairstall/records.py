"""
Typed records for the catalog, cart, sales ledger, events and snapshots.

Every record is read from loosely-shaped JSON exactly once, in ``from_dict``:
older field names are recognised there, defaults are filled in, and numbers
are validated. Unknown fields are kept in ``extra`` and written back
untouched by ``to_dict``.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from fairstall.time_utils import parse_iso_datetime, to_utc_z

CENTS = Decimal("0.01")


class RecordError(ValueError):
    """A record or a request carries a value that cannot be used."""


class RecordNotFound(LookupError):
    pass


# -----------------------
# Value helpers
# -----------------------
def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def round2(value) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise RecordError(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise RecordError(f"{field_name} must be a number, got {value!r}") from None
    if not number.is_finite():
        raise RecordError(f"{field_name} must be a finite number")
    return number


def to_quantity(value: Any, field_name: str = "qty") -> int:
    number = to_decimal(value, field_name)
    if number != number.to_integral_value():
        raise RecordError(f"{field_name} must be a whole number, got {value!r}")
    return int(number)


def money_out(value: Decimal):
    # integers stay integers in the JSON blob
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def clean_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip() or default


def optional_ref(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _extra(data: Dict[str, Any], known) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k not in known}


def _first_present(data: Dict[str, Any], keys):
    for key in keys:
        if not _is_blank(data.get(key)):
            return data[key]
    return None


def _as_mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise RecordError(f"{what} must be an object, got {type(data).__name__}")
    return data


# -----------------------
# Catalog
# -----------------------
@dataclass
class ProductType:
    id: str
    name: str
    default_price: Decimal = Decimal("0")
    unit_label: str = "each"
    pack_size: int = 1
    is_active: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN = ("id", "name", "defaultPrice", "unitLabel", "packSize", "isActive")

    @property
    def requires_fabric(self) -> bool:
        return self.unit_label.lower() != "bulk"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductType":
        data = _as_mapping(data, "product type")
        raw_price = data.get("defaultPrice")
        raw_pack = data.get("packSize")
        return cls(
            id=clean_text(data.get("id")) or new_id("pt"),
            name=clean_text(data.get("name"), "New Product"),
            default_price=max(Decimal("0"), Decimal("0") if _is_blank(raw_price) else to_decimal(raw_price, "defaultPrice")),
            unit_label=clean_text(data.get("unitLabel"), "each"),
            pack_size=1 if _is_blank(raw_pack) else max(1, to_quantity(raw_pack, "packSize")),
            is_active=data.get("isActive") is not False,
            extra=_extra(data, cls.KNOWN),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "name": self.name,
            "defaultPrice": money_out(self.default_price),
            "unitLabel": self.unit_label,
            "packSize": self.pack_size,
            "isActive": self.is_active,
        }


@dataclass
class Series:
    id: str
    name: str
    is_active: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN = ("id", "name", "isActive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Series":
        data = _as_mapping(data, "series")
        return cls(
            id=clean_text(data.get("id")) or new_id("ser"),
            name=clean_text(data.get("name"), "Series"),
            is_active=data.get("isActive") is not False,
            extra=_extra(data, cls.KNOWN),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "id": self.id, "name": self.name, "isActive": self.is_active}


@dataclass
class Fabric:
    id: str
    name: str
    series_id: Optional[str] = None
    is_active: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN = ("id", "name", "seriesId", "isActive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fabric":
        data = _as_mapping(data, "fabric")
        return cls(
            id=clean_text(data.get("id")) or new_id("fab"),
            name=clean_text(data.get("name"), "Fabric"),
            series_id=optional_ref(data.get("seriesId")),
            is_active=data.get("isActive") is not False,
            extra=_extra(data, cls.KNOWN),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "name": self.name,
            "seriesId": self.series_id,
            "isActive": self.is_active,
        }


# -----------------------
# Cart and ledger
# -----------------------
@dataclass
class CartLine:
    id: str
    product_type_id: Optional[str]
    name: str
    unit_price: Decimal
    qty: int = 1
    fabric_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN = ("id", "productTypeId", "name", "productName", "unitPrice", "price",
             "qty", "quantity", "fabricId")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.qty

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        data = _as_mapping(data, "line item")
        raw_qty = _first_present(data, ("qty", "quantity"))
        return cls(
            id=clean_text(data.get("id")) or new_id("line"),
            product_type_id=optional_ref(data.get("productTypeId")),
            name=clean_text(_first_present(data, ("name", "productName")), "Item"),
            unit_price=max(Decimal("0"), to_decimal(_first_present(data, ("unitPrice", "price")), "unitPrice")),
            qty=1 if raw_qty is None else max(1, to_quantity(raw_qty)),
            fabric_id=optional_ref(data.get("fabricId")),
            extra=_extra(data, cls.KNOWN),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "productTypeId": self.product_type_id,
            "name": self.name,
            "unitPrice": money_out(self.unit_price),
            "qty": self.qty,
            "fabricId": self.fabric_id,
        }


# first key present wins; the ledger write time beats the client-side fields
SALE_TIMESTAMP_KEYS = ("recordedAtISO", "createdAtISO", "timestampISO", "createdAt", "timestamp", "date")
SALE_ITEM_KEYS = ("items", "lines")


@dataclass
class Sale:
    id: str
    created_at: datetime
    items: List[CartLine] = field(default_factory=list)
    customer: str = ""
    subtotal: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    note: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN = ("id", "customer", "subtotal", "total", "note") + SALE_TIMESTAMP_KEYS + SALE_ITEM_KEYS

    @property
    def sales_order_number(self) -> Optional[str]:
        return optional_ref(self.extra.get("salesOrderNumber"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sale":
        data = _as_mapping(data, "sale")
        sale_id = clean_text(data.get("id")) or new_id("so")

        raw_ts = _first_present(data, SALE_TIMESTAMP_KEYS)
        try:
            created_at = parse_iso_datetime(raw_ts)
        except (TypeError, ValueError):
            created_at = None
        if created_at is None:
            raise RecordError(f"sale {sale_id} has no usable timestamp")
        created_at = created_at.replace(microsecond=(created_at.microsecond // 1000) * 1000)

        raw_items = None
        for key in SALE_ITEM_KEYS:
            if isinstance(data.get(key), list):
                raw_items = data[key]
                break
        items = [CartLine.from_dict(it) for it in (raw_items or [])]

        raw_subtotal = data.get("subtotal")
        if _is_blank(raw_subtotal):
            subtotal = round2(sum((ln.line_total for ln in items), Decimal("0")))
        else:
            subtotal = to_decimal(raw_subtotal, "subtotal")
        raw_total = data.get("total")
        total = subtotal if _is_blank(raw_total) else to_decimal(raw_total, "total")

        return cls(
            id=sale_id,
            created_at=created_at,
            items=items,
            customer=clean_text(data.get("customer")),
            subtotal=subtotal,
            total=total,
            note=clean_text(data.get("note")),
            extra=_extra(data, cls.KNOWN),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "createdAt": to_utc_z(self.created_at),
            "customer": self.customer,
            "items": [ln.to_dict() for ln in self.items],
            "subtotal": money_out(self.subtotal),
            "total": money_out(self.total),
            "note": self.note,
        }


# -----------------------
# Events and snapshots
# -----------------------
@dataclass
class Event:
    id: str
    name: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    date: Optional[str] = None
    location: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN = ("id", "name", "date", "location", "startedAt", "endedAt")

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        data = _as_mapping(data, "event")
        event_id = clean_text(data.get("id")) or new_id("evt")
        try:
            started_at = parse_iso_datetime(data.get("startedAt"))
            ended_at = parse_iso_datetime(data.get("endedAt"))
        except (TypeError, ValueError):
            raise RecordError(f"event {event_id} has an unreadable timestamp") from None
        if started_at is None:
            raise RecordError(f"event {event_id} has no start time")
        return cls(
            id=event_id,
            name=clean_text(data.get("name"), "Event"),
            started_at=started_at,
            ended_at=ended_at,
            date=optional_ref(data.get("date")),
            location=clean_text(data.get("location")),
            extra=_extra(data, cls.KNOWN),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "name": self.name,
            "date": self.date,
            "location": self.location,
            "startedAt": to_utc_z(self.started_at),
            "endedAt": to_utc_z(self.ended_at),
        }


@dataclass
class RollupLine:
    name: str
    fabric_id: Optional[str]
    unit_price: Decimal
    qty: int
    revenue: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RollupLine":
        data = _as_mapping(data, "rollup line")
        return cls(
            name=clean_text(data.get("name"), "Item"),
            fabric_id=optional_ref(data.get("fabricId")),
            unit_price=to_decimal(data.get("unitPrice"), "unitPrice"),
            qty=to_quantity(data.get("qty")),
            revenue=round2(to_decimal(data.get("revenue"), "revenue")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "fabricId": self.fabric_id,
            "unitPrice": money_out(self.unit_price),
            "qty": self.qty,
            "revenue": money_out(self.revenue),
        }


@dataclass
class Snapshot:
    id: str
    created_at: datetime
    event: Event
    lines: List[RollupLine] = field(default_factory=list)
    gross: Decimal = Decimal("0.00")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        data = _as_mapping(data, "snapshot")
        totals = data.get("totals") or {}
        try:
            created_at = parse_iso_datetime(data.get("createdAt"))
        except (TypeError, ValueError):
            created_at = None
        if created_at is None:
            raise RecordError("snapshot has no creation time")
        return cls(
            id=clean_text(data.get("id")),
            created_at=created_at,
            event=Event.from_dict(data.get("event") or {}),
            lines=[RollupLine.from_dict(ln) for ln in data.get("lines") or []],
            gross=round2(to_decimal(totals.get("gross", 0), "gross")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": to_utc_z(self.created_at),
            "event": self.event.to_dict(),
            "lines": [ln.to_dict() for ln in self.lines],
            "totals": {"gross": money_out(self.gross)},
        }
