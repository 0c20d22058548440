from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fairstall.records import (
    CartLine, Fabric, ProductType, RecordError, RecordNotFound, Sale, Series,
    clean_text, money_out, new_id, optional_ref, round2, to_decimal, to_quantity,
)
from fairstall.storage import KeyValueStorage, StorageError
from fairstall.time_utils import utcnow

logger = logging.getLogger(__name__)

STORE_KEY = "fairstall.store"
LIST_KEYS = ("productTypes", "series", "fabrics", "cart", "sales")


def seed_data() -> Dict[str, Any]:
    return {
        "productTypes": [
            {"id": "pt-keychain", "name": "Keychain", "defaultPrice": 8, "unitLabel": "each", "packSize": 1, "isActive": True},
            {"id": "pt-sticker", "name": "Sticker", "defaultPrice": 3, "unitLabel": "each", "packSize": 1, "isActive": True},
        ],
        "series": [],
        "fabrics": [],
        "cart": [],
        "sales": [],
    }


@dataclass
class StoreState:
    product_types: List[ProductType] = field(default_factory=list)
    series: List[Series] = field(default_factory=list)
    fabrics: List[Fabric] = field(default_factory=list)
    cart: List[CartLine] = field(default_factory=list)
    sales: List[Sale] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "productTypes": [p.to_dict() for p in self.product_types],
            "series": [s.to_dict() for s in self.series],
            "fabrics": [f.to_dict() for f in self.fabrics],
            "cart": [ln.to_dict() for ln in self.cart],
            "sales": [s.to_dict() for s in self.sales],
        }


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def migrate_store_data(raw: Any) -> StoreState:
    """Upgrade a stored or imported blob to the current record shapes."""
    d = raw if isinstance(raw, dict) else {}
    return StoreState(
        product_types=[ProductType.from_dict(p) for p in _as_list(d.get("productTypes"))],
        series=[Series.from_dict(s) for s in _as_list(d.get("series"))],
        fabrics=[Fabric.from_dict(f) for f in _as_list(d.get("fabrics"))],
        cart=[CartLine.from_dict(ln) for ln in _as_list(d.get("cart"))],
        sales=[Sale.from_dict(s) for s in _as_list(d.get("sales"))],
        extra={k: v for k, v in d.items() if k not in LIST_KEYS},
    )


def with_seed_fallback(state: StoreState) -> StoreState:
    seed = migrate_store_data(seed_data())
    if not state.product_types:
        state.product_types = seed.product_types
    if not state.series:
        state.series = seed.series
    if not state.fabrics:
        state.fabrics = seed.fabrics
    return state


def _find(items, item_id: str, what: str):
    for it in items:
        if it.id == item_id:
            return it
    raise RecordNotFound(f"{what} not found: {item_id}")


def _apply_patch(record, patch: Dict[str, Any], allowed: Dict[str, str], parser):
    unknown = set(patch) - set(allowed)
    if unknown:
        raise RecordError(f"cannot update field(s): {', '.join(sorted(unknown))}")
    data = record.to_dict()
    for attr, value in patch.items():
        if isinstance(value, Decimal):
            value = money_out(value)
        data[allowed[attr]] = value
    data["id"] = record.id
    return parser(data)


class SalesStore:
    """Catalog, cart and sales ledger, persisted as one JSON document."""

    def __init__(self, storage: KeyValueStorage, key: str = STORE_KEY):
        self.storage = storage
        self.key = key
        self.state = migrate_store_data(seed_data())

    def load(self) -> None:
        raw = self.storage.read_json(self.key)
        if raw is None:
            self.state = migrate_store_data(seed_data())
            return
        try:
            self.state = with_seed_fallback(migrate_store_data(raw))
        except RecordError as e:
            raise StorageError(f"stored catalog is invalid: {e}") from e

    def save(self) -> None:
        self.storage.write_json(self.key, self.state.to_dict())

    # -------------------------
    # Read helpers
    # -------------------------
    @property
    def product_types(self) -> List[ProductType]:
        return self.state.product_types

    @property
    def series(self) -> List[Series]:
        return self.state.series

    @property
    def fabrics(self) -> List[Fabric]:
        return self.state.fabrics

    @property
    def cart(self) -> List[CartLine]:
        return self.state.cart

    @property
    def sales(self) -> List[Sale]:
        return self.state.sales

    @property
    def active_product_types(self) -> List[ProductType]:
        return [p for p in self.state.product_types if p.is_active]

    @property
    def active_fabrics(self) -> List[Fabric]:
        return [f for f in self.state.fabrics if f.is_active]

    def get_product_type(self, product_type_id: str) -> Optional[ProductType]:
        return next((p for p in self.state.product_types if p.id == product_type_id), None)

    def get_fabric(self, fabric_id: str) -> Optional[Fabric]:
        return next((f for f in self.state.fabrics if f.id == fabric_id), None)

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        return next((s for s in self.state.sales if s.id == sale_id), None)

    def latest_sales(self, limit: int = 50) -> List[Sale]:
        return self.state.sales[:max(0, limit)]

    def fabric_names(self) -> Dict[str, str]:
        return {f.id: f.name for f in self.state.fabrics}

    # -------------------------
    # Product types
    # -------------------------
    def add_product_type(self, name: str = "", default_price: Any = 0, unit_label: str = "each",
                         pack_size: Any = 1, is_active: bool = True,
                         product_type_id: Optional[str] = None) -> ProductType:
        pt = ProductType.from_dict({
            "id": product_type_id or new_id("pt"),
            "name": name,
            "defaultPrice": default_price,
            "unitLabel": unit_label,
            "packSize": pack_size,
            "isActive": is_active,
        })
        if self.get_product_type(pt.id):
            raise RecordError(f"product type already exists: {pt.id}")
        self.state.product_types.append(pt)
        self.save()
        return pt

    def update_product_type(self, product_type_id: str, **patch) -> ProductType:
        current = _find(self.state.product_types, product_type_id, "product type")
        updated = _apply_patch(current, patch, {
            "name": "name",
            "default_price": "defaultPrice",
            "unit_label": "unitLabel",
            "pack_size": "packSize",
            "is_active": "isActive",
        }, ProductType.from_dict)
        idx = self.state.product_types.index(current)
        self.state.product_types[idx] = updated
        self.save()
        return updated

    def remove_product_type(self, product_type_id: str) -> None:
        current = _find(self.state.product_types, product_type_id, "product type")
        self.state.product_types.remove(current)
        self.save()

    # -------------------------
    # Series
    # -------------------------
    def add_series(self, name: str) -> Series:
        clean = clean_text(name)
        if not clean:
            raise RecordError("series name is empty")
        s = Series(id=new_id("ser"), name=clean, is_active=True)
        self.state.series.append(s)
        self.save()
        return s

    def update_series(self, series_id: str, **patch) -> Series:
        current = _find(self.state.series, series_id, "series")
        updated = _apply_patch(current, patch, {"name": "name", "is_active": "isActive"}, Series.from_dict)
        idx = self.state.series.index(current)
        self.state.series[idx] = updated
        self.save()
        return updated

    def remove_series(self, series_id: str) -> List[Fabric]:
        """Fabrics of the series stay, moved to Unsorted (no series)."""
        current = _find(self.state.series, series_id, "series")
        self.state.series.remove(current)
        moved = []
        for f in self.state.fabrics:
            if f.series_id == series_id:
                f.series_id = None
                moved.append(f)
        self.save()
        return moved

    # -------------------------
    # Fabrics
    # -------------------------
    def add_fabric(self, name: str, series_id: Optional[str] = None, is_active: bool = True,
                   fabric_id: Optional[str] = None) -> Fabric:
        clean = clean_text(name)
        if not clean:
            raise RecordError("fabric name is empty")
        series_id = optional_ref(series_id)
        if series_id is not None:
            _find(self.state.series, series_id, "series")
        f = Fabric(id=fabric_id or new_id("fab"), name=clean, series_id=series_id, is_active=bool(is_active))
        if self.get_fabric(f.id):
            raise RecordError(f"fabric already exists: {f.id}")
        self.state.fabrics.append(f)
        self.save()
        return f

    def update_fabric(self, fabric_id: str, **patch) -> Fabric:
        current = _find(self.state.fabrics, fabric_id, "fabric")
        if optional_ref(patch.get("series_id")) is not None:
            _find(self.state.series, optional_ref(patch["series_id"]), "series")
        updated = _apply_patch(current, patch, {
            "name": "name",
            "series_id": "seriesId",
            "is_active": "isActive",
        }, Fabric.from_dict)
        idx = self.state.fabrics.index(current)
        self.state.fabrics[idx] = updated
        self.save()
        return updated

    def remove_fabric(self, fabric_id: str) -> None:
        current = _find(self.state.fabrics, fabric_id, "fabric")
        self.state.fabrics.remove(current)
        self.save()

    # -------------------------
    # Cart
    # -------------------------
    def add_cart_line(self, product_type_id: str, qty: Any = 1, fabric_id: Optional[str] = None,
                      unit_price: Any = None, name: Optional[str] = None) -> CartLine:
        pt = _find(self.state.product_types, product_type_id, "product type")
        fabric_id = optional_ref(fabric_id)
        if fabric_id is not None:
            _find(self.state.fabrics, fabric_id, "fabric")

        price = pt.default_price if unit_price is None else max(Decimal("0"), to_decimal(unit_price, "unitPrice"))
        line = CartLine(
            id=new_id("line"),
            product_type_id=pt.id,
            name=clean_text(name, pt.name),
            unit_price=price,
            qty=max(1, to_quantity(qty)),
            fabric_id=fabric_id,
        )
        self.state.cart.append(line)
        self.save()
        return line

    def update_cart_line(self, line_id: str, **patch) -> CartLine:
        current = _find(self.state.cart, line_id, "cart line")
        if optional_ref(patch.get("fabric_id")) is not None:
            _find(self.state.fabrics, optional_ref(patch["fabric_id"]), "fabric")
        updated = _apply_patch(current, patch, {
            "name": "name",
            "unit_price": "unitPrice",
            "qty": "qty",
            "fabric_id": "fabricId",
        }, CartLine.from_dict)
        idx = self.state.cart.index(current)
        self.state.cart[idx] = updated
        self.save()
        return updated

    def remove_cart_line(self, line_id: str) -> None:
        current = _find(self.state.cart, line_id, "cart line")
        self.state.cart.remove(current)
        self.save()

    def clear_cart(self) -> None:
        self.state.cart = []
        self.save()

    @property
    def cart_subtotal(self) -> Decimal:
        return round2(sum((ln.line_total for ln in self.state.cart), Decimal("0")))

    # -------------------------
    # Sales ledger
    # -------------------------
    def create_sale_from_cart(self, customer: str = "", note: str = "", discount: Any = 0,
                              now: Optional[datetime] = None) -> Sale:
        if not self.state.cart:
            raise RecordError("cart is empty")

        subtotal = self.cart_subtotal
        discount = max(Decimal("0"), to_decimal(discount or 0, "discount"))
        total = round2(max(Decimal("0"), subtotal - discount))

        sale = Sale(
            id=new_id("so"),
            created_at=now or utcnow(),
            items=copy.deepcopy(self.state.cart),
            customer=clean_text(customer),
            subtotal=subtotal,
            total=total,
            note=clean_text(note),
        )
        self.state.sales.insert(0, sale)
        self.state.cart = []
        self.save()
        logger.info("Recorded sale %s: %s item line(s), total %s", sale.id, len(sale.items), sale.total)
        return sale

    def delete_sale(self, sale_id: str) -> None:
        current = _find(self.state.sales, sale_id, "sale")
        self.state.sales.remove(current)
        self.save()

    # -------------------------
    # Backup / restore
    # -------------------------
    def export_json(self) -> str:
        return json.dumps(self.state.to_dict(), ensure_ascii=False, indent=2)

    def import_json(self, text: str) -> bool:
        """Replace the whole store from a backup; False when the backup is unusable."""
        try:
            parsed = json.loads(text)
            if not isinstance(parsed, dict):
                raise RecordError("backup must be a JSON object")
            state = with_seed_fallback(migrate_store_data(parsed))
        except (TypeError, ValueError) as e:
            logger.warning("Backup import rejected: %s", e)
            return False
        self.state = state
        self.save()
        return True
