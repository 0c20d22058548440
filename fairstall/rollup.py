"""
Per-event sales rollups.

A sale belongs to an event when ``started_at <= sale.created_at < ended_at``;
an open event has no upper bound. Line items are grouped by
(name, fabric id, unit price), so the same product sold at two prices shows
up as two lines.

Money is rounded half-up to cents on each line revenue and again on the
gross; line revenues of cent-priced items are exact, so the two roundings
never drift apart.
"""
from __future__ import annotations

import hashlib
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from fairstall.records import Event, RollupLine, Sale, Snapshot, round2
from fairstall.time_utils import utcnow

GroupKey = Tuple[str, str, Decimal]


def in_window(event: Event, when: datetime) -> bool:
    if when < event.started_at:
        return False
    return event.ended_at is None or when < event.ended_at


def sales_in_window(event: Event, sales: Iterable[Sale]) -> List[Sale]:
    return [s for s in sales if in_window(event, s.created_at)]


def rollup_lines(sales: Iterable[Sale]) -> List[RollupLine]:
    groups: Dict[GroupKey, RollupLine] = {}
    for sale in sales:
        for item in sale.items:
            key = (item.name, item.fabric_id or "", item.unit_price)
            line = groups.get(key)
            if line is None:
                line = RollupLine(
                    name=item.name,
                    fabric_id=item.fabric_id,
                    unit_price=item.unit_price,
                    qty=0,
                    revenue=Decimal("0.00"),
                )
                groups[key] = line
            line.qty += item.qty

    for line in groups.values():
        line.revenue = round2(line.qty * line.unit_price)
    return list(groups.values())


def gross_total(lines: Iterable[RollupLine]) -> Decimal:
    return round2(sum((ln.revenue for ln in lines), Decimal("0")))


def snapshot_id_for(event: Event, created_at: datetime) -> str:
    return f"snap-{event.id}-{int(created_at.timestamp() * 1000)}"


def window_snapshot_id(event: Event, sales: Iterable[Sale]) -> str:
    """
    Id that depends only on the event window and the sales inside it, so
    recording the same unchanged window twice yields one snapshot.
    """
    digest = hashlib.sha1()
    digest.update(event.id.encode("utf-8"))
    digest.update(str(event.ended_at.timestamp() if event.ended_at else "open").encode("utf-8"))
    for sale_id in sorted(s.id for s in sales_in_window(event, sales)):
        digest.update(b"\0" + sale_id.encode("utf-8"))
    return f"snap-{event.id}-{digest.hexdigest()[:12]}"


def compute_rollup(event: Event, all_sales: Iterable[Sale], now: Optional[datetime] = None,
                   snapshot_id: Optional[str] = None) -> Snapshot:
    created_at = now or utcnow()
    lines = rollup_lines(sales_in_window(event, all_sales))
    return Snapshot(
        id=snapshot_id or snapshot_id_for(event, created_at),
        created_at=created_at,
        event=event,
        lines=lines,
        gross=gross_total(lines),
    )
