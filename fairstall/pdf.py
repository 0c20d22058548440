from __future__ import annotations

from io import BytesIO
from typing import Dict, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, Table, TableStyle

from fairstall.records import Snapshot

VIEW_WIDTH = 760
TOP_OFFSET = 24
SIDE_MARGIN = 24

THEME = {
    "ink": colors.HexColor("#111827"),
    "muted": colors.HexColor("#4B5563"),
    "border": colors.HexColor("#D1D5DB"),
    "row_alt": colors.HexColor("#F3F4F6"),
}


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name="SnapTitle",
        parent=styles["Normal"],
        fontName="Helvetica-Bold",
        fontSize=20,
        leading=24,
        textColor=THEME["ink"],
    ))
    styles.add(ParagraphStyle(
        name="SnapMeta",
        parent=styles["Normal"],
        fontName="Helvetica",
        fontSize=11,
        leading=14,
        textColor=THEME["muted"],
    ))
    styles.add(ParagraphStyle(
        name="SnapCell",
        parent=styles["Normal"],
        fontName="Helvetica",
        fontSize=12,
        leading=15,
        textColor=THEME["ink"],
    ))
    return styles


def _money(value) -> str:
    return f"${value:,.2f}"


def build_snapshot_view(snapshot: Snapshot, fabric_names: Optional[Dict[str, str]] = None) -> Table:
    """The printable snapshot: heading, gross, then one row per item line."""
    fabric_names = fabric_names or {}
    styles = _styles()
    evt = snapshot.event

    meta = " • ".join(p for p in (evt.date or "", evt.location) if p)
    rows = [
        [Paragraph(escape(f"{evt.name or 'Event'} — Snapshot"), styles["SnapTitle"]), ""],
        [Paragraph(escape(meta), styles["SnapMeta"]), ""],
        [Paragraph(f"<b>Gross Sales: {_money(snapshot.gross)}</b>", styles["SnapCell"]), ""],
        [Paragraph("<b>Items</b>", styles["SnapCell"]), ""],
    ]
    header_rows = len(rows)

    if not snapshot.lines:
        rows.append([Paragraph("No items.", styles["SnapMeta"]), ""])
    for ln in snapshot.lines:
        label = ln.name
        if ln.fabric_id:
            label += f" — {fabric_names.get(ln.fabric_id, ln.fabric_id)}"
        label += f" × {ln.qty}"
        rows.append([Paragraph(escape(label), styles["SnapCell"]), _money(ln.revenue)])

    t = Table(rows, colWidths=[VIEW_WIDTH * 0.75, VIEW_WIDTH * 0.25])
    t.setStyle(TableStyle([
        ("SPAN", (0, 0), (-1, 0)),
        ("SPAN", (0, 1), (-1, 1)),
        ("SPAN", (0, 2), (-1, 2)),
        ("SPAN", (0, 3), (-1, 3)),
        ("BACKGROUND", (0, 0), (-1, -1), colors.white),
        ("LINEBELOW", (0, header_rows - 1), (-1, header_rows - 1), 0.8, THEME["ink"]),
        ("ROWBACKGROUNDS", (0, header_rows), (-1, -1), [colors.white, THEME["row_alt"]]),
        ("LINEBELOW", (0, header_rows), (-1, -1), 0.4, THEME["border"]),
        ("FONTNAME", (1, header_rows), (1, -1), "Helvetica"),
        ("FONTSIZE", (1, header_rows), (1, -1), 12),
        ("ALIGN", (1, header_rows), (1, -1), "RIGHT"),
        ("LEFTPADDING", (0, 0), (-1, -1), 12),
        ("RIGHTPADDING", (0, 0), (-1, -1), 12),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    return t


def render_snapshot_pdf(snapshot: Snapshot, fabric_names: Optional[Dict[str, str]] = None) -> bytes:
    """
    Single A4 page: the snapshot view scaled to fit the page, centered
    horizontally and anchored to the top.
    """
    buf = BytesIO()
    page_w, page_h = A4
    pdf = canvas.Canvas(buf, pagesize=A4)
    pdf.setTitle(f"{snapshot.event.name or 'Event'} snapshot")

    view = build_snapshot_view(snapshot, fabric_names)
    avail_w = page_w - 2 * SIDE_MARGIN
    avail_h = page_h - TOP_OFFSET - SIDE_MARGIN
    w, h = view.wrap(VIEW_WIDTH, page_h * 10)
    ratio = min(avail_w / w, avail_h / h)

    x = (page_w - w * ratio) / 2
    y = page_h - TOP_OFFSET - h * ratio
    pdf.saveState()
    pdf.translate(x, y)
    pdf.scale(ratio, ratio)
    view.drawOn(pdf, 0, 0)
    pdf.restoreState()

    pdf.showPage()
    pdf.save()
    return buf.getvalue()
