from functools import wraps
from io import BytesIO

from flask import Blueprint, Response, current_app, jsonify, request, send_file
from werkzeug.datastructures import MultiDict

from fairstall import csrf
from fairstall.events import EventError
from fairstall.exporters import (
    build_rows_for_event, csv_filename, display_zone, snapshot_pdf_filename, to_csv,
)
from fairstall.forms import (
    CartLineForm, CheckoutForm, EventStartForm, FabricForm, FabricImageForm,
    ProductTypeForm, SeriesForm, SheetExportForm,
)
from fairstall.records import RecordError, RecordNotFound
from fairstall.rollup import compute_rollup, sales_in_window, window_snapshot_id
from fairstall.sheets import SheetConfig, SheetExportError
from fairstall.snapshots import ExportCancelled, export_rows_to_sheet, export_snapshot_pdf, prepare_snapshot
from fairstall.state import get_state
from fairstall.storage import StorageError
from fairstall.uploads import delete_fabric_image, find_fabric_image, save_fabric_image


# -----------------------
# Blueprints
# -----------------------
main_bp = Blueprint("main", __name__)
api_bp = Blueprint("api", __name__, url_prefix="/api")
csrf.exempt(api_bp)


# -----------------------
# Helpers
# -----------------------
def _error(message, status, **extra):
    return jsonify({"ok": False, "error": message, **extra}), status


def _invalid(form):
    return _error("Invalid input", 400, fields={f.name: f.errors for f in form if f.errors})


def _json_formdata():
    # JSON body -> form data, the way a browser form would send it
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    data = MultiDict()
    for key, value in payload.items():
        if isinstance(value, (dict, list)):
            continue
        if value is None:
            value = ""
        elif isinstance(value, bool):
            value = "true" if value else "false"
        data.add(key, str(value))
    return data


def _bind(form_cls):
    return form_cls(formdata=_json_formdata())


def _provided(form):
    """Fields the client actually sent, keyed by attribute name."""
    return {name: field.data for name, field in form._fields.items() if field.raw_data}


def _event_payload(evt):
    if evt is None:
        return None
    return {**evt.to_dict(), "isActive": evt.is_active}


def api_action(locked=True):
    """
    Runs the view with the loaded stall state and maps domain errors to
    JSON responses. ``locked`` holds the state lock for the whole view;
    export views take it themselves only while copying state.
    """
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            try:
                state = get_state()
                if locked:
                    with state.lock:
                        return view(state, *args, **kwargs)
                return view(state, *args, **kwargs)
            except RecordNotFound as e:
                return _error(str(e), 404)
            except RecordError as e:
                return _error(str(e), 400)
            except EventError as e:
                return _error(str(e), 409)
            except ExportCancelled as e:
                return _error(str(e), 409)
            except StorageError as e:
                current_app.logger.error("Storage failure: %s", e)
                return _error(f"Change not saved: {e}", 503)
        return wrapped
    return decorator


# -----------------------
# Main
# -----------------------
@main_bp.route("/")
@api_action()
def index(state):
    return jsonify({
        "ok": True,
        "currentEvent": _event_payload(state.events.current_event),
        "isActive": state.events.is_active,
        "cartLines": len(state.sales.cart),
        "cartSubtotal": float(state.sales.cart_subtotal),
        "salesCount": len(state.sales.sales),
    })


# -----------------------
# Catalog
# -----------------------
@api_bp.route("/catalog", methods=["GET"])
@api_action()
def catalog(state):
    only_active = request.args.get("active") in ("1", "true", "yes")
    product_types = state.sales.active_product_types if only_active else state.sales.product_types
    fabrics = state.sales.active_fabrics if only_active else state.sales.fabrics
    return jsonify({
        "ok": True,
        "productTypes": [p.to_dict() for p in product_types],
        "series": [s.to_dict() for s in state.sales.series],
        "fabrics": [f.to_dict() for f in fabrics],
    })


@api_bp.route("/product-types", methods=["POST"])
@api_action()
def product_type_create(state):
    form = _bind(ProductTypeForm)
    if not form.validate():
        return _invalid(form)

    fields = _provided(form)
    pt = state.sales.add_product_type(
        name=fields.get("name") or "",
        default_price=fields.get("default_price") or 0,
        unit_label=fields.get("unit_label") or "each",
        pack_size=fields.get("pack_size") or 1,
        is_active=fields.get("is_active", True),
    )
    return jsonify({"ok": True, "productType": pt.to_dict()}), 201


@api_bp.route("/product-types/<product_type_id>", methods=["PATCH"])
@api_action()
def product_type_update(state, product_type_id):
    form = _bind(ProductTypeForm)
    if not form.validate():
        return _invalid(form)
    pt = state.sales.update_product_type(product_type_id, **_provided(form))
    return jsonify({"ok": True, "productType": pt.to_dict()})


@api_bp.route("/product-types/<product_type_id>", methods=["DELETE"])
@api_action()
def product_type_delete(state, product_type_id):
    state.sales.remove_product_type(product_type_id)
    return jsonify({"ok": True})


@api_bp.route("/series", methods=["POST"])
@api_action()
def series_create(state):
    form = _bind(SeriesForm)
    if not form.validate():
        return _invalid(form)
    s = state.sales.add_series(form.name.data or "")
    return jsonify({"ok": True, "series": s.to_dict()}), 201


@api_bp.route("/series/<series_id>", methods=["PATCH"])
@api_action()
def series_update(state, series_id):
    form = _bind(SeriesForm)
    if not form.validate():
        return _invalid(form)
    s = state.sales.update_series(series_id, **_provided(form))
    return jsonify({"ok": True, "series": s.to_dict()})


@api_bp.route("/series/<series_id>", methods=["DELETE"])
@api_action()
def series_delete(state, series_id):
    moved = state.sales.remove_series(series_id)
    return jsonify({"ok": True, "unsortedFabricIds": [f.id for f in moved]})


@api_bp.route("/fabrics", methods=["POST"])
@api_action()
def fabric_create(state):
    form = _bind(FabricForm)
    if not form.validate():
        return _invalid(form)

    fields = _provided(form)
    f = state.sales.add_fabric(
        name=fields.get("name") or "",
        series_id=fields.get("series_id"),
        is_active=fields.get("is_active", True),
    )
    return jsonify({"ok": True, "fabric": f.to_dict()}), 201


@api_bp.route("/fabrics/<fabric_id>", methods=["PATCH"])
@api_action()
def fabric_update(state, fabric_id):
    form = _bind(FabricForm)
    if not form.validate():
        return _invalid(form)
    f = state.sales.update_fabric(fabric_id, **_provided(form))
    return jsonify({"ok": True, "fabric": f.to_dict()})


@api_bp.route("/fabrics/<fabric_id>", methods=["DELETE"])
@api_action()
def fabric_delete(state, fabric_id):
    state.sales.remove_fabric(fabric_id)
    try:
        delete_fabric_image(fabric_id)
    except (OSError, ValueError):
        current_app.logger.warning("Could not remove image of fabric %s", fabric_id, exc_info=True)
    return jsonify({"ok": True})


@api_bp.route("/fabrics/<fabric_id>/image", methods=["POST"])
@api_action()
def fabric_image_upload(state, fabric_id):
    if state.sales.get_fabric(fabric_id) is None:
        return _error(f"fabric not found: {fabric_id}", 404)

    form = FabricImageForm()
    if not form.validate_on_submit():
        return _invalid(form)
    try:
        save_fabric_image(form.image.data, fabric_id)
    except ValueError as e:
        return _error(str(e), 400)
    return jsonify({"ok": True}), 201


@api_bp.route("/fabrics/<fabric_id>/image", methods=["GET"])
@api_action()
def fabric_image(state, fabric_id):
    try:
        path = find_fabric_image(fabric_id)
    except ValueError:
        path = None
    if not path:
        return _error("no image for this fabric", 404)
    return send_file(path)


# -----------------------
# Cart
# -----------------------
def _cart_payload(state):
    return {
        "ok": True,
        "lines": [ln.to_dict() for ln in state.sales.cart],
        "subtotal": float(state.sales.cart_subtotal),
    }


@api_bp.route("/cart", methods=["GET"])
@api_action()
def cart(state):
    return jsonify(_cart_payload(state))


@api_bp.route("/cart/lines", methods=["POST"])
@api_action()
def cart_add(state):
    form = _bind(CartLineForm)
    if not form.validate():
        return _invalid(form)

    fields = _provided(form)
    product_type_id = (fields.get("product_type_id") or "").strip()
    if not product_type_id:
        return _error("Choose a product first", 400)

    pt = state.sales.get_product_type(product_type_id)
    if pt is None:
        return _error(f"product type not found: {product_type_id}", 404)
    if pt.requires_fabric and not (fields.get("fabric_id") or "").strip():
        return _error(f"Choose a fabric for {pt.name}", 400)

    line = state.sales.add_cart_line(
        product_type_id,
        qty=fields.get("qty") or 1,
        fabric_id=fields.get("fabric_id") if pt.requires_fabric else None,
        unit_price=fields.get("unit_price"),
        name=fields.get("name"),
    )
    return jsonify({**_cart_payload(state), "line": line.to_dict()}), 201


@api_bp.route("/cart/lines/<line_id>", methods=["PATCH"])
@api_action()
def cart_update(state, line_id):
    form = _bind(CartLineForm)
    if not form.validate():
        return _invalid(form)
    fields = _provided(form)
    fields.pop("product_type_id", None)
    line = state.sales.update_cart_line(line_id, **fields)
    return jsonify({**_cart_payload(state), "line": line.to_dict()})


@api_bp.route("/cart/lines/<line_id>", methods=["DELETE"])
@api_action()
def cart_remove(state, line_id):
    state.sales.remove_cart_line(line_id)
    return jsonify(_cart_payload(state))


@api_bp.route("/cart/clear", methods=["POST"])
@api_action()
def cart_clear(state):
    state.sales.clear_cart()
    return jsonify(_cart_payload(state))


# -----------------------
# Sales ledger
# -----------------------
@api_bp.route("/sales", methods=["POST"])
@api_action()
def sale_create(state):
    form = _bind(CheckoutForm)
    if not form.validate():
        return _invalid(form)

    sale = state.sales.create_sale_from_cart(
        customer=form.customer.data or "",
        note=form.note.data or "",
        discount=form.discount.data or 0,
    )
    return jsonify({"ok": True, "sale": sale.to_dict()}), 201


@api_bp.route("/sales", methods=["GET"])
@api_action()
def sales_list(state):
    event_id = (request.args.get("event_id") or "").strip()
    limit = request.args.get("limit", default=50, type=int)

    if event_id:
        evt = state.events.require_event(event_id)
        sales = sorted(sales_in_window(evt, state.sales.sales), key=lambda s: s.created_at, reverse=True)
    else:
        sales = state.sales.sales
    return jsonify({
        "ok": True,
        "count": len(sales),
        "sales": [s.to_dict() for s in sales[:max(0, limit)]],
    })


@api_bp.route("/sales/<sale_id>", methods=["DELETE"])
@api_action()
def sale_delete(state, sale_id):
    state.sales.delete_sale(sale_id)
    return jsonify({"ok": True})


# -----------------------
# Events
# -----------------------
@api_bp.route("/events", methods=["GET"])
@api_action()
def events_list(state):
    current = state.events.current_event
    return jsonify({
        "ok": True,
        "events": [_event_payload(e) for e in state.events.events],
        "currentEventId": current.id if current else None,
        "isActive": state.events.is_active,
    })


@api_bp.route("/events", methods=["POST"])
@api_action()
def event_start(state):
    form = _bind(EventStartForm)
    if not form.validate():
        return _invalid(form)

    evt = state.events.start_event(
        form.name.data,
        date=form.date.data.isoformat() if form.date.data else None,
        location=form.location.data or "",
    )
    return jsonify({"ok": True, "event": _event_payload(evt)}), 201


@api_bp.route("/events/current", methods=["GET"])
@api_action()
def event_current(state):
    return jsonify({
        "ok": True,
        "event": _event_payload(state.events.current_event),
        "isActive": state.events.is_active,
    })


@api_bp.route("/events/<event_id>/end", methods=["POST"])
@api_action()
def event_end(state, event_id):
    evt = state.events.end_event(event_id)
    return jsonify({"ok": True, "event": _event_payload(evt)})


@api_bp.route("/events/<event_id>/restore", methods=["POST"])
@api_action()
def event_restore(state, event_id):
    evt = state.events.restore_event(event_id)
    return jsonify({"ok": True, "event": _event_payload(evt)})


@api_bp.route("/events/<event_id>/rollup", methods=["GET"])
@api_action()
def event_rollup(state, event_id):
    evt = state.events.require_event(event_id)
    snapshot = compute_rollup(evt, state.sales.sales)
    return jsonify({
        "ok": True,
        "rollup": snapshot.to_dict(),
        "salesCount": len(sales_in_window(evt, state.sales.sales)),
    })


# -----------------------
# Snapshots / exports
# -----------------------
@api_bp.route("/events/<event_id>/snapshots", methods=["POST"])
@api_action()
def snapshot_record(state, event_id):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    evt = state.events.require_event(event_id)
    # without an explicit id, the same window contents map to the same snapshot
    snapshot_id = str(payload.get("snapshotId") or "").strip() or window_snapshot_id(evt, state.sales.sales)

    existing = state.snapshots.get(snapshot_id)
    if existing is not None:
        return jsonify({"ok": True, "created": False, "snapshot": existing.to_dict()})

    snapshot = prepare_snapshot(evt, state.sales.sales, snapshot_id=snapshot_id)
    stored, created = state.snapshots.record(snapshot)
    return jsonify({"ok": True, "created": created, "snapshot": stored.to_dict()}), 201 if created else 200


@api_bp.route("/events/<event_id>/snapshots", methods=["GET"])
@api_action()
def snapshots_list(state, event_id):
    state.events.require_event(event_id)
    return jsonify({
        "ok": True,
        "snapshots": [s.to_dict() for s in state.snapshots.for_event(event_id)],
    })


@api_bp.route("/snapshots/<snapshot_id>/pdf", methods=["GET"])
@api_action(locked=False)
def snapshot_pdf(state, snapshot_id):
    with state.lock:
        snapshot = state.snapshots.get(snapshot_id)
        if snapshot is None:
            return _error(f"snapshot not found: {snapshot_id}", 404)
        fabric_names = state.sales.fabric_names()

    try:
        data = export_snapshot_pdf(snapshot, fabric_names)
    except ExportCancelled:
        raise
    except Exception:  # reportlab layout errors
        current_app.logger.exception("Failed to render snapshot PDF")
        return _error("Couldn't create the snapshot PDF. Try again.", 500)

    return send_file(
        BytesIO(data),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=snapshot_pdf_filename(snapshot.event),
    )


@api_bp.route("/events/<event_id>/sales.csv", methods=["GET"])
@api_action()
def event_sales_csv(state, event_id):
    evt = state.events.require_event(event_id)
    rows = build_rows_for_event(
        evt,
        sales_in_window(evt, state.sales.sales),
        state.sales.fabric_names(),
        display_zone(current_app.config.get("DISPLAY_TIMEZONE")),
    )
    return Response(
        to_csv(rows),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{csv_filename(evt)}"'},
    )


@api_bp.route("/events/<event_id>/sheet-export", methods=["POST"])
@api_action(locked=False)
def event_sheet_export(state, event_id):
    form = _bind(SheetExportForm)
    if not form.validate():
        return _invalid(form)

    cfg = SheetConfig.from_mapping(
        current_app.config,
        sheet_id=(form.sheet_id.data or "").strip(),
        sheet_name=(form.sheet_name.data or "").strip(),
    )
    if not cfg.endpoint_url:
        return _error("Spreadsheet endpoint is not configured", 400)

    with state.lock:
        evt = state.events.require_event(event_id)
        rows = build_rows_for_event(
            evt,
            sales_in_window(evt, state.sales.sales),
            state.sales.fabric_names(),
            display_zone(current_app.config.get("DISPLAY_TIMEZONE")),
        )

    try:
        result = export_rows_to_sheet(rows, cfg)
    except SheetExportError as e:
        current_app.logger.error("Sheets export for event %s failed: %s", event_id, e)
        return _error(str(e), 502, upstreamStatus=e.status, body=e.body)
    return jsonify({"ok": True, "rows": len(rows), "result": result})


# -----------------------
# Backup / restore
# -----------------------
@api_bp.route("/backup", methods=["GET"])
@api_action()
def backup_export(state):
    return Response(
        state.sales.export_json(),
        mimetype="application/json",
        headers={"Content-Disposition": 'attachment; filename="fairstall-backup.json"'},
    )


@api_bp.route("/backup", methods=["POST"])
@api_action()
def backup_import(state):
    upload = request.files.get("backup")
    text = upload.read().decode("utf-8", errors="replace") if upload else request.get_data(as_text=True)

    if not state.sales.import_json(text or ""):
        return _error("Import failed (bad JSON)", 400)
    return jsonify({
        "ok": True,
        "productTypes": len(state.sales.product_types),
        "sales": len(state.sales.sales),
    })
