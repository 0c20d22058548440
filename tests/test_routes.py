"""
JSON API tests, run through the Flask test client against memory storage.
"""

import csv
import io

from fairstall.sheets import SheetExportError


def _ok(resp, status=200):
    assert resp.status_code == status, resp.get_data(as_text=True)
    data = resp.get_json()
    assert data["ok"] is True
    return data


# =============================================================================
# CATALOG
# =============================================================================


class TestCatalog:

    def test_seed_catalog(self, client):
        data = _ok(client.get("/api/catalog"))
        assert [p["name"] for p in data["productTypes"]] == ["Keychain", "Sticker"]

    def test_create_and_patch_product_type(self, client):
        data = _ok(client.post("/api/product-types", json={
            "name": "Scrunchie", "defaultPrice": 4.1, "unitLabel": "bulk", "packSize": 3,
        }), 201)
        pt = data["productType"]
        assert pt["defaultPrice"] == 4.1
        assert pt["isActive"] is True

        data = _ok(client.patch(f"/api/product-types/{pt['id']}", json={"isActive": False}))
        assert data["productType"]["isActive"] is False
        assert data["productType"]["packSize"] == 3

        active = _ok(client.get("/api/catalog?active=1"))
        assert pt["id"] not in [p["id"] for p in active["productTypes"]]

    def test_invalid_number(self, client):
        resp = client.post("/api/product-types", json={"name": "X", "defaultPrice": "cheap"})
        assert resp.status_code == 400
        assert "defaultPrice" in resp.get_json()["fields"]

    def test_patch_missing(self, client):
        assert client.patch("/api/product-types/pt-nope", json={"name": "X"}).status_code == 404

    def test_series_removal_moves_fabrics(self, client):
        ser = _ok(client.post("/api/series", json={"name": "Florals"}), 201)["series"]
        fab = _ok(client.post("/api/fabrics", json={"name": "Rose", "seriesId": ser["id"]}), 201)["fabric"]

        data = _ok(client.delete(f"/api/series/{ser['id']}"))
        assert data["unsortedFabricIds"] == [fab["id"]]
        fabrics = _ok(client.get("/api/catalog"))["fabrics"]
        assert fabrics[0]["seriesId"] is None

    def test_empty_series_name(self, client):
        assert client.post("/api/series", json={"name": ""}).status_code == 400

    def test_fabric_image_upload(self, client):
        fab = _ok(client.post("/api/fabrics", json={"name": "Rose"}), 201)["fabric"]
        resp = client.post(
            f"/api/fabrics/{fab['id']}/image",
            data={"image": (io.BytesIO(b"\x89PNG fake"), "rose.png")},
            content_type="multipart/form-data",
        )
        _ok(resp, 201)
        assert client.get(f"/api/fabrics/{fab['id']}/image").status_code == 200

        _ok(client.delete(f"/api/fabrics/{fab['id']}"))
        assert client.get(f"/api/fabrics/{fab['id']}/image").status_code == 404

    def test_fabric_image_wrong_type(self, client):
        fab = _ok(client.post("/api/fabrics", json={"name": "Rose"}), 201)["fabric"]
        resp = client.post(
            f"/api/fabrics/{fab['id']}/image",
            data={"image": (io.BytesIO(b"GIF89a"), "rose.gif")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400


# =============================================================================
# CART / CHECKOUT
# =============================================================================


class TestCheckout:

    def _fabric(self, client):
        return _ok(client.post("/api/fabrics", json={"name": "Rose"}), 201)["fabric"]["id"]

    def test_fabric_required_for_non_bulk(self, client):
        resp = client.post("/api/cart/lines", json={"productTypeId": "pt-keychain"})
        assert resp.status_code == 400
        assert "fabric" in resp.get_json()["error"].lower()

    def test_bulk_items_skip_fabric(self, client):
        pt = _ok(client.post("/api/product-types", json={"name": "Bag", "defaultPrice": 2, "unitLabel": "bulk"}), 201)
        _ok(client.post("/api/cart/lines", json={"productTypeId": pt["productType"]["id"]}), 201)

    def test_cart_to_sale(self, client):
        fab = self._fabric(client)
        data = _ok(client.post("/api/cart/lines", json={"productTypeId": "pt-keychain", "fabricId": fab, "qty": 2}), 201)
        assert data["subtotal"] == 16.0
        line_id = data["line"]["id"]

        data = _ok(client.patch(f"/api/cart/lines/{line_id}", json={"qty": 3}))
        assert data["subtotal"] == 24.0

        sale = _ok(client.post("/api/sales", json={"customer": "Ana", "discount": "4"}), 201)["sale"]
        assert sale["subtotal"] == 24
        assert sale["total"] == 20
        assert _ok(client.get("/api/cart"))["lines"] == []

        listed = _ok(client.get("/api/sales"))
        assert [s["id"] for s in listed["sales"]] == [sale["id"]]

        _ok(client.delete(f"/api/sales/{sale['id']}"))
        assert _ok(client.get("/api/sales"))["count"] == 0

    def test_checkout_empty_cart(self, client):
        assert client.post("/api/sales", json={}).status_code == 400

    def test_unknown_product(self, client):
        assert client.post("/api/cart/lines", json={"productTypeId": "pt-nope"}).status_code == 404


# =============================================================================
# EVENTS / EXPORTS
# =============================================================================


class TestEvents:

    def _sell_sticker(self, client, qty=1):
        _ok(client.post("/api/product-types", json={"name": "Pin", "defaultPrice": 3, "unitLabel": "bulk"}), 201)
        pins = [p for p in _ok(client.get("/api/catalog"))["productTypes"] if p["name"] == "Pin"]
        _ok(client.post("/api/cart/lines", json={"productTypeId": pins[0]["id"], "qty": qty}), 201)
        return _ok(client.post("/api/sales", json={}), 201)["sale"]

    def test_lifecycle(self, client):
        evt = _ok(client.post("/api/events", json={"name": "Spring Market", "date": "2024-01-01"}), 201)["event"]
        assert evt["isActive"] is True
        assert evt["date"] == "2024-01-01"

        assert client.post("/api/events", json={"name": "Second"}).status_code == 409

        current = _ok(client.get("/api/events/current"))
        assert current["event"]["id"] == evt["id"]

        ended = _ok(client.post(f"/api/events/{evt['id']}/end"))["event"]
        assert ended["isActive"] is False
        assert client.post(f"/api/events/{evt['id']}/end").status_code == 409

        restored = _ok(client.post(f"/api/events/{evt['id']}/restore"))
        assert restored["event"]["endedAt"] == ended["endedAt"]
        assert _ok(client.get("/api/events"))["currentEventId"] == evt["id"]

    def test_event_name_required(self, client):
        assert client.post("/api/events", json={"location": "Hall"}).status_code == 400

    def test_rollup_and_snapshot(self, client):
        evt = _ok(client.post("/api/events", json={"name": "Spring Market"}), 201)["event"]
        self._sell_sticker(client, qty=2)
        self._sell_sticker(client, qty=1)

        rollup = _ok(client.get(f"/api/events/{evt['id']}/rollup"))
        assert rollup["salesCount"] == 2
        assert rollup["rollup"]["totals"]["gross"] == 9.0

        first = client.post(f"/api/events/{evt['id']}/snapshots", json={"snapshotId": "snap-1"})
        assert first.status_code == 201
        second = client.post(f"/api/events/{evt['id']}/snapshots", json={"snapshotId": "snap-1"})
        assert second.status_code == 200
        assert second.get_json()["created"] is False

        listed = _ok(client.get(f"/api/events/{evt['id']}/snapshots"))
        assert [s["id"] for s in listed["snapshots"]] == ["snap-1"]

        pdf = client.get("/api/snapshots/snap-1/pdf")
        assert pdf.status_code == 200
        assert pdf.mimetype == "application/pdf"
        assert pdf.data.startswith(b"%PDF")
        assert "SpringMarket_snapshot.pdf" in pdf.headers["Content-Disposition"]

    def test_repeated_record_without_id_is_idempotent(self, client):
        evt = _ok(client.post("/api/events", json={"name": "Spring Market"}), 201)["event"]
        self._sell_sticker(client)
        url = f"/api/events/{evt['id']}/snapshots"

        first = client.post(url, json={})
        assert first.status_code == 201
        again = client.post(url)
        assert again.status_code == 200
        assert again.get_json()["snapshot"]["id"] == first.get_json()["snapshot"]["id"]

        self._sell_sticker(client)
        third = client.post(url, json={})
        assert third.status_code == 201
        assert len(_ok(client.get(url))["snapshots"]) == 2

    def test_missing_snapshot_pdf(self, client):
        assert client.get("/api/snapshots/snap-nope/pdf").status_code == 404

    def test_sales_csv(self, client):
        evt = _ok(client.post("/api/events", json={"name": "Spring Market"}), 201)["event"]
        sale = self._sell_sticker(client)

        resp = client.get(f"/api/events/{evt['id']}/sales.csv")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "SpringMarket_sales.csv" in resp.headers["Content-Disposition"]
        rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
        assert len(rows) == 2
        assert rows[1][1] == evt["id"]
        assert rows[1][6] == "3.00"

        by_event = _ok(client.get(f"/api/sales?event_id={evt['id']}"))
        assert [s["id"] for s in by_event["sales"]] == [sale["id"]]

    def test_sheet_export_not_configured(self, client):
        evt = _ok(client.post("/api/events", json={"name": "Spring Market"}), 201)["event"]
        assert client.post(f"/api/events/{evt['id']}/sheet-export", json={}).status_code == 400

    def test_sheet_export(self, app, client, monkeypatch):
        app.config["SHEETS_ENDPOINT_URL"] = "https://sheets.example.test/exec"
        evt = _ok(client.post("/api/events", json={"name": "Spring Market"}), 201)["event"]
        self._sell_sticker(client)
        sent = {}

        def fake_export(rows, cfg, cancel=None, session=None):
            sent["rows"] = rows
            sent["cfg"] = cfg
            return {"ok": True}

        monkeypatch.setattr("fairstall.routes.export_rows_to_sheet", fake_export)
        data = _ok(client.post(f"/api/events/{evt['id']}/sheet-export", json={"sheetName": "Market"}))
        assert data["rows"] == 1
        assert sent["cfg"].sheet_name == "Market"

    def test_sheet_export_failure(self, app, client, monkeypatch):
        app.config["SHEETS_ENDPOINT_URL"] = "https://sheets.example.test/exec"
        evt = _ok(client.post("/api/events", json={"name": "Spring Market"}), 201)["event"]

        def failing(rows, cfg, cancel=None, session=None):
            raise SheetExportError("Sheets export failed: 403", status=403, body="denied: bad token")

        monkeypatch.setattr("fairstall.routes.export_rows_to_sheet", failing)
        resp = client.post(f"/api/events/{evt['id']}/sheet-export", json={})
        assert resp.status_code == 502
        data = resp.get_json()
        assert data["ok"] is False
        assert data["upstreamStatus"] == 403
        assert data["body"] == "denied: bad token"
        assert "403" in data["error"]


# =============================================================================
# BACKUP / ERRORS
# =============================================================================


class TestBackup:

    def test_export_then_import(self, client):
        _ok(client.post("/api/series", json={"name": "Florals"}), 201)
        backup = client.get("/api/backup")
        assert backup.status_code == 200
        assert "attachment" in backup.headers["Content-Disposition"]

        _ok(client.delete(f"/api/series/{_ok(client.get('/api/catalog'))['series'][0]['id']}"))
        _ok(client.post("/api/backup", data=backup.data, content_type="application/json"))
        assert [s["name"] for s in _ok(client.get("/api/catalog"))["series"]] == ["Florals"]

    def test_bad_backup(self, client):
        resp = client.post("/api/backup", data="{oops", content_type="application/json")
        assert resp.status_code == 400


class TestStorageFailure:

    def test_unsaved_change_is_reported(self, client, state):
        state.storage.close()
        resp = client.post("/api/series", json={"name": "Florals"})
        assert resp.status_code == 503
        assert resp.get_json()["ok"] is False


def test_index(client):
    data = _ok(client.get("/"))
    assert data["currentEvent"] is None
    assert data["cartLines"] == 0
