"""
Spreadsheet export tests. The HTTP session is replaced with a fake.
"""

import json

import pytest
import requests

from conftest import at, make_event, make_sale
from fairstall.exporters import build_row
from fairstall.sheets import SheetConfig, SheetExportError, build_payload, post_to_sheet_batch


class FakeResponse:
    def __init__(self, status_code=200, text='{"ok": true, "appended": 1}', reason="OK"):
        self.status_code = status_code
        self.text = text
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def rows():
    return [build_row(make_event(), make_sale(at("10:05"), ("Keychain", 8, 2)))]


@pytest.fixture
def cfg():
    return SheetConfig(endpoint_url="https://sheets.example.test/exec", sheet_name="Sales", auth_token="tok")


class TestPayload:

    def test_sheet_id_only_when_set(self, rows, cfg):
        payload = build_payload(rows, cfg)
        assert set(payload) == {"rows", "sheetName"}
        assert payload["rows"][0]["salesOrderNumber"] == "SpringMarket-240101-1005"

        cfg.sheet_id = "abc123"
        assert build_payload(rows, cfg)["sheetId"] == "abc123"

    def test_config_from_mapping_with_overrides(self):
        cfg = SheetConfig.from_mapping(
            {"SHEETS_ENDPOINT_URL": "https://x.test", "SHEETS_SHEET_NAME": "", "SHEETS_TIMEOUT": "5"},
            sheet_id="override", sheet_name="",
        )
        assert cfg.sheet_id == "override"
        assert cfg.sheet_name == "Sales"
        assert cfg.timeout == 5.0


class TestPost:

    def test_single_request_with_bearer_token(self, rows, cfg):
        session = FakeSession()
        result = post_to_sheet_batch(rows, cfg, session=session)

        assert result == {"ok": True, "appended": 1}
        assert len(session.calls) == 1
        url, kwargs = session.calls[0]
        assert url == cfg.endpoint_url
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        assert kwargs["json"]["sheetName"] == "Sales"
        assert kwargs["timeout"] == cfg.timeout

    def test_non_json_success_body(self, rows, cfg):
        session = FakeSession(FakeResponse(200, "Appended"))
        assert post_to_sheet_batch(rows, cfg, session=session) == {"ok": True, "text": "Appended"}

    def test_http_error_carries_status_and_body(self, rows, cfg):
        session = FakeSession(FakeResponse(403, "Forbidden: bad token"))
        with pytest.raises(SheetExportError) as exc:
            post_to_sheet_batch(rows, cfg, session=session)
        assert exc.value.status == 403
        assert exc.value.body == "Forbidden: bad token"

    @pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("down")])
    def test_network_errors(self, rows, cfg, error):
        with pytest.raises(SheetExportError) as exc:
            post_to_sheet_batch(rows, cfg, session=FakeSession(error=error))
        assert exc.value.status is None

    def test_missing_endpoint(self, rows):
        with pytest.raises(SheetExportError):
            post_to_sheet_batch(rows, SheetConfig(endpoint_url=""), session=FakeSession())

    def test_uses_requests_by_default(self, rows, cfg, monkeypatch):
        calls = []

        def fake_post(url, **kwargs):
            calls.append(url)
            return FakeResponse()

        monkeypatch.setattr(requests, "post", fake_post)
        post_to_sheet_batch(rows, cfg)
        assert calls == [cfg.endpoint_url]
