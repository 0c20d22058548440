"""
Push export rows to a spreadsheet web endpoint (e.g. an Apps Script web app).

One POST per export carrying ``{rows, sheetId?, sheetName}``. Failures are
raised as SheetExportError with the HTTP status and response body; nothing
is retried here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from fairstall.exporters import SheetRow

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = "Sales"


class SheetExportError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


@dataclass
class SheetConfig:
    endpoint_url: str
    sheet_id: Optional[str] = None
    sheet_name: str = DEFAULT_SHEET_NAME
    auth_token: Optional[str] = None
    timeout: float = 15.0

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any], **overrides) -> "SheetConfig":
        values = {
            "endpoint_url": config.get("SHEETS_ENDPOINT_URL") or "",
            "sheet_id": config.get("SHEETS_SHEET_ID") or None,
            "sheet_name": config.get("SHEETS_SHEET_NAME") or DEFAULT_SHEET_NAME,
            "auth_token": config.get("SHEETS_AUTH_TOKEN") or None,
            "timeout": float(config.get("SHEETS_TIMEOUT") or 15.0),
        }
        values.update({k: v for k, v in overrides.items() if v})
        return cls(**values)


def build_payload(rows: Iterable[SheetRow], cfg: SheetConfig) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "rows": [r.to_dict() for r in rows],
        "sheetName": cfg.sheet_name or DEFAULT_SHEET_NAME,
    }
    if cfg.sheet_id:
        payload["sheetId"] = cfg.sheet_id
    return payload


def post_to_sheet_batch(rows: Iterable[SheetRow], cfg: SheetConfig,
                        session: Optional[requests.Session] = None) -> Dict[str, Any]:
    if not cfg.endpoint_url:
        raise SheetExportError("Missing endpoint URL for the spreadsheet exporter")

    payload = build_payload(rows, cfg)
    headers = {"Content-Type": "application/json"}
    if cfg.auth_token:
        headers["Authorization"] = f"Bearer {cfg.auth_token}"

    http = session or requests
    try:
        res = http.post(cfg.endpoint_url, json=payload, headers=headers, timeout=cfg.timeout)
    except requests.Timeout as e:
        logger.error("Sheets export timed out after %ss", cfg.timeout)
        raise SheetExportError(f"Sheets export timed out after {cfg.timeout}s") from e
    except requests.RequestException as e:
        logger.error("Sheets export request failed: %s", e)
        raise SheetExportError(f"Sheets export request failed: {e}") from e

    text = res.text
    if not res.ok:
        logger.error("Sheets export failed: %s %s", res.status_code, res.reason)
        raise SheetExportError(
            f"Sheets export failed: {res.status_code} {res.reason}: {text}",
            status=res.status_code,
            body=text,
        )

    logger.info("Exported %s row(s) to sheet %r", len(payload["rows"]), payload["sheetName"])
    try:
        return res.json()
    except ValueError:
        return {"ok": True, "text": text}
