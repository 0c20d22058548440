"""
Pytest fixtures for fairstall tests.

Provides an app wired to in-memory storage, a test client, the loaded stall
state, and small builders for sales and events.
"""

from datetime import datetime, timezone

import pytest

from fairstall import create_app, db
from fairstall.records import Event, Sale
from fairstall.state import get_state
from fairstall.storage import MemoryStorage


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'STORAGE_BACKEND': 'memory',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'DISPLAY_TIMEZONE': 'UTC',
        'SHEETS_ENDPOINT_URL': '',
        'SHEETS_SHEET_ID': '',
        'SHEETS_AUTH_TOKEN': '',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def state(app):
    """Loaded stall state of the test app."""
    return get_state()


@pytest.fixture(scope='function')
def storage():
    """Open in-memory storage."""
    s = MemoryStorage()
    s.open()
    yield s
    s.close()


def at(hhmm, day="2024-01-01"):
    return datetime.fromisoformat(f"{day}T{hhmm}:00+00:00").astimezone(timezone.utc)


def make_sale(created_at, *items, sale_id=None, **fields):
    """items: (name, unit_price, qty[, fabric_id]) tuples."""
    lines = []
    for i, item in enumerate(items):
        name, price, qty = item[:3]
        fabric_id = item[3] if len(item) > 3 else None
        lines.append({"id": f"line-{i}", "name": name, "unitPrice": price, "qty": qty, "fabricId": fabric_id})
    data = {
        "id": sale_id or f"so-{created_at:%H%M%S}",
        "createdAt": created_at.isoformat(),
        "items": lines,
        **fields,
    }
    return Sale.from_dict(data)


def make_event(started="10:00", ended="11:00", **fields):
    data = {
        "id": fields.pop("id", "evt-market"),
        "name": fields.pop("name", "Spring Market"),
        "startedAt": at(started).isoformat(),
        "endedAt": at(ended).isoformat() if ended else None,
        **fields,
    }
    return Event.from_dict(data)
