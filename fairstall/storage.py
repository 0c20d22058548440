"""
Key-value storage behind the catalog, ledger and event registry.

Each logical store is one JSON document under a fixed key. Backends:

- MemoryStorage: a dict, for tests and throwaway sessions
- DatabaseStorage: the ``stored_blobs`` table through Flask-SQLAlchemy

Both follow the same contract: ``open()`` before use, ``close()`` when done,
and every failure to read or write is raised as StorageError.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from fairstall import db
from fairstall.models import StoredBlob

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    pass


class KeyValueStorage:
    name = "abstract"

    def __init__(self):
        self.is_open = False

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def _require_open(self) -> None:
        if not self.is_open:
            raise StorageError(f"{self.name} storage is not open")

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def read_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error("Stored value under %r is not valid JSON", key)
            raise StorageError(f"stored value under {key!r} is not valid JSON") from e

    def write_json(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Could not serialize value for %r: %s", key, e)
            raise StorageError(f"value for {key!r} is not serializable: {e}") from e
        self.set(key, raw)


class MemoryStorage(KeyValueStorage):
    name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__()
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        self._require_open()
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._require_open()
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._require_open()
        self._data.pop(key, None)

    def keys(self):
        return sorted(self._data)


class DatabaseStorage(KeyValueStorage):
    """Needs an application context; the schema comes from the Alembic revision."""

    name = "database"

    def open(self) -> None:
        try:
            db.session.execute(select(StoredBlob.key).limit(1))
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Storage table is not available")
            raise StorageError("storage table is not available, run `flask db upgrade`") from e
        super().open()

    def close(self) -> None:
        db.session.remove()
        super().close()

    def get(self, key: str) -> Optional[str]:
        self._require_open()
        try:
            row = db.session.get(StoredBlob, key)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Failed to read %r", key)
            raise StorageError(f"failed to read {key!r}") from e
        return row.value if row else None

    def set(self, key: str, value: str) -> None:
        self._require_open()
        try:
            row = db.session.get(StoredBlob, key)
            if row is None:
                db.session.add(StoredBlob(key=key, value=value))
            else:
                row.value = value
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Failed to write %r", key)
            raise StorageError(f"failed to write {key!r}") from e

    def delete(self, key: str) -> None:
        self._require_open()
        try:
            row = db.session.get(StoredBlob, key)
            if row is not None:
                db.session.delete(row)
                db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Failed to delete %r", key)
            raise StorageError(f"failed to delete {key!r}") from e


def build_storage(backend: str) -> KeyValueStorage:
    backend = (backend or "database").strip().lower()
    if backend == "memory":
        return MemoryStorage()
    if backend == "database":
        return DatabaseStorage()
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend!r}")
