"""
Key-value storage backends.

Roles and signing keys are persisted as JSON objects under slash-separated
keys (``role/<name>``, ``key/<kid>``, ``privatekey/<kid>``, ...).  Two
backends share the same small interface:

- :class:`SQLStorage` -- rows of :class:`~issuer_app.models.StorageEntry`
  through the shared Flask-SQLAlchemy session.  Each ``put``/``delete`` is
  its own transaction, so a write is either fully visible or not at all.
- :class:`InMemoryStorage` -- a lock-guarded ``dict``; used by unit tests
  and handy for embedding the core without a database.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .errors import InternalError
from .models import StorageEntry

logger = logging.getLogger(__name__)


def _children(keys: list[str], prefix: str) -> list[str]:
    """Return the direct children of *prefix* among *keys*, sorted."""
    names = set()
    for key in keys:
        if not key.startswith(prefix):
            continue
        remainder = key[len(prefix):]
        if remainder and "/" not in remainder:
            names.add(remainder)
    return sorted(names)


class Storage(ABC):
    """Interface shared by the storage backends."""

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the value stored under *key*, or ``None``."""

    @abstractmethod
    def put(self, key: str, value: dict[str, Any]) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*; missing keys are ignored."""

    @abstractmethod
    def list(self, prefix: str) -> list[str]:
        """Return the direct children of *prefix*, sorted."""


class InMemoryStorage(Storage):
    """Thread-safe in-process storage."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._entries.get(key)
            return copy.deepcopy(value) if value is not None else None

    def put(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._entries[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            keys = list(self._entries)
        return _children(keys, prefix)


class SQLStorage(Storage):
    """
    Storage backed by the ``storage_entries`` table.

    Must be used inside a Flask application context.  Database failures are
    rolled back and re-raised as :class:`~issuer_app.errors.InternalError`.
    """

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            entry = db.session.get(StorageEntry, key)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Storage read failed for %s: %s", key, exc)
            raise InternalError("storage read failed") from exc
        if entry is None:
            return None
        return json.loads(entry.value)

    def put(self, key: str, value: dict[str, Any]) -> None:
        try:
            entry = db.session.get(StorageEntry, key)
            if entry is None:
                entry = StorageEntry(key=key, value=json.dumps(value))
                db.session.add(entry)
            else:
                entry.value = json.dumps(value)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Storage write failed for %s: %s", key, exc)
            raise InternalError("storage write failed") from exc

    def delete(self, key: str) -> None:
        try:
            entry = db.session.get(StorageEntry, key)
            if entry is not None:
                db.session.delete(entry)
                db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Storage delete failed for %s: %s", key, exc)
            raise InternalError("storage delete failed") from exc

    def list(self, prefix: str) -> list[str]:
        try:
            keys = db.session.scalars(
                select(StorageEntry.key).where(
                    StorageEntry.key.startswith(prefix, autoescape=True)
                )
            ).all()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Storage list failed for %s: %s", prefix, exc)
            raise InternalError("storage list failed") from exc
        return _children(list(keys), prefix)
