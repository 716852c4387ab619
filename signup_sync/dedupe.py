"""Lookup of existing records by natural key."""

from __future__ import annotations

import logging

from .notion import RecordStore, RecordStoreError, equals_filter
from .outcomes import SyncWarning, WarningKind
from .schema import FieldKind, Schema

LOGGER = logging.getLogger(__name__)


class DuplicateCheckError(RuntimeError):
    """Raised in strict mode when the store could not be queried for a key."""


class DuplicateChecker:
    """Asks the store whether a record with the given handle already exists.

    A failed lookup is treated as "not a duplicate" so the write can proceed,
    unless ``strict`` is set, in which case it raises ``DuplicateCheckError``.
    """

    def __init__(self, store: RecordStore, schema: Schema, *, strict: bool = False) -> None:
        self._store = store
        self._property = schema.handle_field
        self._kind = schema.kind_of(schema.handle_field) or FieldKind.SHORT_TEXT
        self._strict = strict

    async def check(self, key: str) -> tuple[bool, SyncWarning | None]:
        try:
            results = await self._store.query(equals_filter(self._property, self._kind, key), page_size=1)
        except RecordStoreError as exc:
            if self._strict:
                raise DuplicateCheckError(f"Duplicate check failed: {exc}") from exc
            LOGGER.warning("Duplicate check for %s failed, treating it as new: %s", key, exc)
            return False, SyncWarning(WarningKind.DUPLICATE_CHECK, str(exc), key=key)
        return bool(results), None

    async def exists(self, key: str) -> bool:
        found, _warning = await self.check(key)
        return found
