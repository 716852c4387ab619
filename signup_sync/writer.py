"""Create store records from mapped rows and attach their published images."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .dedupe import DuplicateCheckError, DuplicateChecker
from .images import logical_id
from .mapper import MappedRecord
from .notion import ExternalFile, RecordStore, RecordStoreError, image_block, property_payload
from .outcomes import Outcome, SyncWarning, WarningKind
from .schema import FieldKind, Schema

LOGGER = logging.getLogger(__name__)


class RecordWriter:
    def __init__(
        self,
        store: RecordStore,
        checker: DuplicateChecker,
        schema: Schema,
        *,
        strict_content: bool = False,
    ) -> None:
        self._store = store
        self._checker = checker
        self._schema = schema
        self._strict_content = strict_content

    def resolved_images(self, record: MappedRecord, image_urls: Mapping[str, str]) -> list[tuple[str, str]]:
        """Return ``(field, url)`` pairs for the record's published images, in schema order."""

        resolved: list[tuple[str, str]] = []
        for name in self._schema.file_fields():
            if name not in record.image_links:
                continue
            url = image_urls.get(logical_id(record.key, name))
            if url:
                resolved.append((name, url))
        return resolved

    def build_properties(self, record: MappedRecord, image_urls: Mapping[str, str]) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for name, value in record.values.items():
            kind = self._schema.kind_of(name)
            if kind is None or kind is FieldKind.FILE:
                continue
            properties[name] = property_payload(kind, value)
        for name, url in self.resolved_images(record, image_urls):
            properties[name] = property_payload(
                FieldKind.FILE, ExternalFile(url=url, name=self._schema.label_of(name))
            )
        return properties

    async def write(self, record: MappedRecord, image_urls: Mapping[str, str]) -> Outcome:
        warnings: list[SyncWarning] = []
        try:
            exists, warning = await self._checker.check(record.key)
        except DuplicateCheckError as exc:
            LOGGER.error("Not writing %s: %s", record.key, exc)
            return Outcome.failed(record.key, str(exc))
        if warning is not None:
            warnings.append(warning)

        if exists:
            LOGGER.info("Skipping existing record %s", record.key)
            outcome = Outcome.skipped(record.key, "already present in store")
            outcome.warnings.extend(warnings)
            return outcome

        try:
            record_id = await self._store.create_record(self.build_properties(record, image_urls))
        except RecordStoreError as exc:
            LOGGER.error("Failed to create record %s: %s", record.key, exc)
            outcome = Outcome.failed(record.key, str(exc))
            outcome.warnings.extend(warnings)
            return outcome

        outcome = Outcome.created(record.key, record_id)
        outcome.warnings.extend(warnings)

        images = self.resolved_images(record, image_urls)
        if images:
            try:
                await self._store.append_content(record_id, [image_block(url) for _name, url in images])
            except RecordStoreError as exc:
                LOGGER.warning("Record %s created but its images were not embedded: %s", record.key, exc)
                outcome.warnings.append(SyncWarning(WarningKind.CONTENT_APPEND, str(exc), key=record.key))
                if self._strict_content:
                    failed = Outcome.failed(record.key, f"image blocks not appended: {exc}")
                    failed.record_id = record_id
                    failed.warnings.extend(outcome.warnings)
                    return failed

        LOGGER.info("Added new record %s", record.key)
        return outcome
