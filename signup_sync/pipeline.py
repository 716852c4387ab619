"""Batch orchestration: map rows, resolve and publish images, write records.

Each batch moves through ``RESOLVING_IMAGES -> PUBLISHING_ASSETS ->
WRITING_RECORDS -> TALLIED``. A batch never starts writing before its own
images are published, and the next batch only starts after the previous one
is tallied and the inter-batch delay has elapsed. Image downloads and record
writes share one semaphore, so the cap bounds all in-flight operations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Mapping, Protocol, Sequence

from .github import AssetPublishError
from .images import ImageResolutionError, ImageTask, ResolvedImage
from .mapper import MappedRecord, Row, map_row
from .outcomes import Outcome, SyncReport, SyncWarning, WarningKind
from .schema import Schema

LOGGER = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RESOLVING_IMAGES = "resolving_images"
    PUBLISHING_ASSETS = "publishing_assets"
    WRITING_RECORDS = "writing_records"
    TALLIED = "tallied"
    DONE = "done"


class RowSource(Protocol):
    async def fetch_rows(self) -> list[Row]:
        ...


class ImageSource(Protocol):
    async def resolve_task(self, task: ImageTask) -> ResolvedImage:
        ...


class Publisher(Protocol):
    async def publish(self, images: Sequence[ResolvedImage]) -> dict[str, str]:
        ...


class Writer(Protocol):
    async def write(self, record: MappedRecord, image_urls: Mapping[str, str]) -> Outcome:
        ...


@dataclass(slots=True)
class SyncServices:
    """Collaborators built once per process and handed to the orchestrator."""

    resolver: ImageSource
    publisher: Publisher
    writer: Writer
    limiter: asyncio.Semaphore


TransitionHook = Callable[[SyncState, int], None]


class BatchOrchestrator:
    def __init__(
        self,
        services: SyncServices,
        schema: Schema,
        *,
        batch_size: int = 20,
        batch_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        on_transition: TransitionHook | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._services = services
        self._schema = schema
        self._batch_size = batch_size
        self._batch_delay = max(0.0, batch_delay)
        self._sleep = sleep
        self._on_transition = on_transition
        self._state = SyncState.IDLE
        self._batch_index = 0

    @property
    def state(self) -> SyncState:
        return self._state

    def _transition(self, state: SyncState) -> None:
        LOGGER.debug("Batch %d: %s -> %s", self._batch_index, self._state.value, state.value)
        self._state = state
        if self._on_transition is not None:
            self._on_transition(state, self._batch_index)

    async def run(self, source: RowSource) -> SyncReport:
        """Fetch all rows from ``source`` and synchronise them. Read errors propagate."""

        self._transition(SyncState.FETCHING)
        rows = await source.fetch_rows()
        return await self.run_rows(rows)

    async def run_rows(self, rows: Sequence[Row]) -> SyncReport:
        report = SyncReport(rows_read=len(rows))
        seen_keys: set[str] = set()
        for start in range(0, len(rows), self._batch_size):
            if start:
                LOGGER.debug("Waiting %.2fs before the next batch", self._batch_delay)
                await self._sleep(self._batch_delay)
            self._batch_index += 1
            batch = rows[start : start + self._batch_size]
            LOGGER.info("Batch %d: rows %d-%d", self._batch_index, start + 1, start + len(batch))
            await self._run_batch(batch, report, seen_keys)
        self._transition(SyncState.DONE)
        return report

    async def _run_batch(self, rows: Sequence[Row], report: SyncReport, seen_keys: set[str]) -> None:
        records = self._map_rows(rows, report, seen_keys)
        tasks = [
            ImageTask(key=record.key, field=name, source_url=link)
            for record in records
            for name, link in record.image_links.items()
        ]

        self._transition(SyncState.RESOLVING_IMAGES)
        resolved = await self._resolve_images(tasks, report)

        self._transition(SyncState.PUBLISHING_ASSETS)
        image_urls = await self._publish(resolved, report)

        self._transition(SyncState.WRITING_RECORDS)
        outcomes = await asyncio.gather(*(self._write_one(record, image_urls) for record in records))
        for outcome in outcomes:
            report.add(outcome)

        report.batches += 1
        self._transition(SyncState.TALLIED)
        LOGGER.info(
            "Batch %d done: %d created, %d skipped, %d failed so far",
            self._batch_index,
            report.created,
            report.skipped,
            report.failed,
        )

    def _map_rows(self, rows: Sequence[Row], report: SyncReport, seen_keys: set[str]) -> list[MappedRecord]:
        records: list[MappedRecord] = []
        for row in rows:
            record, warnings = map_row(row, self._schema)
            for warning in warnings:
                LOGGER.warning("%s", warning)
            report.warnings.extend(warnings)
            if record is None:
                report.rows_dropped += 1
                continue
            if record.key in seen_keys:
                outcome = Outcome.skipped(record.key, "duplicate row in source")
                outcome.warnings.append(
                    SyncWarning(WarningKind.DUPLICATE_ROW, "handle already seen in this run", key=record.key)
                )
                LOGGER.warning("Skipping repeated row for %s", record.key)
                report.add(outcome)
                continue
            seen_keys.add(record.key)
            records.append(record)
        return records

    async def _resolve_images(self, tasks: Sequence[ImageTask], report: SyncReport) -> list[ResolvedImage]:
        results = await asyncio.gather(*(self._resolve_one(task) for task in tasks))
        resolved: list[ResolvedImage] = []
        for result in results:
            if isinstance(result, SyncWarning):
                report.warnings.append(result)
            else:
                resolved.append(result)
        return resolved

    async def _resolve_one(self, task: ImageTask) -> ResolvedImage | SyncWarning:
        async with self._services.limiter:
            try:
                return await self._services.resolver.resolve_task(task)
            except ImageResolutionError as exc:
                LOGGER.warning("Image %s not resolved: %s", task.logical_id, exc)
                return SyncWarning(WarningKind.RESOLUTION, str(exc), key=task.key, field=task.field)
            except Exception as exc:
                LOGGER.exception("Unhandled error resolving %s", task.logical_id)
                return SyncWarning(WarningKind.RESOLUTION, f"unexpected error: {exc}", key=task.key, field=task.field)

    async def _publish(self, images: Sequence[ResolvedImage], report: SyncReport) -> dict[str, str]:
        if not images:
            return {}
        try:
            return await self._services.publisher.publish(images)
        except AssetPublishError as exc:
            LOGGER.warning("Batch %d images not published: %s", self._batch_index, exc)
            report.warnings.append(SyncWarning(WarningKind.PUBLISH, str(exc)))
        except Exception as exc:
            LOGGER.exception("Unhandled error publishing batch %d", self._batch_index)
            report.warnings.append(SyncWarning(WarningKind.PUBLISH, f"unexpected error: {exc}"))
        return {}

    async def _write_one(self, record: MappedRecord, image_urls: Mapping[str, str]) -> Outcome:
        async with self._services.limiter:
            try:
                return await self._services.writer.write(record, image_urls)
            except Exception as exc:
                LOGGER.exception("Unhandled error writing %s", record.key)
                return Outcome.failed(record.key, f"unexpected error: {exc}")
