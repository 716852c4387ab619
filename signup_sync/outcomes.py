"""Outcome records, warnings and the run tally."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class OutcomeStatus(str, Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


class WarningKind(str, Enum):
    MAPPING = "mapping"
    MISSING_KEY = "missing_key"
    DUPLICATE_ROW = "duplicate_row"
    RESOLUTION = "resolution"
    PUBLISH = "publish"
    DUPLICATE_CHECK = "duplicate_check"
    CONTENT_APPEND = "content_append"


@dataclass(frozen=True, slots=True)
class SyncWarning:
    kind: WarningKind
    message: str
    key: str | None = None
    field: str | None = None

    def __str__(self) -> str:
        scope = ":".join(part for part in (self.key, self.field) if part)
        if scope:
            return f"[{self.kind.value}] {scope}: {self.message}"
        return f"[{self.kind.value}] {self.message}"


@dataclass(slots=True)
class Outcome:
    key: str
    status: OutcomeStatus
    detail: str | None = None
    warnings: list[SyncWarning] = field(default_factory=list)
    record_id: str | None = None

    @classmethod
    def created(cls, key: str, record_id: str | None = None) -> "Outcome":
        return cls(key=key, status=OutcomeStatus.CREATED, record_id=record_id)

    @classmethod
    def skipped(cls, key: str, detail: str | None = None) -> "Outcome":
        return cls(key=key, status=OutcomeStatus.SKIPPED, detail=detail)

    @classmethod
    def failed(cls, key: str, detail: str) -> "Outcome":
        return cls(key=key, status=OutcomeStatus.FAILED, detail=detail)


@dataclass(slots=True)
class SyncReport:
    outcomes: list[Outcome] = field(default_factory=list)
    warnings: list[SyncWarning] = field(default_factory=list)
    rows_read: int = 0
    rows_dropped: int = 0
    batches: int = 0

    def add(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)
        self.warnings.extend(outcome.warnings)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def created(self) -> int:
        return self.count(OutcomeStatus.CREATED)

    @property
    def skipped(self) -> int:
        return self.count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(OutcomeStatus.FAILED)

    def failures(self) -> list[Outcome]:
        return [outcome for outcome in self.outcomes if outcome.status is OutcomeStatus.FAILED]


def format_summary(report: SyncReport) -> list[str]:
    """Render the end-of-run summary as log-ready lines."""

    lines = [
        f"Processed {report.rows_read} rows in {report.batches} batches: "
        f"{report.created} created, {report.skipped} skipped, {report.failed} failed, "
        f"{report.rows_dropped} dropped",
    ]
    for outcome in report.failures():
        lines.append(f"  failed {outcome.key}: {outcome.detail or 'unknown error'}")
    return lines
