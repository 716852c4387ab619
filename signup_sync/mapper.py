"""Convert raw sheet rows into typed records according to a schema."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping

from .outcomes import SyncWarning, WarningKind
from .schema import FieldKind, Schema

Row = Mapping[str, "str | None"]


class MappingError(ValueError):
    """Raised by a converter when a cell cannot be converted to its field kind."""


@dataclass(slots=True)
class MappedRecord:
    key: str
    values: dict[str, Any] = field(default_factory=dict)
    image_links: dict[str, str] = field(default_factory=dict)


def parse_boolean(value: str) -> bool:
    return value.strip().lower() == "true"


_DAY_FIRST_SEPARATORS = re.compile(r"[./]")


def parse_datetime(value: str) -> str:
    """Normalise a sheet timestamp to ``YYYY-MM-DDTHH:MM``.

    Dates written with ``.`` or ``/`` are day-month-year, dates written with
    ``-`` are year-month-day. Day, month and hour are left-padded, minutes
    are right-padded, so ``9:5`` becomes ``09:50``. A missing time means
    midnight.
    """

    parts = value.split()
    if not parts or len(parts) > 2:
        raise MappingError(f"unrecognised date-time {value!r}")
    date_part = parts[0]
    time_part = parts[1] if len(parts) == 2 else "00:00"

    if _DAY_FIRST_SEPARATORS.search(date_part):
        pieces = _DAY_FIRST_SEPARATORS.split(date_part)
        if len(pieces) != 3:
            raise MappingError(f"unrecognised date {date_part!r}")
        day, month, year = pieces
    elif "-" in date_part:
        pieces = date_part.split("-")
        if len(pieces) != 3:
            raise MappingError(f"unrecognised date {date_part!r}")
        year, month, day = pieces
    else:
        raise MappingError(f"unrecognised date {date_part!r}")

    time_pieces = time_part.split(":")
    if len(time_pieces) not in (2, 3):
        raise MappingError(f"unrecognised time {time_part!r}")
    hour, minute = time_pieces[0], time_pieces[1]

    numbers = (year, month, day, hour, minute)
    if not all(piece.isdigit() for piece in numbers) or len(year) != 4:
        raise MappingError(f"unrecognised date-time {value!r}")
    if len(month) > 2 or len(day) > 2 or len(hour) > 2 or len(minute) > 2:
        raise MappingError(f"unrecognised date-time {value!r}")

    month = month.zfill(2)
    day = day.zfill(2)
    hour = hour.zfill(2)
    minute = minute.ljust(2, "0")
    try:
        datetime(int(year), int(month), int(day), int(hour), int(minute))
    except ValueError as exc:
        raise MappingError(f"invalid date-time {value!r}: {exc}") from exc
    return f"{year}-{month}-{day}T{hour}:{minute}"


def parse_number(value: str) -> float:
    cleaned = value.strip()
    try:
        number = float(cleaned)
    except ValueError as exc:
        raise MappingError(f"not a number: {value!r}") from exc
    if number != number or number in (float("inf"), float("-inf")):
        raise MappingError(f"not a finite number: {value!r}")
    return number


def parse_tag_set(value: str) -> tuple[str, ...]:
    tags: list[str] = []
    for part in value.split(","):
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    if not tags:
        raise MappingError(f"no tags in {value!r}")
    return tuple(tags)


def parse_phone(value: str) -> str:
    cleaned = re.sub(r"[^\d+]", "", value)
    if not any(char.isdigit() for char in cleaned):
        raise MappingError(f"no digits in phone number {value!r}")
    return cleaned


def _verbatim(value: str) -> str:
    return value


def _link(value: str) -> str:
    return value.strip()


CONVERTERS: dict[FieldKind, Callable[[str], Any]] = {
    FieldKind.BOOLEAN: parse_boolean,
    FieldKind.DATETIME: parse_datetime,
    FieldKind.TITLE: _verbatim,
    FieldKind.SHORT_TEXT: _verbatim,
    FieldKind.LONG_TEXT: _verbatim,
    FieldKind.NUMBER: parse_number,
    FieldKind.TAG_SET: parse_tag_set,
    FieldKind.TAG: _verbatim,
    FieldKind.PHONE: parse_phone,
    FieldKind.FILE: _link,
}


def map_row(row: Row, schema: Schema) -> tuple[MappedRecord | None, list[SyncWarning]]:
    """Map one sheet row; returns ``(None, warnings)`` when the handle is blank."""

    warnings: list[SyncWarning] = []
    key = (row.get(schema.handle_field) or "").strip()
    if not key:
        warnings.append(
            SyncWarning(
                WarningKind.MISSING_KEY,
                f"row has no value in {schema.handle_field!r}",
                field=schema.handle_field,
            )
        )
        return None, warnings

    record = MappedRecord(key=key)
    for name, raw in row.items():
        kind = schema.kind_of(name)
        if kind is None or raw is None or not raw.strip():
            continue

        if name == schema.handle_field:
            record.values[name] = key
            continue

        try:
            converted = CONVERTERS[kind](raw)
        except MappingError as exc:
            warnings.append(SyncWarning(WarningKind.MAPPING, str(exc), key=key, field=name))
            continue

        if kind is FieldKind.FILE:
            record.image_links[name] = converted
        else:
            record.values[name] = converted

    return record, warnings
