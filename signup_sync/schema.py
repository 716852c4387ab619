"""Field kinds and the declared schema of the signup sheet."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping


class FieldKind(str, Enum):
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    TITLE = "title"
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    NUMBER = "number"
    TAG_SET = "tag_set"
    TAG = "tag"
    PHONE = "phone"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    kind: FieldKind
    label: str | None = None


@dataclass(frozen=True)
class Schema:
    """Immutable mapping of column header to field kind.

    ``handle_field`` names the column holding the natural key. Columns that are
    not declared here are ignored by the mapper.
    """

    fields: Mapping[str, FieldSpec]
    handle_field: str
    _order: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.handle_field not in self.fields:
            raise ValueError(f"Handle field {self.handle_field!r} is not declared in the schema")
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "_order", tuple(self.fields))

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def kind_of(self, name: str) -> FieldKind | None:
        spec = self.fields.get(name)
        return spec.kind if spec else None

    def label_of(self, name: str) -> str:
        spec = self.fields.get(name)
        if spec and spec.label:
            return spec.label
        return name

    def file_fields(self) -> tuple[str, ...]:
        return tuple(name for name in self._order if self.fields[name].kind is FieldKind.FILE)

    @classmethod
    def from_kinds(cls, kinds: Mapping[str, FieldKind | str], handle_field: str) -> "Schema":
        return cls(
            fields={name: FieldSpec(FieldKind(kind)) for name, kind in kinds.items()},
            handle_field=handle_field,
        )


HANDLE_FIELD = "Ваш ник в Телеграм"

SIGNUP_SCHEMA = Schema(
    fields={
        "picked?": FieldSpec(FieldKind.BOOLEAN),
        "time": FieldSpec(FieldKind.DATETIME),
        "first_name": FieldSpec(FieldKind.SHORT_TEXT),
        "last_name": FieldSpec(FieldKind.SHORT_TEXT),
        "age": FieldSpec(FieldKind.NUMBER),
        "height": FieldSpec(FieldKind.NUMBER),
        "weight": FieldSpec(FieldKind.NUMBER),
        "Размер одежды": FieldSpec(FieldKind.SHORT_TEXT),
        "Размер обуви": FieldSpec(FieldKind.NUMBER),
        "headshotUrl": FieldSpec(FieldKind.FILE, label="Headshot"),
        "bodyPhotoUrl": FieldSpec(FieldKind.FILE, label="Body Photo"),
        "Удобное время для съемки 6 апреля (можно выбрать несколько)": FieldSpec(FieldKind.TAG_SET),
        "Номер телефона для связи": FieldSpec(FieldKind.PHONE),
        HANDLE_FIELD: FieldSpec(FieldKind.SHORT_TEXT),
        "Информация о правах субъекта персональных данных": FieldSpec(FieldKind.LONG_TEXT),
        "Согласие субъекта персональных данных": FieldSpec(FieldKind.LONG_TEXT),
        "Уточните, пожалуйста, ваш статус": FieldSpec(FieldKind.TAG),
        "Укажите ваш Instagram": FieldSpec(FieldKind.SHORT_TEXT),
    },
    handle_field=HANDLE_FIELD,
)
