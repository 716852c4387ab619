"""Record store client and payload builders for database properties."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, Sequence

import httpx

from .config import NotionConfig
from .http_client import ApiClient, HttpRequestError
from .schema import FieldKind

LOGGER = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
_TEXT_CHUNK = 2000


class RecordStoreError(RuntimeError):
    """Raised when the record store rejects or fails a request."""


@dataclass(frozen=True, slots=True)
class ExternalFile:
    url: str
    name: str


def _rich_text(value: str) -> list[dict[str, Any]]:
    chunks = [value[start : start + _TEXT_CHUNK] for start in range(0, len(value), _TEXT_CHUNK)]
    return [{"type": "text", "text": {"content": chunk}} for chunk in chunks or [""]]


def _files(value: ExternalFile | Sequence[ExternalFile]) -> dict[str, Any]:
    files = [value] if isinstance(value, ExternalFile) else list(value)
    return {
        "files": [
            {"type": "external", "name": item.name, "external": {"url": item.url}}
            for item in files
        ]
    }


_PROPERTY_BUILDERS: dict[FieldKind, Callable[[Any], dict[str, Any]]] = {
    FieldKind.BOOLEAN: lambda value: {"checkbox": bool(value)},
    FieldKind.DATETIME: lambda value: {"date": {"start": value}},
    FieldKind.TITLE: lambda value: {"title": _rich_text(value)},
    FieldKind.SHORT_TEXT: lambda value: {"rich_text": _rich_text(value)},
    FieldKind.LONG_TEXT: lambda value: {"rich_text": _rich_text(value)},
    FieldKind.NUMBER: lambda value: {"number": value},
    FieldKind.TAG_SET: lambda value: {"multi_select": [{"name": tag} for tag in value]},
    FieldKind.TAG: lambda value: {"select": {"name": value}},
    FieldKind.PHONE: lambda value: {"phone_number": value},
    FieldKind.FILE: _files,
}

_FILTER_KEYS = {
    FieldKind.TITLE: "title",
    FieldKind.PHONE: "phone_number",
}


def property_payload(kind: FieldKind, value: Any) -> dict[str, Any]:
    return _PROPERTY_BUILDERS[kind](value)


def image_block(url: str) -> dict[str, Any]:
    return {
        "object": "block",
        "type": "image",
        "image": {"type": "external", "external": {"url": url}},
    }


def equals_filter(property_name: str, kind: FieldKind, value: str) -> dict[str, Any]:
    filter_key = _FILTER_KEYS.get(kind, "rich_text")
    return {"property": property_name, filter_key: {"equals": value}}


class RecordStore(Protocol):
    async def query(self, filter_payload: Mapping[str, Any], *, page_size: int = 1) -> list[dict[str, Any]]:
        ...

    async def create_record(self, properties: Mapping[str, Any]) -> str:
        ...

    async def append_content(self, record_id: str, blocks: Sequence[Mapping[str, Any]]) -> None:
        ...


class NotionStore(ApiClient):
    """Query, create and extend pages in one database."""

    def __init__(
        self,
        config: NotionConfig,
        *,
        user_agent: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        base_url: str = NOTION_API_URL,
    ) -> None:
        if not config.database_id:
            raise ValueError("A database id is required")
        self._database_id = config.database_id
        headers = {
            "Notion-Version": config.api_version,
            "Content-Type": "application/json",
            "User-Agent": user_agent,
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        super().__init__(base_url, headers=headers, timeout=timeout, client=client, transport=transport)

    async def _call(self, method: str, path: str, payload: Any) -> dict[str, Any]:
        try:
            return await self.request_json(method, path, json=payload)
        except HttpRequestError as exc:
            raise RecordStoreError(str(exc)) from exc

    async def query(self, filter_payload: Mapping[str, Any], *, page_size: int = 1) -> list[dict[str, Any]]:
        payload = await self._call(
            "POST",
            f"/databases/{self._database_id}/query",
            {"filter": dict(filter_payload), "page_size": page_size},
        )
        results = payload.get("results")
        if not isinstance(results, list):
            raise RecordStoreError("Query response has no results list")
        return results

    async def create_record(self, properties: Mapping[str, Any]) -> str:
        payload = await self._call(
            "POST",
            "/pages",
            {"parent": {"database_id": self._database_id}, "properties": dict(properties)},
        )
        page_id = payload.get("id")
        if not isinstance(page_id, str) or not page_id:
            raise RecordStoreError("Create response has no page id")
        return page_id

    async def append_content(self, record_id: str, blocks: Sequence[Mapping[str, Any]]) -> None:
        await self._call("PATCH", f"/blocks/{record_id}/children", {"children": list(blocks)})
