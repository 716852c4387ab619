"""Read signup rows from a spreadsheet range."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from .config import SheetsConfig
from .http_client import ApiClient, HttpRequestError
from .mapper import Row

LOGGER = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4"
SHEETS_SCOPES = ("https://www.googleapis.com/auth/spreadsheets.readonly",)


class SheetReadError(RuntimeError):
    """Raised when the sheet cannot be read or holds no data rows."""


@dataclass(slots=True)
class SheetStats:
    total: int = 0
    emitted: int = 0
    skipped_blank: int = 0


def load_service_account_token(credentials_file: Path) -> str:
    """Exchange a service-account key file for a short-lived access token."""

    try:
        credentials = service_account.Credentials.from_service_account_file(
            str(credentials_file), scopes=list(SHEETS_SCOPES)
        )
        credentials.refresh(Request())
    except (OSError, ValueError, GoogleAuthError) as exc:
        raise SheetReadError(f"Could not authenticate with {credentials_file}: {exc}") from exc
    if not credentials.token:
        raise SheetReadError(f"No access token issued for {credentials_file}")
    return credentials.token


def rows_from_values(values: Sequence[Sequence[Any]], stats: SheetStats | None = None) -> list[Row]:
    """Pair each data row with the header row; short rows are padded with ``None``."""

    stats = stats if stats is not None else SheetStats()
    if not values:
        raise SheetReadError("Sheet range is empty")

    headers = [str(cell).strip() for cell in values[0]]
    rows: list[Row] = []
    for cells in values[1:]:
        stats.total += 1
        texts = [None if cell is None else str(cell) for cell in cells]
        if not any(text and text.strip() for text in texts):
            stats.skipped_blank += 1
            continue
        padded = list(texts[: len(headers)]) + [None] * (len(headers) - len(texts))
        rows.append(dict(zip(headers, padded)))
        stats.emitted += 1

    if not rows:
        raise SheetReadError("Sheet range has a header row but no data rows")
    return rows


class SheetsSource(ApiClient):
    """Fetches one range of a spreadsheet as header-keyed rows."""

    def __init__(
        self,
        config: SheetsConfig,
        *,
        user_agent: str,
        timeout: float = 30.0,
        token_provider: Callable[[], str] | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        base_url: str = SHEETS_API_URL,
    ) -> None:
        if not config.spreadsheet_id:
            raise ValueError("A spreadsheet id is required")
        self._config = config
        if token_provider is None:
            if config.credentials_file is None:
                raise ValueError("A credentials file or token provider is required")
            credentials_file = config.credentials_file
            token_provider = lambda: load_service_account_token(credentials_file)
        self._token_provider = token_provider
        self.stats = SheetStats()
        super().__init__(
            base_url,
            headers={"User-Agent": user_agent},
            timeout=timeout,
            client=client,
            transport=transport,
        )

    async def fetch_rows(self) -> list[Row]:
        token = await asyncio.to_thread(self._token_provider)
        sheet_range = quote(self._config.sheet_range, safe="!:")
        url = f"/spreadsheets/{self._config.spreadsheet_id}/values/{sheet_range}"
        try:
            payload = await self.request_json("GET", url, headers={"Authorization": f"Bearer {token}"})
        except HttpRequestError as exc:
            raise SheetReadError(f"Reading {self._config.sheet_range} failed: {exc}") from exc

        rows = rows_from_values(payload.get("values") or [], self.stats)
        LOGGER.info(
            "Read %d rows from %s (%d blank rows skipped)",
            self.stats.emitted,
            self._config.sheet_range,
            self.stats.skipped_blank,
        )
        return rows
