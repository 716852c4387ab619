"""Image link resolution and download."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass

import httpx

from .config import SyncConfig


class ImageResolutionError(RuntimeError):
    """Raised when an image link cannot be turned into image bytes."""


LOGGER = logging.getLogger(__name__)

_FILE_ID_PATTERN = re.compile(r"[-\w]{25,}")
_DIRECT_FETCH_URL = "https://drive.google.com/uc?export=view&id={file_id}"
_SLUG_PATTERN = re.compile(r"[^a-z0-9_.-]+")
_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
}
_DEFAULT_EXTENSION = "jpg"


def logical_id(key: str, field_name: str) -> str:
    """Batch-local id tying a record's file field to its published URL."""

    return f"{key}/{field_name}"


@dataclass(frozen=True, slots=True)
class ImageTask:
    key: str
    field: str
    source_url: str

    @property
    def logical_id(self) -> str:
        return logical_id(self.key, self.field)


@dataclass(slots=True)
class ResolvedImage:
    task: ImageTask
    content: bytes
    path: str
    checksum: str

    @property
    def logical_id(self) -> str:
        return self.task.logical_id


def extract_file_id(link: str) -> str | None:
    match = _FILE_ID_PATTERN.search(link)
    return match.group(0) if match else None


def direct_fetch_url(link: str) -> str:
    file_id = extract_file_id(link)
    if file_id is None:
        raise ImageResolutionError(f"No file identifier in link {link!r}")
    return _DIRECT_FETCH_URL.format(file_id=file_id)


def slugify(value: str) -> str:
    slug = _SLUG_PATTERN.sub("-", value.strip().lower()).strip("-.")
    if slug:
        return slug
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


def extension_for(content_type: str) -> str:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return _EXTENSIONS.get(media_type, _DEFAULT_EXTENSION)


class ImageResolver:
    """Download images referenced by shared-drive links. Never retries."""

    def __init__(
        self,
        config: SyncConfig,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._image_dir = config.github.image_dir
        if client is None:
            kwargs: dict[str, object] = {
                "timeout": config.timeout.image_timeout,
                "headers": {"User-Agent": config.user_agent},
                "follow_redirects": True,
            }
            if transport is not None:
                kwargs["transport"] = transport
            self._client = httpx.AsyncClient(**kwargs)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ImageResolver":
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.aclose()

    async def download(self, link: str) -> tuple[bytes, str]:
        url = direct_fetch_url(link)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ImageResolutionError(f"Download of {url} failed: {exc}") from exc

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("text/"):
            raise ImageResolutionError(f"{url} returned {content_type!r} instead of an image")
        content = response.content
        if not content:
            raise ImageResolutionError(f"Empty response body for {url}")
        return content, content_type

    async def resolve(self, link: str) -> bytes | None:
        """Fetch one link on its own, returning ``None`` instead of raising.

        The batch pipeline calls ``resolve_task``, which raises so the failure
        can be attached to its record. Both go through ``download``, so they
        accept and reject exactly the same responses.
        """

        try:
            content, _content_type = await self.download(link)
        except ImageResolutionError as exc:
            LOGGER.warning("Could not resolve image %s: %s", link, exc)
            return None
        return content

    async def resolve_task(self, task: ImageTask) -> ResolvedImage:
        content, content_type = await self.download(task.source_url)
        checksum = hashlib.sha256(content).hexdigest()
        filename = f"{slugify(task.field)}-{checksum[:12]}.{extension_for(content_type)}"
        path = "/".join(part for part in (self._image_dir, slugify(task.key), filename) if part)
        LOGGER.debug("Resolved %s (%d bytes) to %s", task.logical_id, len(content), path)
        return ResolvedImage(task=task, content=content, path=path, checksum=checksum)
