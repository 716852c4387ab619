"""Git-data API client and the batch image publisher built on it."""

from __future__ import annotations

import base64
import logging
from typing import Any, Sequence

import httpx

from .config import GitHubConfig
from .http_client import ApiClient, HttpRequestError
from .images import ResolvedImage

LOGGER = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
_API_VERSION = "2022-11-28"
_BLOB_MODE = "100644"


class ContentHostError(RuntimeError):
    """Raised when a git-data API call fails."""


class AssetPublishError(RuntimeError):
    """Raised when a batch of images could not be committed."""


def _sha(payload: dict[str, Any], *path: str) -> str:
    node: Any = payload
    for key in path:
        if not isinstance(node, dict) or key not in node:
            raise ContentHostError(f"Response is missing {'.'.join(path)}")
        node = node[key]
    if not isinstance(node, str) or not node:
        raise ContentHostError(f"Response has an invalid {'.'.join(path)}")
    return node


class GitHubContentHost(ApiClient):
    """Thin wrapper over the git-data endpoints of one repository."""

    def __init__(
        self,
        config: GitHubConfig,
        *,
        user_agent: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        self._repo_path = f"/repos/{config.owner}/{config.repo}/git"
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": _API_VERSION,
            "User-Agent": user_agent,
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        super().__init__(base_url, headers=headers, timeout=timeout, client=client, transport=transport)

    async def _call(self, method: str, path: str, payload: Any = None) -> dict[str, Any]:
        try:
            return await self.request_json(method, f"{self._repo_path}{path}", json=payload)
        except HttpRequestError as exc:
            raise ContentHostError(str(exc)) from exc

    async def get_branch_tip(self, branch: str) -> str:
        payload = await self._call("GET", f"/ref/heads/{branch}")
        return _sha(payload, "object", "sha")

    async def get_commit_tree(self, commit_sha: str) -> str:
        payload = await self._call("GET", f"/commits/{commit_sha}")
        return _sha(payload, "tree", "sha")

    async def create_blob(self, content: bytes) -> str:
        payload = await self._call(
            "POST",
            "/blobs",
            {"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"},
        )
        return _sha(payload, "sha")

    async def create_tree(self, base_tree: str, entries: Sequence[tuple[str, str]]) -> str:
        tree = [
            {"path": path, "mode": _BLOB_MODE, "type": "blob", "sha": blob_sha}
            for path, blob_sha in entries
        ]
        payload = await self._call("POST", "/trees", {"base_tree": base_tree, "tree": tree})
        return _sha(payload, "sha")

    async def create_commit(self, message: str, tree_sha: str, parent_sha: str) -> str:
        payload = await self._call(
            "POST",
            "/commits",
            {"message": message, "tree": tree_sha, "parents": [parent_sha]},
        )
        return _sha(payload, "sha")

    async def update_ref(self, branch: str, commit_sha: str) -> None:
        await self._call("PATCH", f"/refs/heads/{branch}", {"sha": commit_sha, "force": False})


class AssetPublisher:
    """Commit a batch of images in a single commit and map them to public URLs."""

    def __init__(self, host: GitHubContentHost, config: GitHubConfig) -> None:
        self._host = host
        self._config = config

    async def publish(self, images: Sequence[ResolvedImage]) -> dict[str, str]:
        if not images:
            return {}

        branch = self._config.branch
        try:
            parent_sha = await self._host.get_branch_tip(branch)
            base_tree = await self._host.get_commit_tree(parent_sha)

            blobs_by_checksum: dict[str, str] = {}
            entries: dict[str, str] = {}
            for image in images:
                if image.path in entries:
                    continue
                blob_sha = blobs_by_checksum.get(image.checksum)
                if blob_sha is None:
                    blob_sha = await self._host.create_blob(image.content)
                    blobs_by_checksum[image.checksum] = blob_sha
                entries[image.path] = blob_sha

            tree_sha = await self._host.create_tree(base_tree, list(entries.items()))
            if tree_sha == base_tree:
                # Every path already holds the same content on the branch tip.
                commit_sha = parent_sha
            else:
                message = f"Add {len(entries)} signup image{'s' if len(entries) != 1 else ''}"
                commit_sha = await self._host.create_commit(message, tree_sha, parent_sha)
                await self._host.update_ref(branch, commit_sha)
        except ContentHostError as exc:
            raise AssetPublishError(f"Publishing {len(images)} images failed: {exc}") from exc

        if commit_sha == parent_sha:
            LOGGER.info("All %d images already on %s at %s, nothing to commit", len(entries), branch, commit_sha[:12])
        else:
            LOGGER.info("Committed %d images to %s as %s", len(entries), branch, commit_sha[:12])
        return {image.logical_id: self._config.raw_url(commit_sha, image.path) for image in images}
