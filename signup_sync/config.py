"""Configuration shared by the sheet-to-store synchronisation pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_USER_AGENT = "signup-sync/1.0"
DEFAULT_SHEET_RANGE = "test!A1:Z"
DEFAULT_NOTION_VERSION = "2022-06-28"

_SPREADSHEET_ENV = "SPREADSHEET_ID"
_RANGE_ENV = "SHEET_RANGE"
_CREDENTIALS_ENV = "GOOGLE_CREDENTIALS_FILE"
_NOTION_TOKEN_ENV = "NOTION_TOKEN"
_DATABASE_ENV = "DATABASE_ID"
_NOTION_VERSION_ENV = "NOTION_VERSION"
_GITHUB_TOKEN_ENV = "GITHUB_TOKEN"
_GITHUB_OWNER_ENV = "GITHUB_OWNER"
_GITHUB_REPO_ENV = "GITHUB_REPO"
_GITHUB_BRANCH_ENV = "GITHUB_BRANCH"
_GITHUB_IMAGE_DIR_ENV = "GITHUB_IMAGE_DIR"
_BATCH_SIZE_ENV = "SYNC_BATCH_SIZE"
_CONCURRENCY_ENV = "SYNC_MAX_CONCURRENCY"
_BATCH_DELAY_ENV = "SYNC_BATCH_DELAY"


@dataclass(slots=True)
class RateLimitConfig:
    max_concurrency: int = 10
    batch_size: int = 20
    batch_delay: float = 1.0


@dataclass(slots=True)
class TimeoutConfig:
    request_timeout: float = 30.0
    image_timeout: float = 30.0


@dataclass(slots=True)
class SheetsConfig:
    spreadsheet_id: Optional[str] = None
    sheet_range: str = DEFAULT_SHEET_RANGE
    credentials_file: Optional[Path] = None


@dataclass(slots=True)
class NotionConfig:
    token: Optional[str] = None
    database_id: Optional[str] = None
    api_version: str = DEFAULT_NOTION_VERSION


@dataclass(slots=True)
class GitHubConfig:
    """Target repository that receives uploaded images."""

    token: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    branch: str = "main"
    image_dir: str = "images"

    def raw_url(self, commit_sha: str, path: str) -> str:
        return f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/{commit_sha}/{path}"


@dataclass(slots=True)
class PolicyConfig:
    """Failure policies for the two availability-biased steps.

    ``strict_dedupe`` turns a failed duplicate lookup into a failed outcome
    instead of writing anyway. ``strict_content`` marks a record failed when
    its image blocks could not be appended.
    """

    strict_dedupe: bool = False
    strict_content: bool = False


@dataclass(slots=True)
class SyncConfig:
    user_agent: str = DEFAULT_USER_AGENT
    sheets: SheetsConfig = field(default_factory=SheetsConfig)
    notion: NotionConfig = field(default_factory=NotionConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)

    def validate(self) -> list[str]:
        """Return the names of required settings that are missing."""

        required = {
            _SPREADSHEET_ENV: self.sheets.spreadsheet_id,
            _CREDENTIALS_ENV: self.sheets.credentials_file,
            _NOTION_TOKEN_ENV: self.notion.token,
            _DATABASE_ENV: self.notion.database_id,
            _GITHUB_TOKEN_ENV: self.github.token,
            _GITHUB_OWNER_ENV: self.github.owner,
            _GITHUB_REPO_ENV: self.github.repo,
        }
        missing = [name for name, value in required.items() if not value]
        if self.rate_limit.batch_size < 1:
            missing.append(f"{_BATCH_SIZE_ENV} (must be positive)")
        if self.rate_limit.max_concurrency < 1:
            missing.append(f"{_CONCURRENCY_ENV} (must be positive)")
        return missing

    def secrets(self) -> tuple[str, ...]:
        return tuple(value for value in (self.notion.token, self.github.token) if value)


def _clean(environ: Mapping[str, str], name: str) -> str | None:
    raw_value = environ.get(name)
    if raw_value is None:
        return None
    cleaned = raw_value.strip()
    return cleaned or None


def _coerce_int(environ: Mapping[str, str], name: str, default: int) -> int:
    cleaned = _clean(environ, name)
    if cleaned is None:
        return default
    try:
        return int(cleaned)
    except ValueError as exc:
        raise ValueError(f"Invalid integer {cleaned!r} for {name}") from exc


def _coerce_float(environ: Mapping[str, str], name: str, default: float) -> float:
    cleaned = _clean(environ, name)
    if cleaned is None:
        return default
    try:
        value = float(cleaned)
    except ValueError as exc:
        raise ValueError(f"Invalid number {cleaned!r} for {name}") from exc
    return max(0.0, value)


def load_config_from_env(environ: Mapping[str, str] | None = None) -> SyncConfig:
    env = os.environ if environ is None else environ
    config = SyncConfig()

    config.sheets.spreadsheet_id = _clean(env, _SPREADSHEET_ENV)
    config.sheets.sheet_range = _clean(env, _RANGE_ENV) or DEFAULT_SHEET_RANGE
    credentials = _clean(env, _CREDENTIALS_ENV)
    if credentials:
        config.sheets.credentials_file = Path(credentials).expanduser()

    config.notion.token = _clean(env, _NOTION_TOKEN_ENV)
    config.notion.database_id = _clean(env, _DATABASE_ENV)
    config.notion.api_version = _clean(env, _NOTION_VERSION_ENV) or DEFAULT_NOTION_VERSION

    config.github.token = _clean(env, _GITHUB_TOKEN_ENV)
    config.github.owner = _clean(env, _GITHUB_OWNER_ENV)
    config.github.repo = _clean(env, _GITHUB_REPO_ENV)
    config.github.branch = _clean(env, _GITHUB_BRANCH_ENV) or config.github.branch
    image_dir = _clean(env, _GITHUB_IMAGE_DIR_ENV)
    if image_dir:
        config.github.image_dir = image_dir.strip("/")

    config.rate_limit.batch_size = _coerce_int(env, _BATCH_SIZE_ENV, config.rate_limit.batch_size)
    config.rate_limit.max_concurrency = _coerce_int(env, _CONCURRENCY_ENV, config.rate_limit.max_concurrency)
    config.rate_limit.batch_delay = _coerce_float(env, _BATCH_DELAY_ENV, config.rate_limit.batch_delay)
    return config
