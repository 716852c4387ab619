"""Command-line entrypoint: copy signup rows from the sheet into the store."""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Mapping, Sequence

from .config import SyncConfig, load_config_from_env
from .dedupe import DuplicateChecker
from .github import AssetPublisher, GitHubContentHost
from .http_client import install_secret_filter
from .images import ImageResolver
from .notion import NotionStore
from .outcomes import SyncReport, format_summary
from .pipeline import BatchOrchestrator, SyncServices
from .schema import SIGNUP_SCHEMA, Schema
from .sheets import SheetReadError, SheetsSource
from .writer import RecordWriter

LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync signup rows from a spreadsheet into the record store, uploading their photos",
    )
    parser.add_argument("--range", dest="sheet_range", type=str, default=None, help="Sheet range to read (A1 notation)")
    parser.add_argument("--batch-size", type=int, default=None, help="Rows processed per batch (default: 20)")
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Maximum simultaneous downloads and record writes (default: 10)",
    )
    parser.add_argument(
        "--batch-delay",
        type=float,
        default=None,
        help="Seconds to pause between batches (default: 1.0)",
    )
    parser.add_argument(
        "--strict-dedupe",
        action="store_true",
        help="Mark a record failed when the duplicate lookup errors instead of writing it anyway",
    )
    parser.add_argument(
        "--strict-content",
        action="store_true",
        help="Mark a record failed when its image blocks cannot be appended",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level), format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def build_config(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> SyncConfig:
    config = load_config_from_env(environ)
    if args.sheet_range:
        config.sheets.sheet_range = args.sheet_range
    if args.batch_size is not None:
        config.rate_limit.batch_size = args.batch_size
    if args.max_concurrency is not None:
        config.rate_limit.max_concurrency = args.max_concurrency
    if args.batch_delay is not None:
        config.rate_limit.batch_delay = max(0.0, args.batch_delay)
    config.policy.strict_dedupe = bool(args.strict_dedupe)
    config.policy.strict_content = bool(args.strict_content)
    return config


async def run_sync(config: SyncConfig, schema: Schema = SIGNUP_SCHEMA) -> SyncReport:
    timeout = config.timeout.request_timeout
    async with AsyncExitStack() as stack:
        source = await stack.enter_async_context(
            SheetsSource(config.sheets, user_agent=config.user_agent, timeout=timeout)
        )
        store = await stack.enter_async_context(
            NotionStore(config.notion, user_agent=config.user_agent, timeout=timeout)
        )
        host = await stack.enter_async_context(
            GitHubContentHost(config.github, user_agent=config.user_agent, timeout=timeout)
        )
        resolver = await stack.enter_async_context(ImageResolver(config))

        checker = DuplicateChecker(store, schema, strict=config.policy.strict_dedupe)
        services = SyncServices(
            resolver=resolver,
            publisher=AssetPublisher(host, config.github),
            writer=RecordWriter(store, checker, schema, strict_content=config.policy.strict_content),
            limiter=asyncio.Semaphore(config.rate_limit.max_concurrency),
        )
        orchestrator = BatchOrchestrator(
            services,
            schema,
            batch_size=config.rate_limit.batch_size,
            batch_delay=config.rate_limit.batch_delay,
        )
        return await orchestrator.run(source)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = build_config(args)
    except ValueError as exc:
        parser.error(str(exc))

    missing = config.validate()
    if missing:
        parser.error(f"Missing or invalid settings: {', '.join(missing)}")

    install_secret_filter(config.secrets())

    try:
        report = asyncio.run(run_sync(config))
    except SheetReadError as exc:
        LOGGER.error("Cannot read signup sheet: %s", exc)
        return 2

    for line in format_summary(report):
        LOGGER.info("%s", line)
    return 0 if report.failed == 0 else 1


__all__ = ["build_arg_parser", "build_config", "configure_logging", "main", "run_sync"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
