import logging
import os
import unittest
from pathlib import Path
from unittest import mock

from signup_sync.config import SyncConfig, load_config_from_env
from signup_sync.http_client import SecretRedactingFilter
from signup_sync.outcomes import Outcome, SyncReport, format_summary
from signup_sync.sync import build_arg_parser, build_config, main

FULL_ENV = {
    "SPREADSHEET_ID": "sheet-123",
    "GOOGLE_CREDENTIALS_FILE": "/secrets/key.json",
    "NOTION_TOKEN": "secret_notion",
    "DATABASE_ID": "db-1",
    "GITHUB_TOKEN": "ghp_token",
    "GITHUB_OWNER": "acme",
    "GITHUB_REPO": "photos",
}


class LoadConfigTestCase(unittest.TestCase):
    def test_defaults_without_environment(self) -> None:
        config = load_config_from_env({})

        self.assertEqual(config.sheets.sheet_range, "test!A1:Z")
        self.assertEqual(config.notion.api_version, "2022-06-28")
        self.assertEqual(config.github.branch, "main")
        self.assertEqual(config.rate_limit.batch_size, 20)
        self.assertEqual(config.rate_limit.max_concurrency, 10)
        self.assertEqual(config.rate_limit.batch_delay, 1.0)

    def test_reads_and_cleans_values(self) -> None:
        env = dict(
            FULL_ENV,
            SHEET_RANGE="  signups!A1:Q ",
            GITHUB_BRANCH="assets",
            GITHUB_IMAGE_DIR="/uploads/",
            SYNC_BATCH_SIZE="5",
            SYNC_MAX_CONCURRENCY="3",
            SYNC_BATCH_DELAY="-2",
            NOTION_TOKEN="   ",
        )

        config = load_config_from_env(env)

        self.assertEqual(config.sheets.sheet_range, "signups!A1:Q")
        self.assertEqual(config.sheets.credentials_file, Path("/secrets/key.json"))
        self.assertIsNone(config.notion.token)
        self.assertEqual(config.github.branch, "assets")
        self.assertEqual(config.github.image_dir, "uploads")
        self.assertEqual(config.rate_limit.batch_size, 5)
        self.assertEqual(config.rate_limit.max_concurrency, 3)
        self.assertEqual(config.rate_limit.batch_delay, 0.0)

    def test_invalid_integer_names_the_variable(self) -> None:
        with self.assertRaisesRegex(ValueError, "SYNC_BATCH_SIZE"):
            load_config_from_env({"SYNC_BATCH_SIZE": "lots"})

    def test_validate_lists_missing_settings(self) -> None:
        self.assertEqual(load_config_from_env(FULL_ENV).validate(), [])

        missing = load_config_from_env({"SPREADSHEET_ID": "sheet-123"}).validate()
        self.assertIn("NOTION_TOKEN", missing)
        self.assertIn("GITHUB_REPO", missing)
        self.assertNotIn("SPREADSHEET_ID", missing)

    def test_validate_rejects_non_positive_limits(self) -> None:
        config = load_config_from_env(dict(FULL_ENV, SYNC_MAX_CONCURRENCY="0"))

        self.assertEqual(config.validate(), ["SYNC_MAX_CONCURRENCY (must be positive)"])

    def test_secrets_and_raw_url(self) -> None:
        config = load_config_from_env(FULL_ENV)

        self.assertEqual(config.secrets(), ("secret_notion", "ghp_token"))
        self.assertEqual(
            config.github.raw_url("abc123", "images/alice/headshot.jpg"),
            "https://raw.githubusercontent.com/acme/photos/abc123/images/alice/headshot.jpg",
        )
        self.assertEqual(SyncConfig().secrets(), ())


class CommandLineTestCase(unittest.TestCase):
    def test_flags_override_environment(self) -> None:
        args = build_arg_parser().parse_args(
            ["--range", "other!A1:C", "--batch-size", "7", "--batch-delay", "0.5", "--strict-dedupe"]
        )

        config = build_config(args, dict(FULL_ENV, SYNC_BATCH_SIZE="50"))

        self.assertEqual(config.sheets.sheet_range, "other!A1:C")
        self.assertEqual(config.rate_limit.batch_size, 7)
        self.assertEqual(config.rate_limit.batch_delay, 0.5)
        self.assertTrue(config.policy.strict_dedupe)
        self.assertFalse(config.policy.strict_content)

    def test_missing_settings_exit_with_usage_error(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True), mock.patch("sys.stderr"):
            with self.assertRaises(SystemExit) as ctx:
                main(["--log-level", "ERROR"])

        self.assertEqual(ctx.exception.code, 2)


class SecretRedactingFilterTestCase(unittest.TestCase):
    def test_tokens_are_masked_in_messages(self) -> None:
        log_filter = SecretRedactingFilter(["ghp_token", ""])
        record = logging.LogRecord(
            "httpx", logging.INFO, __file__, 1, "HTTP Request: GET %s", ("https://x/?t=ghp_token",), None
        )

        self.assertTrue(log_filter.filter(record))
        self.assertEqual(record.getMessage(), "HTTP Request: GET https://x/?t=<redacted>")

    def test_clean_messages_are_untouched(self) -> None:
        log_filter = SecretRedactingFilter(["ghp_token"])
        record = logging.LogRecord("httpx", logging.INFO, __file__, 1, "status %d", (200,), None)

        self.assertTrue(log_filter.filter(record))
        self.assertEqual(record.args, (200,))


class SummaryTestCase(unittest.TestCase):
    def test_summary_lists_failures(self) -> None:
        report = SyncReport(rows_read=4, rows_dropped=1, batches=1)
        report.add(Outcome.created("@alice", record_id="page-1"))
        report.add(Outcome.skipped("@bob", "already exists"))
        report.add(Outcome.failed("@carol", "store rejected the page"))

        lines = format_summary(report)

        self.assertEqual(
            lines[0],
            "Processed 4 rows in 1 batches: 1 created, 1 skipped, 1 failed, 1 dropped",
        )
        self.assertEqual(lines[1:], ["  failed @carol: store rejected the page"])


if __name__ == "__main__":
    unittest.main()
