import unittest

from signup_sync.dedupe import DuplicateCheckError, DuplicateChecker
from signup_sync.mapper import MappedRecord
from signup_sync.notion import RecordStoreError
from signup_sync.outcomes import OutcomeStatus, WarningKind
from signup_sync.schema import FieldKind, FieldSpec, Schema
from signup_sync.writer import RecordWriter

SCHEMA = Schema(
    fields={
        "handle": FieldSpec(FieldKind.SHORT_TEXT),
        "age": FieldSpec(FieldKind.NUMBER),
        "slots": FieldSpec(FieldKind.TAG_SET),
        "headshotUrl": FieldSpec(FieldKind.FILE, label="Headshot"),
        "bodyPhotoUrl": FieldSpec(FieldKind.FILE, label="Body Photo"),
    },
    handle_field="handle",
)


def _text(payload: dict) -> str:
    return "".join(part["text"]["content"] for part in payload.get("rich_text", []))


class FakeStore:
    def __init__(self) -> None:
        self.pages: dict[str, dict] = {}
        self.blocks: dict[str, list] = {}
        self.queries: list[dict] = []
        self.fail_query = False
        self.fail_create = False
        self.fail_append = False

    async def query(self, filter_payload, *, page_size=1):
        self.queries.append({"filter": filter_payload, "page_size": page_size})
        if self.fail_query:
            raise RecordStoreError("store unavailable")
        wanted = filter_payload["rich_text"]["equals"]
        prop = filter_payload["property"]
        matches = [page for page in self.pages.values() if _text(page.get(prop, {})) == wanted]
        return matches[:page_size]

    async def create_record(self, properties):
        if self.fail_create:
            raise RecordStoreError("validation_error")
        page_id = f"page-{len(self.pages) + 1}"
        self.pages[page_id] = dict(properties)
        return page_id

    async def append_content(self, record_id, blocks):
        if self.fail_append:
            raise RecordStoreError("block append failed")
        self.blocks.setdefault(record_id, []).extend(blocks)


def _record(key: str = "@alice") -> MappedRecord:
    return MappedRecord(
        key=key,
        values={"handle": key, "age": 27.0, "slots": ("10:00", "12:00")},
        image_links={"headshotUrl": "link-1", "bodyPhotoUrl": "link-2"},
    )


class DuplicateCheckerTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_queries_exact_handle_with_page_size_one(self) -> None:
        store = FakeStore()
        checker = DuplicateChecker(store, SCHEMA)

        self.assertFalse(await checker.exists("@alice"))
        self.assertEqual(
            store.queries,
            [{"filter": {"property": "handle", "rich_text": {"equals": "@alice"}}, "page_size": 1}],
        )

    async def test_query_error_counts_as_new(self) -> None:
        store = FakeStore()
        store.fail_query = True
        checker = DuplicateChecker(store, SCHEMA)

        found, warning = await checker.check("@alice")

        self.assertFalse(found)
        self.assertEqual(warning.kind, WarningKind.DUPLICATE_CHECK)

    async def test_strict_mode_raises(self) -> None:
        store = FakeStore()
        store.fail_query = True
        checker = DuplicateChecker(store, SCHEMA, strict=True)

        with self.assertRaises(DuplicateCheckError):
            await checker.check("@alice")


class RecordWriterTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = FakeStore()
        self.urls = {
            "@alice/headshotUrl": "https://raw.example/head.jpg",
            "@alice/bodyPhotoUrl": "https://raw.example/body.jpg",
        }

    def _writer(self, *, strict_dedupe: bool = False, strict_content: bool = False) -> RecordWriter:
        checker = DuplicateChecker(self.store, SCHEMA, strict=strict_dedupe)
        return RecordWriter(self.store, checker, SCHEMA, strict_content=strict_content)

    async def test_creates_record_with_files_and_image_blocks(self) -> None:
        outcome = await self._writer().write(_record(), self.urls)

        self.assertEqual(outcome.status, OutcomeStatus.CREATED)
        self.assertEqual(outcome.record_id, "page-1")
        properties = self.store.pages["page-1"]
        self.assertEqual(_text(properties["handle"]), "@alice")
        self.assertEqual(properties["age"], {"number": 27.0})
        self.assertEqual(properties["slots"], {"multi_select": [{"name": "10:00"}, {"name": "12:00"}]})
        self.assertEqual(
            properties["headshotUrl"],
            {
                "files": [
                    {"type": "external", "name": "Headshot", "external": {"url": "https://raw.example/head.jpg"}}
                ]
            },
        )
        self.assertEqual(properties["bodyPhotoUrl"]["files"][0]["name"], "Body Photo")
        self.assertEqual(
            [block["image"]["external"]["url"] for block in self.store.blocks["page-1"]],
            ["https://raw.example/head.jpg", "https://raw.example/body.jpg"],
        )

    async def test_unresolved_image_is_left_out(self) -> None:
        urls = {"@alice/bodyPhotoUrl": "https://raw.example/body.jpg"}

        outcome = await self._writer().write(_record(), urls)

        self.assertEqual(outcome.status, OutcomeStatus.CREATED)
        self.assertNotIn("headshotUrl", self.store.pages["page-1"])
        self.assertEqual(len(self.store.blocks["page-1"]), 1)

    async def test_no_images_means_no_blocks(self) -> None:
        outcome = await self._writer().write(_record(), {})

        self.assertEqual(outcome.status, OutcomeStatus.CREATED)
        self.assertNotIn("headshotUrl", self.store.pages["page-1"])
        self.assertNotIn("bodyPhotoUrl", self.store.pages["page-1"])
        self.assertEqual(self.store.blocks, {})

    async def test_urls_for_other_records_are_ignored(self) -> None:
        urls = {"@bob/headshotUrl": "https://raw.example/bob.jpg"}

        await self._writer().write(_record("@alice"), urls)

        self.assertNotIn("headshotUrl", self.store.pages["page-1"])

    async def test_existing_record_is_skipped(self) -> None:
        writer = self._writer()
        await writer.write(_record(), {})

        outcome = await writer.write(_record(), {})

        self.assertEqual(outcome.status, OutcomeStatus.SKIPPED)
        self.assertEqual(len(self.store.pages), 1)

    async def test_create_failure_is_reported(self) -> None:
        self.store.fail_create = True

        outcome = await self._writer().write(_record(), self.urls)

        self.assertEqual(outcome.status, OutcomeStatus.FAILED)
        self.assertIn("validation_error", outcome.detail)
        self.assertEqual(self.store.blocks, {})

    async def test_duplicate_check_failure_still_writes(self) -> None:
        self.store.fail_query = True

        outcome = await self._writer().write(_record(), {})

        self.assertEqual(outcome.status, OutcomeStatus.CREATED)
        self.assertEqual([warning.kind for warning in outcome.warnings], [WarningKind.DUPLICATE_CHECK])

    async def test_strict_dedupe_fails_without_writing(self) -> None:
        self.store.fail_query = True

        outcome = await self._writer(strict_dedupe=True).write(_record(), {})

        self.assertEqual(outcome.status, OutcomeStatus.FAILED)
        self.assertEqual(self.store.pages, {})

    async def test_append_failure_keeps_record_created(self) -> None:
        self.store.fail_append = True

        outcome = await self._writer().write(_record(), self.urls)

        self.assertEqual(outcome.status, OutcomeStatus.CREATED)
        self.assertEqual([warning.kind for warning in outcome.warnings], [WarningKind.CONTENT_APPEND])

    async def test_strict_content_downgrades_append_failure(self) -> None:
        self.store.fail_append = True

        outcome = await self._writer(strict_content=True).write(_record(), self.urls)

        self.assertEqual(outcome.status, OutcomeStatus.FAILED)
        self.assertEqual(outcome.record_id, "page-1")
        self.assertIn("image blocks", outcome.detail)


if __name__ == "__main__":
    unittest.main()
