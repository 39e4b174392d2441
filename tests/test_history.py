"""Tests for the SQLite history store."""

import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from mdflow.models.tasks import ConversionTask, PayloadKind, TaskPayload, TaskStatus
from mdflow.storage import HistoryEntry, SqliteHistoryStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def entry(index, **kwargs):
    values = {
        "id": f"task_{index}",
        "status": TaskStatus.COMPLETED,
        "title": f"Page {index}",
        "source_url": f"https://example.com/{index}",
        "markdown": f"# Page {index}",
        "created_at": BASE_TIME + timedelta(minutes=index),
    }
    values.update(kwargs)
    return HistoryEntry(**values)


class TestSqliteHistoryStore:
    """Tests for SqliteHistoryStore."""

    @pytest_asyncio.fixture
    async def store(self):
        store = SqliteHistoryStore(max_items=100)
        await store.init()
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_requires_init(self):
        """Test that use before init() is an error."""
        with pytest.raises(RuntimeError):
            await SqliteHistoryStore().list()

    @pytest.mark.asyncio
    async def test_append_and_get(self, store):
        """Test storing and reading back an entry."""
        original = entry(1, metadata={"author": "Ann", "tags": ["a"]})

        await store.append(original)
        stored = await store.get("task_1")

        assert stored == original
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_list_is_newest_first_and_paginated(self, store):
        """Test ordering, page size and total count."""
        for index in range(5):
            await store.append(entry(index))

        page, total = await store.list(offset=1, limit=2)

        assert total == 5
        assert [item.id for item in page] == ["task_3", "task_2"]

    @pytest.mark.asyncio
    async def test_search_matches_title_url_and_markdown(self, store):
        """Test case-insensitive substring search."""
        await store.append(entry(1, title="Python Guide"))
        await store.append(entry(2, source_url="https://python.org"))
        await store.append(entry(3, markdown="learn PYTHON"))
        await store.append(entry(4))

        page, total = await store.list(search="python")

        assert total == 3
        assert {item.id for item in page} == {"task_1", "task_2", "task_3"}

    @pytest.mark.asyncio
    async def test_search_wildcards_are_literal(self, store):
        """Test that % and _ in the search text match only themselves."""
        await store.append(entry(1, title="100% done"))
        await store.append(entry(2, title="100 done"))
        await store.append(entry(3, title="snake_case"))
        await store.append(entry(4, title="snakeXcase"))

        _, percent_total = await store.list(search="100%")
        underscore, _ = await store.list(search="e_c")

        assert percent_total == 1
        assert [item.id for item in underscore] == ["task_3"]

    @pytest.mark.asyncio
    async def test_date_range(self, store):
        """Test start and end bounds are inclusive."""
        for index in range(5):
            await store.append(entry(index))

        page, total = await store.list(
            start=BASE_TIME + timedelta(minutes=1),
            end=BASE_TIME + timedelta(minutes=3),
        )

        assert total == 3
        assert [item.id for item in page] == ["task_3", "task_2", "task_1"]

    @pytest.mark.asyncio
    async def test_keeps_only_newest_entries(self):
        """Test trimming to max_items."""
        async with SqliteHistoryStore(max_items=3) as store:
            for index in range(5):
                await store.append(entry(index))

            page, total = await store.list()

        assert total == 3
        assert [item.id for item in page] == ["task_4", "task_3", "task_2"]

    @pytest.mark.asyncio
    async def test_append_same_id_replaces(self, store):
        await store.append(entry(1))
        await store.append(entry(1, title="Updated"))

        page, total = await store.list()

        assert total == 1
        assert page[0].title == "Updated"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store):
        """Test removing one entry and all entries."""
        await store.append(entry(1))
        await store.append(entry(2))

        assert await store.delete("task_1") is True
        assert await store.delete("task_1") is False
        assert (await store.list())[1] == 1

        await store.clear()

        assert (await store.list())[1] == 0

    @pytest.mark.asyncio
    async def test_stats(self, store):
        """Test counts per status."""
        await store.append(entry(1))
        await store.append(entry(2, status=TaskStatus.FAILED, markdown="", error="boom"))

        stats = await store.stats()

        assert stats == {"total": 2, "completed": 1, "failed": 1, "max_items": 100}

    @pytest.mark.asyncio
    async def test_export_and_import(self, store):
        """Test moving history between stores."""
        await store.append(entry(1))
        await store.append(entry(2))
        exported = await store.export_json()

        async with SqliteHistoryStore() as other:
            await other.append(entry(9))
            imported = await other.import_json(exported, merge=False)
            page, total = await other.list()

        assert imported == 2
        assert total == 2
        assert [item.id for item in page] == ["task_2", "task_1"]

    @pytest.mark.asyncio
    async def test_import_merge_keeps_existing(self, store):
        await store.append(entry(9))

        await store.import_json(json.dumps([entry(1).to_dict()]))

        assert (await store.list())[1] == 2

    @pytest.mark.asyncio
    async def test_import_skips_malformed_entries(self, store):
        """Test that entries without an id are skipped."""
        data = json.dumps([entry(1).to_dict(), {"title": "no id"}, {"id": "x", "status": "bogus"}])

        imported = await store.import_json(data)

        assert imported == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", ["not json", '{"id": "x"}'])
    async def test_import_invalid_json(self, store, data):
        with pytest.raises(ValueError):
            await store.import_json(data)

    @pytest.mark.asyncio
    async def test_file_backed_store_persists(self, tmp_path):
        """Test that entries survive reopening a database file."""
        path = tmp_path / "nested" / "history.db"

        async with SqliteHistoryStore(path) as store:
            await store.append(entry(1))

        async with SqliteHistoryStore(path) as reopened:
            assert (await reopened.get("task_1")).title == "Page 1"


class TestHistoryEntry:
    """Tests for HistoryEntry."""

    def test_from_failed_task(self):
        """Test that a failed task keeps its error and payload URL."""
        task = ConversionTask(
            payload=TaskPayload(PayloadKind.URL, "https://example.com"),
            status=TaskStatus.FAILED,
            error="HTTP 404",
        )

        history_entry = HistoryEntry.from_task(task)

        assert history_entry.id == task.id
        assert history_entry.status == TaskStatus.FAILED
        assert history_entry.source_url == "https://example.com"
        assert history_entry.error == "HTTP 404"
        assert history_entry.markdown == ""
