"""
Tests for ItemRepository upsert semantics and lookups.
"""

import pytest

from vectorfeed.database.models import ItemStatus
from vectorfeed.storage import item_repository as item_repository_module


class TestItemRepository:

    def test_upsert_creates_item(self, item_repository):
        item_repository.upsert("abc", ItemStatus.QUEUED, text="body", metadata={"title": "T"})

        item = item_repository.get_item("abc")
        assert item.status == ItemStatus.QUEUED
        assert item.text == "body"
        assert item.metadata == {"title": "T"}

    def test_upsert_keeps_omitted_fields(self, item_repository):
        item_repository.upsert("abc", ItemStatus.QUEUED, text="body", metadata={"title": "T"})
        item_repository.upsert("abc", ItemStatus.PROCESSING, text="extended body")
        item_repository.upsert("abc", ItemStatus.PROCESSED)

        item = item_repository.get_item("abc")
        assert item.status == ItemStatus.PROCESSED
        assert item.text == "extended body"
        assert item.metadata == {"title": "T"}

    def test_repeated_upsert_is_idempotent(self, item_repository):
        for _ in range(3):
            item_repository.upsert("abc", ItemStatus.PROCESSED, text="body", metadata={})

        assert item_repository.count_by_status()["processed"] == 1

    def test_text_truncated_to_limit(self, item_repository):
        limit = item_repository.settings.limits.max_text_length
        item_repository.upsert("long", ItemStatus.QUEUED, text="x" * (limit + 10))

        assert len(item_repository.get_item("long").text) == limit

    def test_get_missing_item(self, item_repository):
        assert item_repository.get_item("missing") is None

    def test_query_statuses(self, item_repository):
        item_repository.upsert("a", ItemStatus.QUEUED)
        item_repository.upsert("b", ItemStatus.PROCESSED)

        statuses = item_repository.query_statuses(["a", "b", "c", "a"])

        assert statuses == {"a": ItemStatus.QUEUED, "b": ItemStatus.PROCESSED}

    def test_query_statuses_empty(self, item_repository):
        assert item_repository.query_statuses([]) == {}

    def test_query_statuses_chunks_large_batches(self, item_repository, monkeypatch):
        monkeypatch.setattr(item_repository_module, "QUERY_CHUNK_SIZE", 2)
        for i in range(5):
            item_repository.upsert(f"id-{i}", ItemStatus.PROCESSED)

        statuses = item_repository.query_statuses([f"id-{i}" for i in range(7)])

        assert len(statuses) == 5

    def test_list_and_delete_by_status(self, item_repository):
        item_repository.upsert("q1", ItemStatus.QUEUED, text="one")
        item_repository.upsert("q2", ItemStatus.QUEUED, text="two")
        item_repository.upsert("p1", ItemStatus.PROCESSED, text="three")

        queued = item_repository.list_by_status(ItemStatus.QUEUED)
        assert {item.id for item in queued} == {"q1", "q2"}
        assert len(item_repository.list_by_status(ItemStatus.QUEUED, limit=1)) == 1

        assert item_repository.delete_by_status(ItemStatus.QUEUED) == 2
        assert item_repository.list_by_status(ItemStatus.QUEUED) == []
        assert item_repository.get_item("p1") is not None

    def test_count_by_status_includes_all_statuses(self, item_repository):
        item_repository.upsert("f", ItemStatus.FAILED)

        counts = item_repository.count_by_status()

        assert counts == {"queued": 0, "processing": 0, "processed": 0, "failed": 1}

    def test_invalid_status_rejected(self, item_repository):
        with pytest.raises(ValueError):
            item_repository.upsert("abc", "unknown")
