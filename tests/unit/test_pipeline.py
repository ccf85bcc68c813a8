"""
Unit tests for the ProcessingPipeline orchestrator.

Feed discovery and entry processing run against a real temporary item
store and work queue; the network collaborators (feed fetcher, augmenter,
embedding client, vector index) are mocks.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import SAMPLE_RSS_FEED
from vectorfeed.database.models import AugmentResult, ItemStatus, Vector
from vectorfeed.ingestion.feed_parser import parse_feed
from vectorfeed.processing.messages import parse_message, EntryProcessingMessage
from vectorfeed.processing.pipeline import ProcessingPipeline, MessageOutcomeType
from vectorfeed.processing.work_queue import QueuedMessage
from vectorfeed.utils.exceptions import AIError, FeedFetchError, VectorStoreError, ErrorCode

FEED_URL = "https://example.com/rss.xml"

DUPLICATE_LINK_FEED = """<rss version="2.0"><channel><title>Dupes</title>
  <item><title>Original headline</title><link>https://example.com/story</link>
    <description>First version</description></item>
  <item><title>Updated headline</title><link>https://example.com/story</link>
    <description>Second version</description></item>
</channel></rss>"""

NO_IDENTITY_FEED = """<rss version="2.0"><channel><title>Untitled items</title>
  <item><title>First</title><description>One</description></item>
  <item><title>Second</title><description>Two</description></item>
  <item><title>Linked</title><link>https://example.com/linked</link><description>Three</description></item>
</channel></rss>"""


def delivered(body, message_id=1, attempts=1) -> QueuedMessage:
    if not isinstance(body, str):
        body = json.dumps(body)
    return QueuedMessage(id=message_id, body=body, attempts=attempts)


def entry_body(identity="abc", text="hello", **metadata):
    return {"type": "entry", "id": identity, "data": {"text": text, "metadata": metadata}}


def fake_vectors(item_id, text, metadata):
    return [Vector(id=item_id, values=[0.1, 0.2, 0.3], metadata=metadata)]


class TestProcessingPipeline:

    @pytest.fixture
    def feed_fetcher(self):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(return_value=parse_feed(SAMPLE_RSS_FEED, FEED_URL))
        return fetcher

    @pytest.fixture
    def augmenter(self):
        augmenter = MagicMock()
        augmenter.augment = AsyncMock(
            side_effect=lambda url, text: AugmentResult(query_text=text, extended=False)
        )
        return augmenter

    @pytest.fixture
    def embedding_client(self):
        client = MagicMock()
        client.generate_vectors = AsyncMock(side_effect=fake_vectors)
        return client

    @pytest.fixture
    def vector_store(self):
        store = MagicMock()
        store.upsert = AsyncMock(return_value="mutation-1")
        return store

    @pytest.fixture
    def pipeline(self, db_connection, work_queue, item_repository,
                 feed_fetcher, augmenter, embedding_client, vector_store):
        return ProcessingPipeline(
            db_connection,
            work_queue=work_queue,
            feed_fetcher=feed_fetcher,
            augmenter=augmenter,
            embedding_client=embedding_client,
            vector_store=vector_store,
            item_repository=item_repository,
        )

    # Entry processing

    @pytest.mark.asyncio
    async def test_entry_reaches_processed(self, pipeline, item_repository, vector_store, augmenter):
        outcome = await pipeline.process_message(delivered(entry_body("abc", "hello", url=None)))

        assert outcome.outcome == MessageOutcomeType.SUCCESS
        vector_store.upsert.assert_awaited_once()
        vectors = vector_store.upsert.await_args.args[0]
        assert len(vectors) == 1
        assert vectors[0].id == "abc"
        assert vectors[0].metadata["hasExtendedContent"] is False
        augmenter.augment.assert_not_awaited()

        item = item_repository.get_item("abc")
        assert item.status == ItemStatus.PROCESSED
        assert item.text == "hello"

    @pytest.mark.asyncio
    async def test_empty_text_skipped_without_writes(self, pipeline, item_repository,
                                                     embedding_client, vector_store):
        outcome = await pipeline.process_message(delivered(entry_body("empty", "", url=None)))

        assert outcome.outcome == MessageOutcomeType.SKIPPED
        assert item_repository.get_item("empty") is None
        embedding_client.generate_vectors.assert_not_awaited()
        vector_store.upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_augmented_text_is_embedded(self, pipeline, item_repository, augmenter, embedding_client):
        url = "https://www.bbc.com/news/articles/c123"
        augmenter.augment.side_effect = None
        augmenter.augment.return_value = AugmentResult(query_text="full article text", extended=True)

        await pipeline.process_message(delivered(entry_body("bbc", "short", url=url, title="T")))

        augmenter.augment.assert_awaited_once_with(url, "short")
        item_id, text, metadata = embedding_client.generate_vectors.await_args.args
        assert (item_id, text) == ("bbc", "full article text")
        assert metadata == {"url": url, "title": "T", "hasExtendedContent": True}

        item = item_repository.get_item("bbc")
        assert item.text == "full article text"
        assert item.metadata == {"url": url, "title": "T"}

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_processing_and_retries(self, pipeline, item_repository,
                                                                   embedding_client, vector_store):
        embedding_client.generate_vectors.side_effect = AIError("model unavailable", provider="workers_ai")

        outcome = await pipeline.process_message(delivered(entry_body("abc", "hello"), attempts=1))

        assert outcome.outcome == MessageOutcomeType.RETRY
        assert "model unavailable" in outcome.error
        assert item_repository.get_item("abc").status == ItemStatus.PROCESSING
        vector_store.upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_vector_store_failure_leaves_processing(self, pipeline, item_repository, vector_store):
        vector_store.upsert.side_effect = VectorStoreError("index down")

        outcome = await pipeline.process_message(delivered(entry_body("abc", "hello")))

        assert outcome.outcome == MessageOutcomeType.RETRY
        assert item_repository.get_item("abc").status == ItemStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_exhausted_attempts_mark_failed(self, pipeline, item_repository, embedding_client):
        embedding_client.generate_vectors.side_effect = AIError("model unavailable")

        outcome = await pipeline.process_message(
            delivered(entry_body("abc", "hello"), attempts=pipeline.max_attempts)
        )

        assert outcome.outcome == MessageOutcomeType.FAILED
        assert item_repository.get_item("abc").status == ItemStatus.FAILED

    @pytest.mark.asyncio
    async def test_non_recoverable_error_marks_failed(self, pipeline, item_repository, embedding_client):
        embedding_client.generate_vectors.side_effect = AIError(
            "bad credentials", error_code=ErrorCode.AI_INVALID_CREDENTIALS, recoverable=False
        )

        outcome = await pipeline.process_message(delivered(entry_body("abc", "hello"), attempts=1))

        assert outcome.outcome == MessageOutcomeType.FAILED
        assert item_repository.get_item("abc").status == ItemStatus.FAILED

    @pytest.mark.asyncio
    async def test_same_message_twice_converges(self, pipeline, item_repository, vector_store):
        message = delivered(entry_body("abc", "hello", title="T"))

        await pipeline.process_message(message)
        await pipeline.process_message(message)

        assert item_repository.count_by_status()["processed"] == 1
        assert item_repository.get_item("abc").status == ItemStatus.PROCESSED
        upserted_ids = {call.args[0][0].id for call in vector_store.upsert.await_args_list}
        assert upserted_ids == {"abc"}

    @pytest.mark.asyncio
    async def test_malformed_message_is_invalid(self, pipeline):
        outcome = await pipeline.process_message(delivered("{not json"))

        assert outcome.outcome == MessageOutcomeType.INVALID
        assert outcome.message_type is None

    # Feed discovery

    @pytest.mark.asyncio
    async def test_feed_discovery_enqueues_entries(self, pipeline, work_queue, item_repository):
        outcome = await pipeline.process_message(delivered({"type": "rss", "id": FEED_URL}))

        assert outcome.outcome == MessageOutcomeType.SUCCESS
        assert outcome.enqueued == 2

        messages = [parse_message(m.body) for m in work_queue.receive(10)]
        assert all(isinstance(m, EntryProcessingMessage) for m in messages)
        assert [m.id for m in messages] == ["story-1", "https://example.com/news/second"]
        assert messages[0].data.text == "Short summary of the first story."
        assert messages[0].data.metadata["title"] == "First story"
        assert "Full body of the second story." in messages[1].data.text

        # Discovery itself writes nothing to the item store
        assert item_repository.query_statuses(["story-1"]) == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [ItemStatus.PROCESSED, ItemStatus.QUEUED, ItemStatus.FAILED])
    async def test_feed_discovery_skips_known_items(self, pipeline, work_queue, item_repository, status):
        item_repository.upsert("story-1", status)

        outcome = await pipeline.process_message(delivered({"type": "rss", "id": FEED_URL}))

        assert outcome.enqueued == 1
        [message] = work_queue.receive(10)
        assert parse_message(message.body).id == "https://example.com/news/second"

    @pytest.mark.asyncio
    async def test_feed_discovery_requeues_processing_items(self, pipeline, item_repository):
        item_repository.upsert("story-1", ItemStatus.PROCESSING)

        outcome = await pipeline.process_message(delivered({"type": "rss", "id": FEED_URL}))

        assert outcome.enqueued == 2

    @pytest.mark.asyncio
    async def test_duplicate_links_enqueued_once(self, pipeline, feed_fetcher, work_queue):
        feed_fetcher.fetch.return_value = parse_feed(DUPLICATE_LINK_FEED, FEED_URL)

        outcome = await pipeline.process_message(delivered({"type": "rss", "id": FEED_URL}))

        assert outcome.enqueued == 1
        [message] = work_queue.receive(10)
        assert parse_message(message.body).id == "https://example.com/story"

    @pytest.mark.asyncio
    async def test_entries_without_identity_are_not_merged(self, pipeline, feed_fetcher,
                                                           work_queue, item_repository):
        feed_fetcher.fetch.return_value = parse_feed(NO_IDENTITY_FEED, FEED_URL)

        outcome = await pipeline.process_message(delivered({"type": "rss", "id": FEED_URL}))

        assert outcome.outcome == MessageOutcomeType.SUCCESS
        assert outcome.enqueued == 1
        [message] = work_queue.receive(10)
        assert parse_message(message.body).id == "https://example.com/linked"
        assert item_repository.query_statuses(["null", "None"]) == {}

    @pytest.mark.asyncio
    async def test_feed_fetch_failure_retries(self, pipeline, feed_fetcher, work_queue):
        feed_fetcher.fetch.side_effect = FeedFetchError("HTTP 500", feed_url=FEED_URL)

        outcome = await pipeline.process_message(delivered({"type": "rss", "id": FEED_URL}))

        assert outcome.outcome == MessageOutcomeType.RETRY
        assert work_queue.get_stats()["pending"] == 0

    @pytest.mark.asyncio
    async def test_unparseable_feed_fails(self, pipeline, feed_fetcher):
        feed_fetcher.fetch.side_effect = FeedFetchError(
            "not a feed", error_code=ErrorCode.FEED_PARSE_ERROR, recoverable=False
        )

        outcome = await pipeline.process_message(delivered({"type": "rss", "id": FEED_URL}))

        assert outcome.outcome == MessageOutcomeType.FAILED

    # Batches

    @pytest.mark.asyncio
    async def test_batch_failures_are_scoped(self, pipeline, embedding_client):
        async def vectors_or_fail(item_id, text, metadata):
            if item_id == "bad":
                raise AIError("model unavailable")
            return fake_vectors(item_id, text, metadata)

        embedding_client.generate_vectors.side_effect = vectors_or_fail

        result = await pipeline.process_batch([
            delivered(entry_body("good", "hello"), message_id=1),
            delivered(entry_body("bad", "hello"), message_id=2),
            delivered(entry_body("empty", ""), message_id=3),
            delivered("garbage", message_id=4),
        ])

        assert [o.message_id for o in result.outcomes] == [1, 2, 3, 4]
        assert result.succeeded == 1
        assert result.retried == 1
        assert result.skipped == 1
        assert result.invalid == 1
