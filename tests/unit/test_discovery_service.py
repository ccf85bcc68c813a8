"""
Tests for DiscoveryService: trigger, replay, clean and feed previews.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import SAMPLE_RSS_FEED
from vectorfeed.database.models import ItemStatus
from vectorfeed.ingestion.feed_parser import parse_feed
from vectorfeed.processing.messages import parse_message, FeedDiscoveryMessage, EntryProcessingMessage
from vectorfeed.services.discovery_service import DiscoveryService
from vectorfeed.utils.exceptions import FeedFetchError, ErrorCode

FEED_URL = "https://example.com/rss.xml"


@pytest.fixture
def service(db_connection, work_queue, item_repository):
    return DiscoveryService(db_connection, work_queue=work_queue, item_repository=item_repository)


class TestTriggerDiscovery:

    def test_one_message_per_feed(self, service, work_queue):
        feeds = ["https://example.com/a.xml", "https://example.org/b.xml"]

        assert service.trigger_discovery(feeds) == 2

        messages = [parse_message(m.body) for m in work_queue.receive(10)]
        assert all(isinstance(m, FeedDiscoveryMessage) for m in messages)
        assert [m.id for m in messages] == feeds

    def test_default_feed_list(self, service, work_queue):
        count = service.trigger_discovery()

        assert count == len(service.settings.feeds)
        assert work_queue.get_stats()["pending"] == count

    def test_invalid_urls_skipped(self, service):
        assert service.trigger_discovery(["not a url", "javascript:alert(1)", FEED_URL]) == 1


class TestReplayAndClean:

    def test_replay_round_trip(self, service, item_repository, work_queue):
        metadata = {"url": "https://example.com/a", "title": "A", "categories": [{"label": "News", "url": None}]}
        item_repository.upsert("queued-1", ItemStatus.QUEUED, text="stored text", metadata=metadata)
        item_repository.upsert("done-1", ItemStatus.PROCESSED, text="done", metadata={})

        assert service.replay() == 1

        [delivered] = work_queue.receive(10)
        message = parse_message(delivered.body)
        assert isinstance(message, EntryProcessingMessage)
        assert message.id == "queued-1"
        assert message.data.text == "stored text"
        assert message.data.metadata == metadata

    def test_replay_nothing_queued(self, service):
        assert service.replay() == 0

    def test_clean_deletes_only_queued(self, service, item_repository):
        item_repository.upsert("q", ItemStatus.QUEUED)
        item_repository.upsert("p", ItemStatus.PROCESSING)

        assert service.clean() == 1
        assert item_repository.query_statuses(["q", "p"]) == {"p": ItemStatus.PROCESSING}


class TestFetchSingleFeed:

    @pytest.mark.asyncio
    async def test_preview_reports_new_entries(self, service, item_repository, work_queue):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(return_value=parse_feed(SAMPLE_RSS_FEED, FEED_URL))
        service.feed_fetcher = fetcher
        item_repository.upsert("story-1", ItemStatus.PROCESSED)

        summary = await service.fetch_single_feed(FEED_URL, sample_size=5)

        assert summary.success is True
        assert summary.title == "Example News"
        assert summary.format == "rss"
        assert summary.entry_count == 2
        assert summary.new_entries == 1
        assert summary.sample_entries[0]["status"] == "processed"
        assert summary.sample_entries[1]["status"] is None
        assert work_queue.get_stats()["pending"] == 0

    @pytest.mark.asyncio
    async def test_preview_skips_entries_without_identity(self, service):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(return_value=parse_feed(
            """<rss version="2.0"><channel><title>Mixed</title>
              <item><title>No id</title><description>One</description></item>
              <item><title>Linked</title><link>https://example.com/linked</link></item>
            </channel></rss>""",
            FEED_URL,
        ))
        service.feed_fetcher = fetcher

        summary = await service.fetch_single_feed(FEED_URL)

        assert summary.entry_count == 2
        assert summary.new_entries == 1
        assert [sample["id"] for sample in summary.sample_entries] == ["https://example.com/linked"]

    @pytest.mark.asyncio
    async def test_preview_failure(self, service):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(side_effect=FeedFetchError(
            "HTTP 404", feed_url=FEED_URL, error_code=ErrorCode.FEED_NOT_FOUND
        ))
        service.feed_fetcher = fetcher

        summary = await service.fetch_single_feed(FEED_URL)

        assert summary.success is False
        assert summary.error_message
