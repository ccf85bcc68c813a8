"""
Discovery Service
=================

Administrative operations on the work queue and item store, shared by the
CLI and any scheduler:

- trigger discovery: one feed discovery message per configured feed
- replay: re-enqueue stored ``queued`` items as entry processing messages
- clean: delete stored ``queued`` items
- preview a single feed without enqueueing anything
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..database.models import ItemStatus
from ..database.connection import DatabaseConnection
from ..config.settings import get_settings
from ..ingestion.feed_fetcher import FeedFetcher
from ..ingestion.entry_normalizer import generate_id, extract_metadata
from ..processing.messages import FeedDiscoveryMessage, EntryProcessingMessage, EntryData
from ..processing.work_queue import WorkQueue
from ..processing.pipeline import SKIP_STATUSES
from ..storage.item_repository import ItemRepository
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator
from ..utils.exceptions import FeedError, ValidationError


@dataclass
class FeedFetchSummary:
    """Summary of a single feed preview."""
    url: str
    success: bool
    title: Optional[str] = None
    format: Optional[str] = None
    entry_count: int = 0
    new_entries: int = 0
    error_message: Optional[str] = None
    sample_entries: List[Dict[str, Any]] = field(default_factory=list)


class DiscoveryService:
    """Enqueues discovery and replay work; cleans queued items."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        work_queue: Optional[WorkQueue] = None,
        item_repository: Optional[ItemRepository] = None,
        feed_fetcher: Optional[FeedFetcher] = None,
    ):
        """Initialize the discovery service.

        Args:
            db_connection: Database connection manager
            work_queue: Work queue (default built on db_connection)
            item_repository: Item store (default built on db_connection)
            feed_fetcher: Feed fetcher used for previews
        """
        self.settings = get_settings()
        self.work_queue = work_queue or WorkQueue(db_connection)
        self.items = item_repository or ItemRepository(db_connection)
        self.feed_fetcher = feed_fetcher
        self.logger = get_logger_for_component("discovery_service")

    def trigger_discovery(self, feeds: Optional[List[str]] = None) -> int:
        """Enqueue one feed discovery message per feed.

        Invalid feed URLs are logged and skipped.

        Args:
            feeds: Feed URLs (default: configured feeds)

        Returns:
            Number of messages enqueued
        """
        feeds = self.settings.feeds if feeds is None else feeds

        messages = []
        for feed_url in feeds:
            try:
                URLValidator.validate_feed_url(feed_url)
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid feed URL {feed_url!r}: {e}")
                continue
            messages.append(FeedDiscoveryMessage(id=feed_url))

        enqueued = self.work_queue.send_batch(messages)
        self.logger.info(f"Triggered discovery for {enqueued} feeds")
        return enqueued

    def replay(self) -> int:
        """Re-enqueue every stored ``queued`` item with its stored text and metadata.

        Returns:
            Number of messages enqueued
        """
        queued_items = self.items.list_by_status(ItemStatus.QUEUED)

        messages = [
            EntryProcessingMessage(
                id=item.id,
                data=EntryData(text=item.text or "", metadata=item.metadata),
            )
            for item in queued_items
        ]

        enqueued = self.work_queue.send_batch(messages)
        self.logger.info(f"Replayed {enqueued} queued items")
        return enqueued

    def clean(self) -> int:
        """Delete stored ``queued`` items.

        Returns:
            Number of deleted items
        """
        return self.items.delete_by_status(ItemStatus.QUEUED)

    async def fetch_single_feed(self, url: str, sample_size: int = 5) -> FeedFetchSummary:
        """Fetch a feed and report what discovery would enqueue, without enqueueing.

        Args:
            url: Feed URL
            sample_size: Number of sample entries to include

        Returns:
            FeedFetchSummary with results
        """
        fetcher = self.feed_fetcher or FeedFetcher()

        try:
            feed = await fetcher.fetch(url)
        except (FeedError, ValidationError) as e:
            return FeedFetchSummary(url=url, success=False, error_message=e.user_message)

        identified = []
        for entry in feed.entries:
            identity = generate_id(entry)
            if identity is None:
                self.logger.warning(f"Entry without id, guid or link in {url} would be skipped")
                continue
            identified.append((entry, identity))

        identities = [identity for _, identity in identified]
        statuses = self.items.query_statuses(identities)

        samples = []
        for entry, identity in identified[:sample_size]:
            metadata = extract_metadata(entry)
            status = statuses.get(identity)
            samples.append({
                "id": identity,
                "title": metadata.title,
                "url": metadata.url,
                "published": metadata.published,
                "status": status.value if status else None,
            })

        return FeedFetchSummary(
            url=url,
            success=True,
            title=feed.title,
            format=feed.format.value,
            entry_count=len(feed.entries),
            new_entries=sum(
                1 for identity in set(identities)
                if statuses.get(identity) not in SKIP_STATUSES
            ),
            sample_entries=samples,
        )
