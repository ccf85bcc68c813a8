"""
Processing Pipeline Orchestrator
================================

Classifies queue messages and drives the ingestion components for each one.

Feed discovery messages fetch a feed and fan new entries out as entry
processing messages. Entry processing messages move an item through
``queued -> processing -> processed``: the ``processed`` upsert happens only
after the vector index commit, so a failure in between leaves the item in
``processing`` and the message is handed back for redelivery. An item is
marked ``failed`` only once its message has no deliveries left.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from ..database.models import ItemStatus
from ..database.connection import DatabaseConnection
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.exceptions import MessageValidationError, is_retryable_error

from ..ingestion.feed_fetcher import FeedFetcher
from ..ingestion.entry_normalizer import generate_id, parse_content, extract_metadata
from ..ingestion.feed_parser import text_of
from ..ingestion.content_augmenter import ContentAugmenter
from ..ai.embedding_client import EmbeddingClient
from ..storage.item_repository import ItemRepository
from ..storage.vector_store import VectorStore, VectorizeIndex
from .messages import FeedDiscoveryMessage, EntryProcessingMessage, EntryData, parse_message
from .work_queue import WorkQueue, QueuedMessage

# Statuses that make discovery skip an entry
SKIP_STATUSES = frozenset({ItemStatus.PROCESSED, ItemStatus.QUEUED, ItemStatus.FAILED})


class MessageOutcomeType(str, Enum):
    """What the consumer should do with a delivered message."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    RETRY = "retry"
    FAILED = "failed"
    INVALID = "invalid"


@dataclass
class MessageOutcome:
    """Result of processing one delivered message."""
    message_id: int
    outcome: MessageOutcomeType
    message_type: Optional[str] = None
    target_id: Optional[str] = None
    enqueued: int = 0
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Result of processing one batch of delivered messages."""
    outcomes: List[MessageOutcome] = field(default_factory=list)
    processing_time_seconds: float = 0.0

    def _count(self, outcome: MessageOutcomeType) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self._count(MessageOutcomeType.SUCCESS)

    @property
    def skipped(self) -> int:
        return self._count(MessageOutcomeType.SKIPPED)

    @property
    def retried(self) -> int:
        return self._count(MessageOutcomeType.RETRY)

    @property
    def failed(self) -> int:
        return self._count(MessageOutcomeType.FAILED)

    @property
    def invalid(self) -> int:
        return self._count(MessageOutcomeType.INVALID)

    @property
    def entries_enqueued(self) -> int:
        return sum(o.enqueued for o in self.outcomes)


class ProcessingPipeline:
    """Queue message orchestrator for discovery and entry processing."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        work_queue: Optional[WorkQueue] = None,
        feed_fetcher: Optional[FeedFetcher] = None,
        augmenter: Optional[ContentAugmenter] = None,
        embedding_client: Optional[EmbeddingClient] = None,
        vector_store: Optional[VectorStore] = None,
        item_repository: Optional[ItemRepository] = None,
    ):
        """Initialize processing pipeline.

        Collaborators default to the production implementations built from
        settings.

        Args:
            db_connection: Database connection manager
            work_queue: Queue used to fan out entry messages
            feed_fetcher: Feed fetcher
            augmenter: Publisher content augmenter
            embedding_client: Embedding client
            vector_store: Vector index
            item_repository: Item lifecycle store
        """
        self.db = db_connection
        self.settings = get_settings()
        self.logger = get_logger_for_component("pipeline")

        self.work_queue = work_queue or WorkQueue(db_connection)
        self.feed_fetcher = feed_fetcher or FeedFetcher()
        self.augmenter = augmenter or ContentAugmenter()
        self.embedding_client = embedding_client or EmbeddingClient()
        self.vector_store = vector_store or VectorizeIndex()
        self.items = item_repository or ItemRepository(db_connection)

        self.max_attempts = self.settings.processing.max_attempts

    async def process_batch(self, messages: List[QueuedMessage]) -> BatchResult:
        """Process a batch of delivered messages.

        Messages run concurrently up to ``processing.max_concurrent_messages``
        (1 means sequential). A failure is scoped to its own message.

        Args:
            messages: Leased queue messages

        Returns:
            BatchResult with one outcome per message, in input order
        """
        start_time = datetime.now(timezone.utc)
        self.logger.info(f"Processing {len(messages)} messages")

        semaphore = asyncio.Semaphore(self.settings.processing.max_concurrent_messages)

        async def process_with_semaphore(message: QueuedMessage) -> MessageOutcome:
            async with semaphore:
                return await self.process_message(message)

        outcomes = await asyncio.gather(*(process_with_semaphore(m) for m in messages))

        result = BatchResult(
            outcomes=list(outcomes),
            processing_time_seconds=(datetime.now(timezone.utc) - start_time).total_seconds(),
        )
        self.logger.info(
            f"Batch complete: {result.succeeded} succeeded, {result.skipped} skipped, "
            f"{result.retried} to retry, {result.failed} failed, {result.invalid} invalid, "
            f"{result.entries_enqueued} entries enqueued in {result.processing_time_seconds:.2f}s"
        )
        return result

    async def process_message(self, delivered: QueuedMessage) -> MessageOutcome:
        """Parse, dispatch and classify the outcome of one delivered message."""
        try:
            message = parse_message(delivered.body)
        except MessageValidationError as e:
            self.logger.error(f"Dropping malformed message {delivered.id}: {e}", extra=e.to_dict())
            return MessageOutcome(
                message_id=delivered.id,
                outcome=MessageOutcomeType.INVALID,
                error=str(e),
            )

        outcome = MessageOutcome(
            message_id=delivered.id,
            outcome=MessageOutcomeType.SUCCESS,
            message_type=message.type,
            target_id=message.id,
        )

        try:
            if isinstance(message, FeedDiscoveryMessage):
                outcome.enqueued = await self.process_feed_message(message)
            else:
                processed = await self.process_entry_message(message)
                if not processed:
                    outcome.outcome = MessageOutcomeType.SKIPPED

        except Exception as e:
            outcome.error = str(e)

            if is_retryable_error(e) and delivered.attempts < self.max_attempts:
                self.logger.warning(
                    f"{message.type} message {message.id} failed on attempt "
                    f"{delivered.attempts}/{self.max_attempts}, will retry: {e}"
                )
                outcome.outcome = MessageOutcomeType.RETRY
            else:
                self.logger.error(
                    f"{message.type} message {message.id} failed permanently after "
                    f"{delivered.attempts} attempt(s): {e}",
                    exc_info=True,
                )
                outcome.outcome = MessageOutcomeType.FAILED
                if isinstance(message, EntryProcessingMessage):
                    self._mark_failed(message.id)

        return outcome

    async def process_feed_message(self, message: FeedDiscoveryMessage) -> int:
        """Fetch a feed and enqueue one entry message per new entry.

        Entries whose identity is already processed, queued or failed are
        skipped, as are repeated identities within the same feed and entries
        with no identity at all.

        Returns:
            Number of entry messages enqueued
        """
        self.logger.info(f"Fetching feed: {message.id}")

        with PerformanceLogger(self.logger, "feed discovery", feed_url=message.id):
            feed = await self.feed_fetcher.fetch(message.id)

            identities = [generate_id(entry) for entry in feed.entries]
            existing = self.items.query_statuses([i for i in identities if i is not None])

            seen = set()
            outgoing: List[EntryProcessingMessage] = []

            for entry, identity in zip(feed.entries, identities):
                if identity is None:
                    self.logger.warning(
                        f"Skipping entry without id, guid or link in {message.id}: "
                        f"{text_of(entry.title) or 'untitled'}"
                    )
                    continue
                status = existing.get(identity)
                if status in SKIP_STATUSES:
                    self.logger.debug(f"Already {status.value}: {identity}")
                    continue
                if identity in seen:
                    self.logger.debug(f"Duplicate identity within feed: {identity}")
                    continue
                seen.add(identity)

                outgoing.append(EntryProcessingMessage(
                    id=identity,
                    data=EntryData(
                        text=parse_content(entry),
                        metadata=extract_metadata(entry).to_dict(),
                    ),
                ))

            enqueued = self.work_queue.send_batch(outgoing)

        self.logger.info(
            f"Feed {message.id}: {len(feed.entries)} entries, {enqueued} enqueued, "
            f"{len(feed.entries) - enqueued} skipped"
        )
        return enqueued

    async def process_entry_message(self, message: EntryProcessingMessage) -> bool:
        """Embed and index one entry.

        Returns:
            False when the entry has no text and was skipped without writes,
            True once the item reached ``processed``
        """
        item_id = message.id
        text = message.data.text
        metadata = message.data.metadata

        if not text:
            self.logger.info(f"No text for {item_id}, skipping")
            return False

        self.logger.debug(f"Processing entry: {item_id}")
        self.items.upsert(item_id, ItemStatus.QUEUED, text=text, metadata=metadata)

        query_text = text
        has_extended_content = False
        if message.url:
            augmented = await self.augmenter.augment(message.url, text)
            query_text = augmented.query_text
            has_extended_content = augmented.extended

        self.items.upsert(item_id, ItemStatus.PROCESSING, text=query_text)

        vectors = await self.embedding_client.generate_vectors(
            item_id, query_text, {**metadata, "hasExtendedContent": has_extended_content}
        )
        await self.vector_store.upsert(vectors)

        self.items.upsert(item_id, ItemStatus.PROCESSED)
        self.logger.info(
            f"Processed {item_id} ({len(vectors)} vector(s), extended={has_extended_content})"
        )
        return True

    def _mark_failed(self, item_id: str) -> None:
        try:
            self.items.upsert(item_id, ItemStatus.FAILED)
        except Exception as e:
            self.logger.error(f"Could not mark {item_id} as failed: {e}")

