"""
Queue Consumer
==============

Receives leased batches from the work queue, runs them through the
pipeline, and settles each message according to its outcome:

- success, skipped, invalid: acknowledged
- retry: released for redelivery with exponential backoff
- failed: dead-lettered
"""

import asyncio
from typing import Dict, Optional

from ..database.connection import DatabaseConnection
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import QueueError, handle_exception
from .pipeline import ProcessingPipeline, BatchResult, MessageOutcome, MessageOutcomeType
from .work_queue import WorkQueue, QueuedMessage

MAX_RETRY_DELAY_SECONDS = 3600.0


class QueueConsumer:
    """Batch consumer driving the processing pipeline."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        pipeline: Optional[ProcessingPipeline] = None,
        work_queue: Optional[WorkQueue] = None,
    ):
        self.settings = get_settings()
        self.logger = get_logger_for_component("consumer")
        self.work_queue = work_queue or WorkQueue(db_connection)
        self.pipeline = pipeline or ProcessingPipeline(db_connection, work_queue=self.work_queue)

    def retry_delay(self, attempts: int) -> float:
        """Backoff before the next delivery after ``attempts`` deliveries."""
        base = self.settings.processing.retry_delay_seconds
        return min(base * (2 ** max(attempts - 1, 0)), MAX_RETRY_DELAY_SECONDS)

    async def run_once(self, batch_size: Optional[int] = None) -> BatchResult:
        """Receive, process and settle one batch.

        Returns:
            BatchResult (empty when no messages were available)
        """
        messages = self.work_queue.receive(batch_size or self.settings.processing.batch_size)
        if not messages:
            return BatchResult()

        result = await self.pipeline.process_batch(messages)

        delivered: Dict[int, QueuedMessage] = {m.id: m for m in messages}
        for outcome in result.outcomes:
            self._settle(outcome, delivered[outcome.message_id])

        return result

    def _settle(self, outcome: MessageOutcome, message: QueuedMessage) -> None:
        try:
            if outcome.outcome == MessageOutcomeType.RETRY:
                self.work_queue.retry(
                    message.id,
                    delay_seconds=self.retry_delay(message.attempts),
                    error=outcome.error,
                )
            elif outcome.outcome == MessageOutcomeType.FAILED:
                self.work_queue.dead_letter(message.id, error=outcome.error)
            else:
                self.work_queue.ack(message.id)
        except QueueError as e:
            # The lease expires and the message is redelivered
            self.logger.error(f"Failed to settle message {message.id}: {e}", extra=e.to_dict())

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None,
                          max_batches: Optional[int] = None) -> int:
        """Poll the queue until stopped.

        Args:
            stop_event: Set to stop after the current batch
            max_batches: Stop after this many non-empty batches

        Returns:
            Number of non-empty batches processed
        """
        stop_event = stop_event or asyncio.Event()
        poll_interval = self.settings.processing.poll_interval_seconds
        batches = 0

        self.logger.info("Queue consumer started")

        while not stop_event.is_set():
            try:
                result = await self.run_once()
            except Exception as e:
                error = handle_exception(e, self.logger, "consume batch")
                if not error.recoverable:
                    raise
                result = BatchResult()

            if result.outcomes:
                batches += 1
                if max_batches is not None and batches >= max_batches:
                    break
                continue

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass

        self.logger.info(f"Queue consumer stopped after {batches} batches")
        return batches
