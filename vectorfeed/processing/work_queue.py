"""
Work Queue
==========

Durable at-least-once work queue backed by the ``queue_messages`` table.

Received messages are leased for a visibility timeout; a message that is
neither acknowledged nor retried before its lease expires is delivered
again. Each delivery increments ``attempts`` and a message that has used
up ``max_attempts`` deliveries is moved to status ``dead``.
"""

import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from ..database.connection import DatabaseConnection
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import QueueError, ErrorCode
from .messages import FeedDiscoveryMessage, EntryProcessingMessage, serialize_message

Message = Union[FeedDiscoveryMessage, EntryProcessingMessage]


@dataclass
class QueuedMessage:
    """A leased message as handed to the consumer."""
    id: int
    body: str
    attempts: int


class WorkQueue:
    """SQLite-backed message queue with leases and dead-lettering."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        visibility_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        """Initialize work queue.

        Args:
            db_connection: Database connection manager
            visibility_timeout: Lease duration in seconds (default from config)
            max_attempts: Deliveries before dead-lettering (default from config)
        """
        settings = get_settings()
        self.db = db_connection
        self.visibility_timeout = visibility_timeout or settings.processing.visibility_timeout_seconds
        self.max_attempts = max_attempts or settings.processing.max_attempts
        self.logger = get_logger_for_component("work_queue")

    def send(self, message: Message, delay_seconds: float = 0.0) -> int:
        """Enqueue one message.

        Returns:
            Queue message ID

        Raises:
            QueueError: If the message cannot be stored
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO queue_messages (body, available_at) VALUES (?, ?)",
                    (serialize_message(message), time.time() + delay_seconds)
                )
                conn.commit()
                return cursor.lastrowid
        except Exception as e:
            raise QueueError(
                f"Failed to send {message.type} message {message.id}: {e}",
                error_code=ErrorCode.QUEUE_SEND_FAILED,
            ) from e

    def send_batch(self, messages: Iterable[Message]) -> int:
        """Enqueue several messages in one transaction.

        Returns:
            Number of messages enqueued
        """
        now = time.time()
        rows = [(serialize_message(message), now) for message in messages]
        if not rows:
            return 0

        try:
            with self.db.transaction() as conn:
                conn.executemany(
                    "INSERT INTO queue_messages (body, available_at) VALUES (?, ?)",
                    rows
                )
        except Exception as e:
            raise QueueError(
                f"Failed to send batch of {len(rows)} messages: {e}",
                error_code=ErrorCode.QUEUE_SEND_FAILED,
            ) from e

        self.logger.debug(f"Enqueued {len(rows)} messages")
        return len(rows)

    def receive(self, batch_size: int = 10) -> List[QueuedMessage]:
        """Lease up to ``batch_size`` available messages, oldest first.

        Expired leases are redelivered unless the message has already used
        its last attempt, in which case it is dead-lettered.
        """
        now = time.time()

        try:
            with self.db.transaction() as conn:
                expired = conn.execute(
                    """
                    UPDATE queue_messages
                    SET status = 'dead', last_error = 'Lease expired on final attempt'
                    WHERE status = 'leased' AND available_at <= ? AND attempts >= ?
                    """,
                    (now, self.max_attempts)
                ).rowcount
                if expired:
                    self.logger.warning(f"Dead-lettered {expired} messages with expired final leases")

                rows = conn.execute(
                    """
                    SELECT id, body, attempts FROM queue_messages
                    WHERE status IN ('pending', 'leased') AND available_at <= ?
                    ORDER BY id
                    LIMIT ?
                    """,
                    (now, batch_size)
                ).fetchall()

                conn.executemany(
                    """
                    UPDATE queue_messages
                    SET status = 'leased', attempts = attempts + 1, available_at = ?
                    WHERE id = ?
                    """,
                    [(now + self.visibility_timeout, row['id']) for row in rows]
                )
        except Exception as e:
            raise QueueError(
                f"Failed to receive messages: {e}",
                error_code=ErrorCode.QUEUE_RECEIVE_FAILED,
            ) from e

        return [
            QueuedMessage(id=row['id'], body=row['body'], attempts=row['attempts'] + 1)
            for row in rows
        ]

    def ack(self, message_id: int) -> None:
        """Acknowledge (delete) a processed message."""
        try:
            self.db.execute_update("DELETE FROM queue_messages WHERE id = ?", (message_id,))
        except Exception as e:
            raise QueueError(
                f"Failed to ack message: {e}",
                message_id=message_id,
                error_code=ErrorCode.QUEUE_ACK_FAILED,
            ) from e

    def retry(self, message_id: int, delay_seconds: float = 0.0, error: Optional[str] = None) -> bool:
        """Release a leased message for redelivery after ``delay_seconds``.

        Returns:
            True if the message was requeued, False if it was dead-lettered
            because it has no attempts left
        """
        try:
            with self.db.transaction() as conn:
                row = conn.execute(
                    "SELECT attempts FROM queue_messages WHERE id = ?", (message_id,)
                ).fetchone()
                if row is None:
                    return False

                if row['attempts'] >= self.max_attempts:
                    conn.execute(
                        "UPDATE queue_messages SET status = 'dead', last_error = ? WHERE id = ?",
                        (error, message_id)
                    )
                    requeued = False
                else:
                    conn.execute(
                        """
                        UPDATE queue_messages
                        SET status = 'pending', available_at = ?, last_error = ?
                        WHERE id = ?
                        """,
                        (time.time() + delay_seconds, error, message_id)
                    )
                    requeued = True
        except Exception as e:
            raise QueueError(
                f"Failed to retry message: {e}",
                message_id=message_id,
                error_code=ErrorCode.QUEUE_ACK_FAILED,
            ) from e

        if not requeued:
            self.logger.warning(f"Message {message_id} dead-lettered after {row['attempts']} attempts")
        return requeued

    def dead_letter(self, message_id: int, error: Optional[str] = None) -> None:
        """Move a message to the dead-letter state without further deliveries."""
        try:
            self.db.execute_update(
                "UPDATE queue_messages SET status = 'dead', last_error = ? WHERE id = ?",
                (error, message_id)
            )
        except Exception as e:
            raise QueueError(
                f"Failed to dead-letter message: {e}",
                message_id=message_id,
                error_code=ErrorCode.QUEUE_ACK_FAILED,
            ) from e

    def get_stats(self) -> Dict[str, int]:
        """Get message counts per queue status."""
        rows = self.db.execute_query(
            "SELECT status, COUNT(*) AS count FROM queue_messages GROUP BY status"
        )
        counts = {"pending": 0, "leased": 0, "dead": 0}
        counts.update({row['status']: row['count'] for row in rows})
        return counts
