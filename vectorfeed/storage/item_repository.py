"""
Item Repository
===============

Upsert-based store of item lifecycle records keyed by entry identity.
Creation and update share one statement, so concurrent writers for the same
identity converge instead of conflicting.
"""

import json
from typing import List, Optional, Dict, Any, Iterable

from ..database.models import Item, ItemStatus
from ..database.connection import DatabaseConnection
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode

# Stays under SQLITE_MAX_VARIABLE_NUMBER on older builds (999)
QUERY_CHUNK_SIZE = 500

_UPSERT_SQL = """
    INSERT INTO items (id, status, text, metadata, created_at, updated_at)
    VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
    ON CONFLICT(id) DO UPDATE SET
        status = excluded.status,
        text = COALESCE(excluded.text, items.text),
        metadata = COALESCE(excluded.metadata, items.metadata),
        updated_at = CURRENT_TIMESTAMP
"""


def _chunks(values: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class ItemRepository:
    """Repository for Item lifecycle records."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize item repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("item_repository")
        self.settings = get_settings()

    def upsert(
        self,
        item_id: str,
        status: ItemStatus,
        text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Create or update an item in a single statement.

        Omitted text and metadata keep their stored values.

        Args:
            item_id: Entry identity
            status: New lifecycle status
            text: Canonical text (None keeps the stored text)
            metadata: Entry metadata (None keeps the stored metadata)

        Raises:
            DatabaseError: If the write fails
        """
        status = ItemStatus(status)
        max_length = self.settings.limits.max_text_length
        if text is not None and len(text) > max_length:
            text = text[:max_length]
        metadata_json = json.dumps(metadata, ensure_ascii=False) if metadata is not None else None

        try:
            with self.db.get_connection() as conn:
                conn.execute(_UPSERT_SQL, (item_id, status.value, text, metadata_json))
                conn.commit()
        except Exception as e:
            raise DatabaseError(
                f"Failed to upsert item {item_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={"item_id": item_id, "status": status.value},
            ) from e

        self.logger.debug(f"Upserted item {item_id} as {status.value}")

    def query_statuses(self, item_ids: List[str]) -> Dict[str, ItemStatus]:
        """Get stored statuses for a batch of identities.

        Args:
            item_ids: Identities to look up

        Returns:
            Mapping of identity to status for identities that exist
        """
        unique_ids = list(dict.fromkeys(item_ids))
        statuses: Dict[str, ItemStatus] = {}

        if not unique_ids:
            return statuses

        try:
            with self.db.get_connection() as conn:
                for chunk in _chunks(unique_ids, QUERY_CHUNK_SIZE):
                    placeholders = ','.join('?' * len(chunk))
                    rows = conn.execute(
                        f"SELECT id, status FROM items WHERE id IN ({placeholders})",
                        chunk
                    ).fetchall()
                    statuses.update({row['id']: ItemStatus(row['status']) for row in rows})
        except Exception as e:
            raise DatabaseError(
                f"Failed to query item statuses: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return statuses

    def get_item(self, item_id: str) -> Optional[Item]:
        """Get item by identity.

        Returns:
            Item model or None if not found
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM items WHERE id = ?",
                    (item_id,)
                ).fetchone()
        except Exception as e:
            raise DatabaseError(
                f"Failed to get item {item_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return Item.from_db_row(row) if row else None

    def list_by_status(self, status: ItemStatus, limit: Optional[int] = None) -> List[Item]:
        """List items in a status, oldest first."""
        query = "SELECT * FROM items WHERE status = ? ORDER BY created_at ASC"
        params: tuple = (ItemStatus(status).value,)
        if limit is not None:
            query += " LIMIT ?"
            params += (limit,)

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        except Exception as e:
            raise DatabaseError(
                f"Failed to list {ItemStatus(status).value} items: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return [Item.from_db_row(row) for row in rows]

    def delete_by_status(self, status: ItemStatus) -> int:
        """Delete every item in a status.

        Returns:
            Number of deleted rows
        """
        try:
            deleted = self.db.execute_update(
                "DELETE FROM items WHERE status = ?", (ItemStatus(status).value,)
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to delete {ItemStatus(status).value} items: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        self.logger.info(f"Deleted {deleted} {ItemStatus(status).value} items")
        return deleted

    def count_by_status(self) -> Dict[str, int]:
        """Get item counts per status."""
        try:
            rows = self.db.execute_query(
                "SELECT status, COUNT(*) AS count FROM items GROUP BY status"
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to count items: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        counts = {status.value: 0 for status in ItemStatus}
        counts.update({row['status']: row['count'] for row in rows})
        return counts
