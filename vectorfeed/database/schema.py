"""
VectorFeed Database Schema
==========================

SQLite schema for the two tables the pipeline owns:
- items: lifecycle record for every feed entry identity
- queue_messages: durable work queue used for feed discovery and entry fan-out
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the VectorFeed SQLite database."""

    TABLES = ("items", "queue_messages")

    def __init__(self, db_path: str = "data/vectorfeed.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables and indexes."""
        with sqlite3.connect(self.db_path) as conn:
            self._create_items_table(conn)
            self._create_queue_messages_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_items_table(self, conn: sqlite3.Connection) -> None:
        """Create items table keyed by entry identity."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id TEXT PRIMARY KEY NOT NULL,
                status TEXT CHECK (status IN ('queued', 'processing', 'processed', 'failed')),
                text TEXT,
                metadata TEXT,  -- JSON object
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_queue_messages_table(self, conn: sqlite3.Connection) -> None:
        """Create queue table for pending and leased messages."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS queue_messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                body TEXT NOT NULL,  -- JSON message
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'leased', 'dead')),
                attempts INTEGER NOT NULL DEFAULT 0,
                available_at REAL NOT NULL,  -- epoch seconds
                last_error TEXT,
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_items_status ON items(status)",
            "CREATE INDEX IF NOT EXISTS idx_items_updated ON items(updated_at)",
            "CREATE INDEX IF NOT EXISTS idx_queue_available ON queue_messages(status, available_at)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in self.TABLES:
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        try:
            conn = self.get_connection()
            try:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}
            finally:
                conn.close()

            missing = set(self.TABLES) - tables
            if missing:
                logger.error(f"Missing tables: {sorted(missing)}")
                return False

            logger.info("Database schema verification passed")
            return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/vectorfeed.db") -> None:
    """Convenience function to create database tables.

    Args:
        db_path: Path to SQLite database file
    """
    schema = DatabaseSchema(db_path)
    schema.create_tables()
