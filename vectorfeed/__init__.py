"""
VectorFeed - Feed Ingestion and Embedding Pipeline
==================================================

Ingests syndicated feeds, deduplicates and enriches entries, embeds them and
stores the vectors in a searchable index, tracking each item through a
queued -> processing -> processed lifecycle.

Main Components:
- Database: SQLite item store and durable work queue with connection pooling
- Configuration: environment variables with Pydantic validation
- Ingestion: RSS/Atom/RDF parsing, entry normalization, publisher augmentation
- AI Integration: Cloudflare Workers AI embeddings via AI Gateway
- Storage: item repository and Cloudflare Vectorize index
"""

__version__ = "1.0.0"
__author__ = "VectorFeed Development Team"
__description__ = "Feed ingestion and embedding pipeline"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import VectorFeedError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "VectorFeedError",
]
