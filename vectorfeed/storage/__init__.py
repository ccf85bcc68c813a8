"""
VectorFeed Storage Layer
========================

Repository and index implementations for data access abstraction.

This module provides:
- Item repository for lifecycle records
- Vector store abstraction with a Cloudflare Vectorize implementation
"""

from .item_repository import ItemRepository
from .vector_store import VectorStore, VectorizeIndex

__all__ = [
    "ItemRepository",
    "VectorStore",
    "VectorizeIndex",
]
