"""
VectorFeed Ingestion Module
===========================

Feed ingestion and content components.

This module handles:
- RSS/Atom/RDF feed fetching and parsing into canonical entries
- Entry identity, text and metadata extraction
- Publisher page augmentation
"""

from .feed_fetcher import FeedFetcher
from .feed_parser import parse_feed
from .entry_normalizer import generate_id, parse_content, extract_metadata
from .content_augmenter import ContentAugmenter, PublisherRule, PUBLISHER_RULES

__all__ = [
    'FeedFetcher',
    'parse_feed',
    'generate_id',
    'parse_content',
    'extract_metadata',
    'ContentAugmenter',
    'PublisherRule',
    'PUBLISHER_RULES',
]
