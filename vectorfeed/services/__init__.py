"""
VectorFeed Services
===================

Shared service layer for administrative operations used by the CLI and schedulers.
"""

from .discovery_service import DiscoveryService, FeedFetchSummary

__all__ = [
    'DiscoveryService',
    'FeedFetchSummary',
]
