"""
Embedding Providers Module
==========================

Embedding model provider implementations.
"""

from .base import EmbeddingProvider, EmbeddingProviderType, EmbeddingResult
from .workers_ai_provider import WorkersAIProvider

__all__ = [
    'EmbeddingProvider',
    'EmbeddingProviderType',
    'EmbeddingResult',
    'WorkersAIProvider',
]
