"""
VectorFeed AI Module
====================

Embedding integration: provider abstraction and the client that turns item
text into vectors.
"""

from .providers.base import EmbeddingProvider, EmbeddingResult
from .providers.workers_ai_provider import WorkersAIProvider
from .embedding_client import EmbeddingClient
from ..utils.exceptions import AIError

__all__ = ["EmbeddingProvider", "EmbeddingResult", "WorkersAIProvider", "EmbeddingClient", "AIError"]
