"""
Embedding Client
================

Turns finalized item text into Vector records ready for the vector index.
"""

from typing import Any, Dict, List, Optional

from .providers.base import EmbeddingProvider
from .providers.workers_ai_provider import WorkersAIProvider
from ..database.models import Vector
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import AIError, ErrorCode


class EmbeddingClient:
    """Pairs embedding model outputs with item identity and metadata."""

    def __init__(self, provider: Optional[EmbeddingProvider] = None):
        """Initialize embedding client.

        Args:
            provider: Embedding provider (default: Workers AI from settings)
        """
        self.settings = get_settings()
        self.provider = provider or self._create_default_provider()
        self.logger = get_logger_for_component("embedding_client")

    def _create_default_provider(self) -> EmbeddingProvider:
        ai = self.settings.ai
        return WorkersAIProvider(
            account_id=ai.cloudflare_account_id,
            api_token=ai.cloudflare_api_token,
            gateway_id=ai.gateway_id,
            model_name=ai.embedding_model,
            gateway_base_url=ai.gateway_base_url,
            skip_cache=ai.skip_cache,
            cache_ttl=ai.cache_ttl,
            timeout=self.settings.limits.request_timeout,
        )

    async def generate_vectors(self, item_id: str, text: str, metadata: Dict[str, Any]) -> List[Vector]:
        """Embed text and pair every returned vector with the same id and metadata.

        A model may return more than one vector per input, so the result can
        hold several vectors for a single item.

        Raises:
            AIError: If the model call fails
        """
        result = await self.provider.embed([text])

        if not result.vectors:
            raise AIError(
                f"Embedding model returned no vectors for {item_id}",
                provider=self.provider.provider_type.value,
                model=self.provider.model_name,
                error_code=ErrorCode.AI_INVALID_RESPONSE,
            )

        vectors = [
            Vector(id=str(item_id), values=values, metadata=metadata)
            for values in result.vectors
        ]

        self.logger.debug(
            f"Generated {len(vectors)} vector(s) for {item_id}",
            extra={"item_id": item_id, "model": result.model_used},
        )
        return vectors
