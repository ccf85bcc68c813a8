"""
Base Embedding Provider Interface
=================================

Abstract base class and result model for embedding model providers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List
from enum import Enum

from ...utils.exceptions import AIError, ErrorCode


class EmbeddingProviderType(str, Enum):
    """Available embedding provider types."""
    WORKERS_AI = "workers_ai"


@dataclass
class EmbeddingResult:
    """Embedding model output: one vector per model output row."""
    vectors: List[List[float]] = field(default_factory=list)
    shape: Optional[List[int]] = None
    provider: Optional[str] = None
    model_used: Optional[str] = None
    processing_time_ms: Optional[int] = None

    @property
    def count(self) -> int:
        return len(self.vectors)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding provider implementations."""

    def __init__(self, model_name: str, provider_type: EmbeddingProviderType):
        """Initialize embedding provider.

        Args:
            model_name: Model to use for requests
            provider_type: Type of provider
        """
        self.model_name = model_name
        self.provider_type = provider_type

    @abstractmethod
    async def embed(self, texts: List[str]) -> EmbeddingResult:
        """Embed a batch of texts.

        Args:
            texts: Texts to embed

        Returns:
            EmbeddingResult with the model's vectors

        Raises:
            AIError: If the model call fails
        """
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test API connection and authentication.

        Returns:
            True if connection successful, False otherwise
        """
        pass

    def _validate_vectors(self, data) -> List[List[float]]:
        """Check the model response is a list of numeric vectors."""
        if not isinstance(data, list) or not all(
            isinstance(row, list) and row and all(isinstance(v, (int, float)) for v in row)
            for row in data
        ):
            raise AIError(
                "Embedding response is not a list of numeric vectors",
                provider=self.provider_type.value,
                model=self.model_name,
                error_code=ErrorCode.AI_INVALID_RESPONSE,
            )
        return [[float(v) for v in row] for row in data]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model_name})"
