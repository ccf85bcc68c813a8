"""
Cloudflare Workers AI Provider
==============================

Embedding provider calling a Workers AI text embedding model through the
Cloudflare AI Gateway, with gateway response caching enabled.
"""

import asyncio
import ssl
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import aiohttp
import certifi

from .base import EmbeddingProvider, EmbeddingProviderType, EmbeddingResult
from ...utils.exceptions import AIError, ErrorCode
from ...utils.logging import get_logger_for_component


class WorkersAIProvider(EmbeddingProvider):
    """Workers AI embedding provider routed through the AI Gateway."""

    DEFAULT_MODEL = "@cf/baai/bge-base-en-v1.5"
    DEFAULT_GATEWAY_URL = "https://gateway.ai.cloudflare.com/v1"

    def __init__(
        self,
        account_id: str,
        api_token: str,
        gateway_id: str,
        model_name: Optional[str] = None,
        gateway_base_url: str = DEFAULT_GATEWAY_URL,
        skip_cache: bool = False,
        cache_ttl: int = 172800,
        timeout: int = 30,
    ):
        """Initialize Workers AI provider.

        Args:
            account_id: Cloudflare account ID
            api_token: Cloudflare API token with Workers AI access
            gateway_id: AI Gateway the requests are routed through
            model_name: Embedding model identifier
            gateway_base_url: AI Gateway base URL
            skip_cache: Bypass the gateway response cache
            cache_ttl: Gateway cache TTL in seconds
            timeout: Request timeout in seconds

        Raises:
            AIError: If credentials are missing
        """
        if not account_id or not api_token:
            raise AIError(
                "Cloudflare account ID and API token are required",
                provider=EmbeddingProviderType.WORKERS_AI.value,
                error_code=ErrorCode.AI_INVALID_CREDENTIALS,
                recoverable=False,
            )

        super().__init__(model_name or self.DEFAULT_MODEL, EmbeddingProviderType.WORKERS_AI)

        self.account_id = account_id
        self.api_token = api_token
        self.gateway_id = gateway_id
        self.gateway_base_url = gateway_base_url.rstrip("/")
        self.skip_cache = skip_cache
        self.cache_ttl = cache_ttl
        self.timeout = timeout

        self.logger = get_logger_for_component("workers_ai_provider")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @property
    def endpoint(self) -> str:
        return f"{self.gateway_base_url}/{self.account_id}/{self.gateway_id}/workers-ai/{self.model_name}"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
            "cf-aig-skip-cache": "true" if self.skip_cache else "false",
            "cf-aig-cache-ttl": str(self.cache_ttl),
        }

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Session scoped to a single model call."""
        connector = aiohttp.TCPConnector(ssl=self.ssl_context)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
            yield session

    async def embed(self, texts: List[str]) -> EmbeddingResult:
        """Embed texts with the configured model.

        Args:
            texts: Texts to embed

        Returns:
            EmbeddingResult with one vector per model output row

        Raises:
            AIError: On HTTP, network, timeout or response shape failures
        """
        start_time = time.time()
        payload = {"text": texts}

        try:
            async with self.get_session() as session:
                async with session.post(self.endpoint, headers=self._headers(), json=payload) as response:
                    if response.status in (401, 403):
                        raise AIError(
                            f"Workers AI authentication failed: HTTP {response.status}",
                            provider=self.provider_type.value,
                            model=self.model_name,
                            error_code=ErrorCode.AI_AUTHENTICATION,
                        )
                    if response.status == 429:
                        raise AIError(
                            "Workers AI rate limit exceeded",
                            provider=self.provider_type.value,
                            model=self.model_name,
                            error_code=ErrorCode.AI_RATE_LIMIT,
                        )
                    if response.status != 200:
                        error_text = await response.text()
                        raise AIError(
                            f"Workers AI API error {response.status}: {error_text[:500]}",
                            provider=self.provider_type.value,
                            model=self.model_name,
                        )

                    body = await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise AIError(
                f"Workers AI request timed out after {self.timeout}s",
                provider=self.provider_type.value,
                model=self.model_name,
                error_code=ErrorCode.AI_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise AIError(
                f"Workers AI connection error: {e}",
                provider=self.provider_type.value,
                model=self.model_name,
                error_code=ErrorCode.AI_CONNECTION_ERROR,
            ) from e

        # REST responses wrap the model output in a result envelope
        result = body.get("result", body) if isinstance(body, dict) else None
        if not isinstance(result, dict) or "data" not in result:
            raise AIError(
                "Workers AI response missing embedding data",
                provider=self.provider_type.value,
                model=self.model_name,
                error_code=ErrorCode.AI_INVALID_RESPONSE,
            )

        vectors = self._validate_vectors(result["data"])
        processing_time_ms = int((time.time() - start_time) * 1000)

        self.logger.debug(
            f"Embedded {len(texts)} text(s) into {len(vectors)} vector(s) in {processing_time_ms}ms"
        )

        return EmbeddingResult(
            vectors=vectors,
            shape=result.get("shape"),
            provider=self.provider_type.value,
            model_used=self.model_name,
            processing_time_ms=processing_time_ms,
        )

    async def test_connection(self) -> bool:
        """Test the gateway and model with a short request."""
        try:
            result = await self.embed(["connection test"])
            return result.count > 0
        except AIError as e:
            self.logger.error(f"Workers AI connection test failed: {e}")
            return False
