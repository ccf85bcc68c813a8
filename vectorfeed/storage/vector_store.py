"""
Vector Store
============

Vector index abstraction and the Cloudflare Vectorize (v2 REST API)
implementation. Upserts are keyed by vector id, so repeating an upsert for
the same item replaces its vectors.
"""

import asyncio
import json
import ssl
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
import certifi

from ..database.models import Vector, VectorMatch
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import VectorStoreError, ErrorCode

# Vectorize measures ids in UTF-8 bytes
MAX_VECTOR_ID_BYTES = 64


class VectorStore(ABC):
    """Abstract vector index."""

    @abstractmethod
    async def upsert(self, vectors: List[Vector]) -> Optional[str]:
        """Insert or replace vectors by id.

        Returns:
            Backend mutation identifier, when the backend provides one

        Raises:
            VectorStoreError: If the write fails
        """
        pass

    @abstractmethod
    async def query(self, values: List[float], top_k: Optional[int] = None) -> List[VectorMatch]:
        """Find the nearest vectors to a query vector."""
        pass


class VectorizeIndex(VectorStore):
    """Cloudflare Vectorize index accessed over the REST API."""

    def __init__(
        self,
        account_id: Optional[str] = None,
        api_token: Optional[str] = None,
        index_name: Optional[str] = None,
        api_base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize Vectorize index client (defaults from settings).

        Raises:
            VectorStoreError: If credentials are missing
        """
        settings = get_settings()
        self.account_id = account_id or settings.ai.cloudflare_account_id
        self.api_token = api_token or settings.ai.cloudflare_api_token
        self.index_name = index_name or settings.vector_store.index_name
        self.api_base_url = (api_base_url or settings.vector_store.api_base_url).rstrip("/")
        self.timeout = timeout or settings.limits.request_timeout
        self.default_top_k = settings.vector_store.query_top_k
        self.logger = get_logger_for_component("vector_store")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

        if not self.account_id or not self.api_token:
            raise VectorStoreError(
                "Cloudflare account ID and API token are required",
                index_name=self.index_name,
                recoverable=False,
            )

    @property
    def index_url(self) -> str:
        return f"{self.api_base_url}/accounts/{self.account_id}/vectorize/v2/indexes/{self.index_name}"

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Session scoped to a single index operation."""
        connector = aiohttp.TCPConnector(ssl=self.ssl_context)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {"Authorization": f"Bearer {self.api_token}"}

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def _post(self, path: str, data: Any = None, json_body: Any = None,
                    content_type: Optional[str] = None) -> Dict[str, Any]:
        url = f"{self.index_url}/{path}"
        headers = {"Content-Type": content_type} if content_type else None

        try:
            async with self.get_session() as session:
                async with session.post(url, data=data, json=json_body, headers=headers) as response:
                    body = await response.json(content_type=None)
                    if response.status != 200 or not isinstance(body, dict) or not body.get("success", False):
                        errors = body.get("errors") if isinstance(body, dict) else body
                        raise VectorStoreError(
                            f"Vectorize {path} failed: HTTP {response.status} {errors}",
                            index_name=self.index_name,
                        )
                    return body.get("result") or {}

        except asyncio.TimeoutError as e:
            raise VectorStoreError(
                f"Vectorize {path} timed out after {self.timeout}s",
                index_name=self.index_name,
                error_code=ErrorCode.VECTOR_STORE_TIMEOUT,
            ) from e
        except (aiohttp.ClientError, ValueError) as e:
            raise VectorStoreError(
                f"Vectorize {path} request failed: {e}",
                index_name=self.index_name,
            ) from e

    async def upsert(self, vectors: List[Vector]) -> Optional[str]:
        """Upsert vectors as NDJSON."""
        if not vectors:
            return None

        for vector in vectors:
            id_bytes = len(vector.id.encode("utf-8"))
            if id_bytes > MAX_VECTOR_ID_BYTES:
                raise VectorStoreError(
                    f"Vector id {vector.id!r} is {id_bytes} bytes, limit is {MAX_VECTOR_ID_BYTES}",
                    index_name=self.index_name,
                    error_code=ErrorCode.VECTOR_ID_TOO_LONG,
                    context={"vector_id": vector.id, "id_bytes": id_bytes},
                    recoverable=False,
                )

        payload = "\n".join(
            json.dumps(vector.model_dump(), ensure_ascii=False) for vector in vectors
        )
        result = await self._post("upsert", data=payload.encode("utf-8"),
                                  content_type="application/x-ndjson")

        mutation_id = result.get("mutationId")
        self.logger.debug(
            f"Upserted {len(vectors)} vector(s) into {self.index_name}",
            extra={"mutation_id": mutation_id},
        )
        return mutation_id

    async def query(self, values: List[float], top_k: Optional[int] = None) -> List[VectorMatch]:
        """Query nearest neighbours, returning stored metadata."""
        result = await self._post("query", json_body={
            "vector": values,
            "topK": top_k or self.default_top_k,
            "returnMetadata": "all",
            "returnValues": False,
        })

        return [
            VectorMatch(id=match["id"], score=match.get("score", 0.0), metadata=match.get("metadata"))
            for match in result.get("matches", [])
        ]
