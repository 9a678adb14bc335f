"""
Client for interacting with an OpenAI-compatible embedding service.

Maps a list of texts to a list of vectors, one per text, in input order.
"""
import logging
from typing import Any, List, Optional

import httpx

from tooling_lab.errors import BackendError
from tooling_lab.observability import record_embedding_batch
from tooling_lab.utils.http import create_http_client

logger = logging.getLogger(__name__)

BACKEND_NAME = "embedding"


class EmbeddingClient:
    """
    Client for generating text embeddings via an external API.

    Holds a single ``httpx.AsyncClient`` for its lifetime; concurrent calls
    share it. Call ``aclose()`` on shutdown.
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: str,
        model: str,
        dimension: Optional[int] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize embedding client.

        Args:
            endpoint_url: Full URL of the embeddings endpoint
            api_key: Bearer token for the endpoint
            model: Embedding model name sent with every request
            dimension: Expected vector dimension; None skips the check
            timeout: Request timeout in seconds
            http_client: Pre-built client (tests, custom transports)
        """
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self._client = http_client

    @classmethod
    def from_settings(cls, settings) -> "EmbeddingClient":
        """Build a client from application settings."""
        return cls(
            endpoint_url=settings.EMBEDDING_ENDPOINT_URL,
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_EMBED_MODEL,
            dimension=settings.EMBEDDING_DIMENSION,
            timeout=settings.EMBEDDING_TIMEOUT,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_http_client(timeout=self.timeout, api_key=self.api_key)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Raises:
            BackendError: If the API request fails or the response is invalid
        """
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in one request.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, same length and order as ``texts``

        Raises:
            BackendError: If the API request fails or the response is invalid
        """
        if not texts:
            return []

        payload = {"model": self.model, "input": list(texts)}

        try:
            response = await self.client.post(self.endpoint_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code if e.response is not None else None
            raise BackendError(
                f"Embedding request to {self.endpoint_url} failed: {self._error_detail(e)}",
                backend=BACKEND_NAME,
                status_code=status_code,
            ) from e
        except httpx.HTTPError as e:
            raise BackendError(
                f"Failed to connect to embedding service at {self.endpoint_url}: {str(e)}",
                backend=BACKEND_NAME,
            ) from e
        except ValueError as e:
            raise BackendError(
                f"Embedding service returned invalid JSON: {str(e)}",
                backend=BACKEND_NAME,
            ) from e

        embeddings = self._parse_batch_response(data, texts)
        record_embedding_batch(len(embeddings), self.model)
        logger.debug(f"Embedded {len(embeddings)} texts with {self.model}")
        return embeddings

    def _parse_batch_response(self, data: Any, texts: List[str]) -> List[List[float]]:
        """
        Parse batch response and validate count and dimensions.

        Handles:
        - OpenAI format: {"data": [{"embedding": [...], "index": 0}, ...]}
        - Simple format: {"embeddings": [[...], [...]]}
        - Single object: {"embedding": [...]}

        Raises:
            BackendError: If response format is invalid or dimensions don't match
        """
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            items = data["data"]
            # Entries may arrive out of order; "index" is authoritative
            if items and all(isinstance(item, dict) and "index" in item for item in items):
                items = sorted(items, key=lambda item: item["index"])
            try:
                embeddings = [item["embedding"] for item in items]
            except (KeyError, TypeError) as e:
                raise BackendError(
                    "Embedding response entry is missing 'embedding'",
                    backend=BACKEND_NAME,
                ) from e

        elif isinstance(data, dict) and "embeddings" in data:
            embeddings = data["embeddings"]

        elif isinstance(data, dict) and "embedding" in data:
            embeddings = [data["embedding"]]

        else:
            keys = list(data.keys()) if isinstance(data, dict) else type(data).__name__
            raise BackendError(
                f"Unexpected response format. Expected 'data' or 'embeddings' field. "
                f"Got: {keys}",
                backend=BACKEND_NAME,
            )

        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            count = len(embeddings) if isinstance(embeddings, list) else 0
            raise BackendError(
                f"Expected {len(texts)} embeddings, got {count}",
                backend=BACKEND_NAME,
            )

        for i, embedding in enumerate(embeddings):
            if not isinstance(embedding, list):
                raise BackendError(
                    f"Embedding {i} is not a list: {type(embedding)}",
                    backend=BACKEND_NAME,
                )

            if self.dimension is not None and len(embedding) != self.dimension:
                raise BackendError(
                    f"Embedding {i} has dimension {len(embedding)}, "
                    f"expected {self.dimension}",
                    backend=BACKEND_NAME,
                )

        return embeddings

    @staticmethod
    def _error_detail(error: httpx.HTTPStatusError) -> str:
        """Pull the provider's error message out of an error response."""
        if error.response is None:
            return str(error)

        try:
            body = error.response.json()
        except ValueError:
            return f"HTTP {error.response.status_code}"

        detail = body.get("error") if isinstance(body, dict) else None
        if isinstance(detail, dict):
            detail = detail.get("message")
        return f"HTTP {error.response.status_code}: {detail or body}"

    async def health_check(self) -> bool:
        """
        Check if the embedding service is available.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            await self.embed_text("health check")
            return True
        except BackendError as e:
            logger.warning(f"Embedding health check failed: {e}")
            return False
