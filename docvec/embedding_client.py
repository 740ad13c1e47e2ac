"""Embedding provider interface and OpenAI-compatible HTTP client."""
import abc
from dataclasses import dataclass
from typing import List, Optional

import httpx
import structlog

from docvec import config

logger = structlog.get_logger()


@dataclass
class ProviderResponse:
    """Vectors for one provider call, in input order, plus reported usage."""

    vectors: List[List[float]]
    tokens_used: int


class EmbeddingProvider(abc.ABC):
    """Interface that every embedding provider must implement."""

    @abc.abstractmethod
    async def embed(self, texts: List[str], model: str) -> ProviderResponse:
        """Return one embedding vector per input text."""


class OpenAIEmbeddingClient(EmbeddingProvider):
    """Async client for OpenAI-compatible /embeddings endpoints.

    Works with the OpenAI API as well as servers exposing the same
    interface (Ollama's /v1, vLLM, LiteLLM, ...).
    """

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the embedding client.

        Args:
            base_url: API base URL (defaults to config.EMBEDDING_BASE_URL)
            api_key: Bearer token (defaults to config.EMBEDDING_API_KEY)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used to stub the network in tests
        """
        self.base_url = (base_url or config.EMBEDDING_BASE_URL).rstrip("/")
        self.api_key = config.EMBEDDING_API_KEY if api_key is None else api_key
        self.timeout = config.EMBEDDING_TIMEOUT if timeout is None else timeout
        self.transport = transport

    async def embed(self, texts: List[str], model: str = None) -> ProviderResponse:
        """Embed a batch of texts in a single request.

        Args:
            texts: Input strings
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            ProviderResponse with vectors ordered like the inputs

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If the provider is unreachable
            ValueError: If the response does not hold one vector per input
        """
        model = model or config.EMBEDDING_MODEL

        payload = {
            "model": model,
            "input": texts,
            "encoding_format": "float",
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                logger.debug(
                    "embedding_request",
                    model=model,
                    input_count=len(texts),
                )

                response = await client.post(
                    f"{self.base_url}/embeddings",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()

                data = response.json()

        except httpx.ConnectError as e:
            logger.error("embedding_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "embedding_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

        items = sorted(data.get("data", []), key=lambda item: item.get("index", 0))
        vectors = [item.get("embedding", []) for item in items]

        if len(vectors) != len(texts):
            raise ValueError(
                f"Provider returned {len(vectors)} embeddings for {len(texts)} inputs"
            )

        tokens_used = int(data.get("usage", {}).get("total_tokens", 0))

        logger.debug(
            "embedding_response",
            model=model,
            vector_count=len(vectors),
            dimension=len(vectors[0]) if vectors else 0,
            tokens_used=tokens_used,
        )

        return ProviderResponse(vectors=vectors, tokens_used=tokens_used)
