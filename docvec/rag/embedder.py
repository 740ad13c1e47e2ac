"""Batched chunk embedding through an external provider.

Handles:
- Provider input construction (title, type, signature, category, body)
- Sequential batching with an inter-batch delay
- Exponential backoff retries per batch
- Token, time and cost accounting
- Conversion of dense vectors to the JSON interchange form
"""
import asyncio
import json
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import structlog
from pydantic import ConfigDict

from docvec import config
from docvec.embedding_client import EmbeddingProvider, OpenAIEmbeddingClient, ProviderResponse
from docvec.errors import NetworkError, ProcessingError
from docvec.rag.chunker import Chunk, ChunkMetadata

logger = structlog.get_logger()


class EmbeddedChunk(Chunk):
    """A chunk with its embedding as a float32 vector."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    embedding: np.ndarray

    def to_record(self) -> Dict[str, Any]:
        """Interchange form: {id, markdown, metadata, embedding: list}."""
        return {
            "id": self.id,
            "markdown": self.markdown,
            "metadata": self.metadata.model_dump(by_alias=True, exclude_none=True),
            "embedding": self.embedding.tolist(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EmbeddedChunk":
        return cls(
            id=record["id"],
            markdown=record["markdown"],
            metadata=ChunkMetadata.model_validate(record["metadata"]),
            embedding=np.asarray(record["embedding"], dtype=np.float32),
        )


@dataclass
class EmbeddingStats:
    total_chunks: int = 0
    total_tokens: int = 0
    embedding_dimensions: int = 0
    processing_time: float = 0.0  # seconds
    estimated_cost: float = 0.0
    batch_count: int = 0


@dataclass
class EmbeddingResult:
    chunks: List[EmbeddedChunk]
    stats: EmbeddingStats


@dataclass
class CompactionResult:
    records: List[Dict[str, Any]] = field(default_factory=list)
    original_size: int = 0
    compacted_size: int = 0
    compression_ratio: float = 0.0


class Embedder:
    """Embeds chunks in sequential, retried batches."""

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        model: str = None,
        batch_size: int = None,
        max_retries: int = None,
        retry_base_delay: float = None,
        inter_batch_delay: float = None,
        max_input_chars: int = None,
        price_per_1k_tokens: float = None,
    ):
        """Initialize the embedder.

        Args:
            provider: Embedding provider (default: OpenAI-compatible HTTP client)
            model: Model identifier sent with every call (default from config)
            batch_size: Chunks per provider call (default from config)
            max_retries: Attempts per batch before giving up (default from config)
            retry_base_delay: Seconds multiplied by 2^attempt between attempts
            inter_batch_delay: Seconds to wait between successive batches
            max_input_chars: Hard cap on each provider input string
            price_per_1k_tokens: Used for the cost estimate
        """
        self.provider = provider or OpenAIEmbeddingClient()
        self.model = model or config.EMBEDDING_MODEL
        self.batch_size = config.EMBEDDING_BATCH_SIZE if batch_size is None else batch_size
        self.max_retries = config.EMBEDDING_MAX_RETRIES if max_retries is None else max_retries
        self.retry_base_delay = (
            config.EMBEDDING_RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        )
        self.inter_batch_delay = (
            config.EMBEDDING_INTER_BATCH_DELAY if inter_batch_delay is None else inter_batch_delay
        )
        self.max_input_chars = (
            config.EMBEDDING_MAX_INPUT_CHARS if max_input_chars is None else max_input_chars
        )
        self.price_per_1k_tokens = (
            config.EMBEDDING_PRICE_PER_1K_TOKENS if price_per_1k_tokens is None else price_per_1k_tokens
        )

        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.max_input_chars < 1:
            raise ValueError(f"max_input_chars must be >= 1, got {self.max_input_chars}")

    async def embed_chunks(self, chunks: List[Chunk]) -> EmbeddingResult:
        """Embed all chunks, one batch at a time.

        Either every chunk gets an embedding or the call fails.

        Args:
            chunks: Chunks to embed

        Returns:
            EmbeddingResult with embedded chunks in input order and usage stats

        Raises:
            NetworkError: If a batch still fails after max_retries attempts
            ProcessingError: If the provider returns vectors of differing lengths
        """
        start = time.perf_counter()

        if not chunks:
            return EmbeddingResult(chunks=[], stats=EmbeddingStats())

        total_batches = math.ceil(len(chunks) / self.batch_size)

        logger.info(
            "embedding_started",
            chunk_count=len(chunks),
            model=self.model,
            batch_count=total_batches,
        )

        embedded: List[EmbeddedChunk] = []
        total_tokens = 0
        batch_count = 0
        dimension: Optional[int] = None

        for i in range(0, len(chunks), self.batch_size):
            batch = chunks[i : i + self.batch_size]

            # Throttle between batches
            if batch_count > 0 and self.inter_batch_delay > 0:
                await asyncio.sleep(self.inter_batch_delay)

            batch_count += 1
            response = await self._embed_with_retry(
                [self.prepare_text(chunk) for chunk in batch],
                batch_number=batch_count,
            )

            for chunk, vector in zip(batch, response.vectors):
                array = np.asarray(vector, dtype=np.float32)
                if dimension is None:
                    dimension = array.shape[0]
                elif array.shape[0] != dimension:
                    raise ProcessingError(
                        f"Embedding dimension changed within one corpus: "
                        f"expected {dimension}, got {array.shape[0]}"
                    )
                embedded.append(
                    EmbeddedChunk(
                        id=chunk.id,
                        markdown=chunk.markdown,
                        metadata=chunk.metadata,
                        embedding=array,
                    )
                )

            total_tokens += response.tokens_used

            logger.debug(
                "embedding_batch_completed",
                batch=batch_count,
                total_batches=total_batches,
                batch_size=len(batch),
                tokens_used=response.tokens_used,
            )

        stats = EmbeddingStats(
            total_chunks=len(embedded),
            total_tokens=total_tokens,
            embedding_dimensions=dimension or 0,
            processing_time=time.perf_counter() - start,
            estimated_cost=self.calculate_cost(total_tokens),
            batch_count=batch_count,
        )

        logger.info(
            "embedding_completed",
            chunk_count=stats.total_chunks,
            total_tokens=stats.total_tokens,
            dimension=stats.embedding_dimensions,
            estimated_cost=round(stats.estimated_cost, 6),
            processing_time=round(stats.processing_time, 3),
        )

        return EmbeddingResult(chunks=embedded, stats=stats)

    async def embed_query(self, query: str) -> np.ndarray:
        """Embed a single query string with the same retry policy."""
        response = await self._embed_with_retry([query[: self.max_input_chars]], batch_number=1)
        return np.asarray(response.vectors[0], dtype=np.float32)

    async def check_connection(self) -> int:
        """Embed one short string to verify the provider is reachable.

        Returns:
            Embedding dimension reported by the provider

        Raises:
            NetworkError: If the call fails or returns nothing
        """
        try:
            response = await self.provider.embed(["test connection"], model=self.model)
        except Exception as e:
            logger.error("embedding_connection_check_failed", model=self.model, error=str(e))
            raise NetworkError(
                f"Embedding provider connection failed: {e}",
                suggestions=[
                    "Check the embedding provider API key",
                    "Verify network connectivity",
                    "Check API quota and billing",
                ],
            ) from e

        if not response.vectors or not response.vectors[0]:
            raise NetworkError(
                "Embedding provider returned an empty response",
                suggestions=["Check the API key", "Verify the model is available"],
            )

        dimension = len(response.vectors[0])
        logger.info("embedding_connection_ok", model=self.model, dimension=dimension)
        return dimension

    def prepare_text(self, chunk: Chunk) -> str:
        """Build the provider input string for a chunk."""
        metadata = chunk.metadata
        lines = []

        if metadata.title:
            lines.append(f"Title: {metadata.title}")
        lines.append(f"Type: {metadata.type}")

        if metadata.function_name:
            signature = metadata.function_name
            if metadata.parameters:
                signature += f"({', '.join(metadata.parameters)})"
            lines.append(f"Function: {signature}")

        if metadata.category:
            lines.append(f"Category: {metadata.category}")

        lines.append(f"Content: {chunk.markdown}")

        return "\n".join(lines)[: self.max_input_chars]

    def calculate_cost(self, tokens: int) -> float:
        return (tokens / 1000) * self.price_per_1k_tokens

    def compact_embeddings(self, chunks: List[EmbeddedChunk]) -> CompactionResult:
        """Convert dense vectors into plain-list interchange records.

        Sizes are in bytes: float32 storage before, JSON text after.
        """
        if not chunks:
            return CompactionResult()

        records = [chunk.to_record() for chunk in chunks]
        original_size = sum(chunk.embedding.astype(np.float32).nbytes for chunk in chunks)
        compacted_size = len(json.dumps(records))

        return CompactionResult(
            records=records,
            original_size=original_size,
            compacted_size=compacted_size,
            compression_ratio=original_size / compacted_size if compacted_size else 0.0,
        )

    async def _embed_with_retry(self, texts: List[str], batch_number: int) -> ProviderResponse:
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self.provider.embed(texts, model=self.model)
                if len(response.vectors) != len(texts):
                    raise ValueError(
                        f"Provider returned {len(response.vectors)} embeddings for {len(texts)} inputs"
                    )
                if any(len(vector) == 0 for vector in response.vectors):
                    raise ValueError("Empty embedding returned by provider")
                return response

            except Exception as e:
                if attempt >= self.max_retries:
                    logger.error(
                        "embedding_batch_failed",
                        batch=batch_number,
                        attempts=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise NetworkError(
                        f"Embedding provider call failed after {self.max_retries} attempts: {e}"
                    ) from e

                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "embedding_attempt_failed",
                    batch=batch_number,
                    attempt=attempt,
                    retry_in=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
