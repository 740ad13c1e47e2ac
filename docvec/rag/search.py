"""In-memory similarity search over an embedded-chunk corpus.

The corpus is an immutable snapshot scanned exhaustively per query:
filters first, then cosine similarity, then a relevance rerank that
favours API content. Fine for corpora of a few thousand chunks.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import structlog

from docvec import config
from docvec.rag.chunker import ChunkMetadata
from docvec.rag.embedder import EmbeddedChunk

logger = structlog.get_logger()

Filter = Union[str, Sequence[str], None]


def _default_type_boosts() -> Dict[str, float]:
    return {"function": 0.30, "class": 0.25, "example": 0.20, "guide": 0.10}


@dataclass(frozen=True)
class RelevanceBoosts:
    """Additive boosts applied on top of cosine similarity."""

    type_boosts: Dict[str, float] = field(default_factory=_default_type_boosts)
    high_priority: float = 0.10
    high_priority_threshold: float = 0.7
    code_example: float = 0.05
    function_parameters: float = 0.05


@dataclass
class SearchResult:
    chunk: EmbeddedChunk
    similarity: float
    relevance_score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| |b|), or 0.0 when either vector has zero norm.

    Raises:
        ValueError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape:
        raise ValueError(f"Vectors must have the same length: {va.shape[0]} != {vb.shape[0]}")

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))


def _as_list(value: Filter) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class SearchEngine:
    """Read-only corpus answering similarity queries."""

    def __init__(
        self,
        chunks: Iterable[EmbeddedChunk],
        boosts: Optional[RelevanceBoosts] = None,
    ):
        """Build a search snapshot.

        Args:
            chunks: Embedded chunks; all embeddings must share one length
            boosts: Relevance boost table

        Raises:
            ValueError: On mixed embedding lengths or duplicate chunk ids
        """
        self._chunks: Tuple[EmbeddedChunk, ...] = tuple(chunks)
        self.boosts = boosts or RelevanceBoosts()

        dimensions = {chunk.embedding.shape[0] for chunk in self._chunks}
        if len(dimensions) > 1:
            raise ValueError(
                f"All embeddings in a corpus must share one length, got {sorted(dimensions)}"
            )
        self.dimension: Optional[int] = dimensions.pop() if dimensions else None

        ids = [chunk.id for chunk in self._chunks]
        if len(set(ids)) != len(ids):
            duplicates = sorted(i for i, n in Counter(ids).items() if n > 1)
            raise ValueError(f"Duplicate chunk ids in corpus: {duplicates[:5]}")

        if self._chunks:
            self._matrix = np.vstack([c.embedding for c in self._chunks]).astype(np.float64)
        else:
            self._matrix = np.zeros((0, 0), dtype=np.float64)
        self._norms = np.linalg.norm(self._matrix, axis=1)
        self._matrix.setflags(write=False)
        self._norms.setflags(write=False)

        logger.info(
            "search_engine_built",
            chunk_count=len(self._chunks),
            dimension=self.dimension,
        )

    @classmethod
    def from_records(
        cls,
        records: Iterable[Dict[str, Any]],
        boosts: Optional[RelevanceBoosts] = None,
    ) -> "SearchEngine":
        """Build a snapshot from interchange records ({id, markdown, metadata, embedding})."""
        return cls([EmbeddedChunk.from_record(r) for r in records], boosts=boosts)

    @property
    def chunks(self) -> Tuple[EmbeddedChunk, ...]:
        return self._chunks

    def __len__(self) -> int:
        return len(self._chunks)

    def semantic_search(
        self,
        query_embedding: Sequence[float],
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
        type_filter: Filter = None,
        category_filter: Filter = None,
        include_code: Optional[bool] = None,
    ) -> List[SearchResult]:
        """Rank chunks against a query embedding.

        Args:
            query_embedding: Query vector, same length as the corpus vectors
            limit: Maximum results (default from config)
            min_similarity: Cosine threshold a result must reach (default from config)
            type_filter: Keep only these chunk types
            category_filter: Keep chunks whose category contains any of these (case-insensitive)
            include_code: Keep only chunks whose has_code_example equals this

        Returns:
            Results sorted by relevance score, best first

        Raises:
            ValueError: If the query length differs from the corpus vectors
        """
        limit = config.SEARCH_LIMIT if limit is None else limit
        min_similarity = config.SEARCH_MIN_SIMILARITY if min_similarity is None else min_similarity

        query = np.asarray(query_embedding, dtype=np.float64)
        if query.ndim != 1:
            raise ValueError(f"Query embedding must be one-dimensional, got shape {query.shape}")
        if self.dimension is not None and query.shape[0] != self.dimension:
            raise ValueError(
                f"Query dimension mismatch: expected {self.dimension}, got {query.shape[0]}"
            )

        indices = self._filter(type_filter, category_filter, include_code)
        if not indices:
            return []

        results = []
        for index, similarity in zip(indices, self._similarities(query, indices)):
            if similarity < min_similarity:
                continue
            chunk = self._chunks[index]
            results.append(
                SearchResult(
                    chunk=chunk,
                    similarity=similarity,
                    relevance_score=self.calculate_relevance_score(similarity, chunk.metadata),
                )
            )

        # Ties on the clamped score fall back to raw similarity
        results.sort(key=lambda r: (-r.relevance_score, -r.similarity))

        logger.debug(
            "semantic_search_completed",
            candidates=len(indices),
            matched=len(results),
            returned=min(limit, len(results)),
        )

        return results[:limit]

    def search_functions(
        self,
        query_embedding: Sequence[float],
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
        category_filter: Filter = None,
        include_code: Optional[bool] = None,
    ) -> List[SearchResult]:
        """Search function and class chunks only."""
        return self.semantic_search(
            query_embedding,
            limit=limit,
            min_similarity=min_similarity,
            type_filter=["function", "class"],
            category_filter=category_filter,
            include_code=include_code,
        )

    def search_examples(
        self,
        query_embedding: Sequence[float],
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
        category_filter: Filter = None,
    ) -> List[SearchResult]:
        """Search example chunks that carry code."""
        return self.semantic_search(
            query_embedding,
            limit=limit,
            min_similarity=min_similarity,
            type_filter=["example"],
            category_filter=category_filter,
            include_code=True,
        )

    def search_guides(
        self,
        query_embedding: Sequence[float],
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
        category_filter: Filter = None,
        include_code: Optional[bool] = None,
    ) -> List[SearchResult]:
        """Search guide chunks only."""
        return self.semantic_search(
            query_embedding,
            limit=limit,
            min_similarity=min_similarity,
            type_filter=["guide"],
            category_filter=category_filter,
            include_code=include_code,
        )

    def calculate_relevance_score(self, similarity: float, metadata: ChunkMetadata) -> float:
        boosts = self.boosts
        score = similarity + boosts.type_boosts.get(metadata.type, 0.0)

        if metadata.priority > boosts.high_priority_threshold:
            score += boosts.high_priority
        if metadata.has_code_example:
            score += boosts.code_example
        if metadata.type == "function" and metadata.parameters:
            score += boosts.function_parameters

        return min(1.0, score)

    def get_chunks_by_category(self, category: str) -> List[EmbeddedChunk]:
        needle = category.lower()
        return [c for c in self._chunks if needle in (c.metadata.category or "").lower()]

    def get_categories(self) -> List[str]:
        return sorted({c.metadata.category for c in self._chunks if c.metadata.category})

    def get_function_names(self) -> List[str]:
        return sorted({c.metadata.function_name for c in self._chunks if c.metadata.function_name})

    def get_search_stats(self) -> Dict[str, Any]:
        """Corpus statistics computed in one pass."""
        by_type: Counter = Counter()
        categories = set()
        functions = set()
        total_dimensions = 0

        for chunk in self._chunks:
            by_type[chunk.metadata.type] += 1
            total_dimensions += chunk.embedding.shape[0]
            if chunk.metadata.category:
                categories.add(chunk.metadata.category)
            if chunk.metadata.function_name:
                functions.add(chunk.metadata.function_name)

        return {
            "total_chunks": len(self._chunks),
            "chunks_by_type": dict(by_type),
            "average_embedding_dimensions": (
                total_dimensions / len(self._chunks) if self._chunks else 0
            ),
            "categories_count": len(categories),
            "functions_count": len(functions),
        }

    def _filter(self, type_filter: Filter, category_filter: Filter, include_code: Optional[bool]) -> List[int]:
        indices = list(range(len(self._chunks)))

        types = set(_as_list(type_filter))
        if types:
            indices = [i for i in indices if self._chunks[i].metadata.type in types]

        categories = [c.lower() for c in _as_list(category_filter)]
        if categories:
            indices = [
                i
                for i in indices
                if any(c in (self._chunks[i].metadata.category or "").lower() for c in categories)
            ]

        if include_code is not None:
            indices = [i for i in indices if self._chunks[i].metadata.has_code_example == include_code]

        return indices

    def _similarities(self, query: np.ndarray, indices: List[int]) -> List[float]:
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return [0.0] * len(indices)

        dots = self._matrix[indices] @ query
        denominators = self._norms[indices] * query_norm
        similarities = np.divide(
            dots,
            denominators,
            out=np.zeros_like(dots),
            where=denominators != 0,
        )
        return similarities.tolist()
