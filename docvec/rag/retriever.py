"""Query front end over a search snapshot.

Handles:
- Query embedding for text queries
- Dispatch by content type (function, class, guide, example, all)
- Result formatting for prompt context
"""
from typing import List, Optional, Sequence, Union

import structlog

from docvec import config
from docvec.rag.embedder import Embedder
from docvec.rag.search import SearchEngine, SearchResult

logger = structlog.get_logger()

CONTENT_TYPES = ("function", "class", "guide", "example", "all")


class DocumentationRetriever:
    """Answers text or vector queries against one corpus."""

    def __init__(
        self,
        engine: SearchEngine,
        embedder: Optional[Embedder] = None,
        top_k: int = None,
        min_similarity: float = None,
    ):
        """Initialize the retriever.

        Args:
            engine: Search snapshot to query
            embedder: Used to embed text queries (vector queries do not need one)
            top_k: Number of results to return (default from config)
            min_similarity: Cosine threshold (default from config)
        """
        self.engine = engine
        self.embedder = embedder
        self.top_k = config.SEARCH_LIMIT if top_k is None else top_k
        self.min_similarity = (
            config.SEARCH_MIN_SIMILARITY if min_similarity is None else min_similarity
        )

        if self.top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {self.top_k}")

    def swap_engine(self, engine: SearchEngine) -> None:
        """Point the retriever at a rebuilt snapshot."""
        logger.info(
            "search_engine_swapped",
            previous_chunks=len(self.engine),
            chunk_count=len(engine),
        )
        self.engine = engine

    async def search(
        self,
        query: Union[str, Sequence[float]],
        content_type: str = "all",
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[SearchResult]:
        """Retrieve ranked chunks for a query.

        Args:
            query: Query text, or a query embedding
            content_type: One of function, class, guide, example, all
            limit: Number of results (overrides default)
            min_similarity: Cosine threshold (overrides default)

        Returns:
            List of SearchResult objects, best first

        Raises:
            ValueError: On an unknown content type, or a text query without an embedder
            NetworkError: If the query cannot be embedded
        """
        if content_type not in CONTENT_TYPES:
            raise ValueError(
                f"Unknown content type {content_type!r}, expected one of {', '.join(CONTENT_TYPES)}"
            )

        if isinstance(query, str):
            if not query.strip():
                logger.warning("empty_query_provided")
                return []
            if self.embedder is None:
                raise ValueError("Text queries need an embedder; pass a query embedding instead")
            query_embedding = await self.embedder.embed_query(query)
        else:
            query_embedding = query

        options = {
            "limit": self.top_k if limit is None else limit,
            "min_similarity": self.min_similarity if min_similarity is None else min_similarity,
        }

        if content_type == "function":
            results = self.engine.search_functions(query_embedding, **options)
        elif content_type == "class":
            results = self.engine.semantic_search(query_embedding, type_filter=["class"], **options)
        elif content_type == "example":
            results = self.engine.search_examples(query_embedding, **options)
        elif content_type == "guide":
            results = self.engine.search_guides(query_embedding, **options)
        else:
            results = self.engine.semantic_search(query_embedding, **options)

        logger.info(
            "retrieval_completed",
            content_type=content_type,
            text_query=isinstance(query, str),
            results_returned=len(results),
            top_score=results[0].relevance_score if results else None,
        )

        return results

    async def retrieve_context(
        self,
        query: Union[str, Sequence[float]],
        content_type: str = "all",
        limit: Optional[int] = None,
        max_chars: int = 4000,
    ) -> str:
        """Retrieve and format results as a context block.

        Args:
            query: Query text or embedding
            content_type: Content type to search
            limit: Number of results to retrieve
            max_chars: Maximum total characters of context to return

        Returns:
            Formatted context string, empty when nothing matched
        """
        results = await self.search(query, content_type=content_type, limit=limit)

        if not results:
            return ""

        context_parts = []
        total_chars = 0

        for i, result in enumerate(results, 1):
            metadata = result.chunk.metadata
            source = f"{metadata.category} > {metadata.title}" if metadata.category else metadata.title
            chunk_text = f"[Source {i}: {source}]\n{result.chunk.markdown.strip()}\n"

            separator = 1 if context_parts else 0  # newline added by the join

            if total_chars + separator + len(chunk_text) > max_chars:
                remaining = max_chars - total_chars - separator
                if remaining > 200:  # Only add if we have meaningful space
                    context_parts.append(chunk_text[: remaining - 4] + "...\n")
                break

            context_parts.append(chunk_text)
            total_chars += separator + len(chunk_text)

        context = "\n".join(context_parts)

        logger.debug(
            "context_formatted",
            num_chunks=len(context_parts),
            total_chars=len(context),
        )

        return context
