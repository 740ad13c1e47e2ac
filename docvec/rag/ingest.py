"""Index pipeline for documentation corpora.

Orchestrates:
- Markdown file discovery
- Section parsing
- Chunking and corpus budgeting
- Embedding generation
- Search snapshot construction
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from docvec.errors import ProcessingError
from docvec.rag.chunker import ChunkBuilder, get_chunking_stats, select_top_chunks
from docvec.rag.embedder import EmbeddedChunk, Embedder, EmbeddingStats
from docvec.rag.md_parser import ParsedDocument, RawDocument, SectionParser
from docvec.rag.search import SearchEngine

logger = structlog.get_logger()


@dataclass
class IndexBuild:
    """Everything produced by one index build."""

    engine: SearchEngine
    chunks: List[EmbeddedChunk]
    warnings: List[str] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    embedding_stats: EmbeddingStats = field(default_factory=EmbeddingStats)


class IndexPipeline:
    """Pipeline turning raw documents into a searchable corpus."""

    def __init__(
        self,
        parser: Optional[SectionParser] = None,
        chunker: Optional[ChunkBuilder] = None,
        embedder: Optional[Embedder] = None,
        max_total_chunks: Optional[int] = None,
    ):
        """Initialize the index pipeline.

        Args:
            parser: Section parser (default settings from config)
            chunker: Chunk builder (default settings from config)
            embedder: Embedder (default: OpenAI-compatible provider)
            max_total_chunks: Corpus budget; larger corpora are cut down by type share
        """
        self.parser = parser or SectionParser()
        self.chunker = chunker or ChunkBuilder()
        self.embedder = embedder or Embedder()
        self.max_total_chunks = max_total_chunks

        self.stats = self._empty_stats()

        logger.info(
            "index_pipeline_initialized",
            embedding_model=self.embedder.model,
            max_chunk_size=self.chunker.max_chunk_size,
            max_total_chunks=self.max_total_chunks,
        )

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "documents_processed": 0,
            "documents_failed": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
        }

    def discover_markdown_files(self, directory: Path) -> List[Path]:
        """Discover all markdown files under a directory.

        Returns:
            Markdown file paths in sorted order

        Raises:
            FileNotFoundError: If the directory doesn't exist
        """
        directory = Path(directory)
        if not directory.exists():
            raise FileNotFoundError(f"Documentation directory not found: {directory}")

        md_files = sorted(directory.rglob("*.md"))

        logger.info(
            "markdown_files_discovered",
            count=len(md_files),
            directory=str(directory),
        )

        return md_files

    def load_documents(self, directory: Path, site_type: str = "local") -> List[RawDocument]:
        """Read every markdown file under a directory as a raw document.

        The path relative to the directory is used as the document url.
        """
        directory = Path(directory)
        documents = []

        for path in self.discover_markdown_files(directory):
            documents.append(
                RawDocument(
                    text=path.read_text(encoding="utf-8"),
                    url=path.relative_to(directory).as_posix(),
                    site_type=site_type,
                )
            )

        return documents

    def parse_documents(
        self, documents: List[RawDocument]
    ) -> Tuple[List[ParsedDocument], List[str]]:
        """Parse raw documents, skipping the ones that fail.

        Returns:
            (parsed documents, warnings)
        """
        parsed: List[ParsedDocument] = []
        warnings: List[str] = []

        for document in documents:
            try:
                parsed.append(self.parser.parse(document))
                self.stats["documents_processed"] += 1
            except ProcessingError as e:
                logger.error("document_parsing_failed", url=document.url, error=e.message)
                warnings.append(f"Failed to parse {document.url or '<text>'}: {e.message}")
                self.stats["documents_failed"] += 1
                # Continue with next document instead of failing entirely

        return parsed, warnings

    async def build_index(self, documents: List[RawDocument]) -> IndexBuild:
        """Parse, chunk and embed documents into a new search snapshot.

        Args:
            documents: Raw documents to index

        Returns:
            IndexBuild with the search engine, embedded chunks and statistics

        Raises:
            NetworkError: If embedding fails; no partial corpus is produced
        """
        logger.info("index_build_started", document_count=len(documents))

        self.stats = self._empty_stats()

        parsed, warnings = self.parse_documents(documents)

        chunking = self.chunker.chunk_documents(parsed)
        warnings.extend(chunking.warnings)
        self.stats["documents_processed"] -= chunking.failed_documents
        self.stats["documents_failed"] += chunking.failed_documents

        chunks = chunking.chunks
        if self.max_total_chunks is not None and len(chunks) > self.max_total_chunks:
            logger.info(
                "corpus_limited",
                chunk_count=len(chunks),
                max_total_chunks=self.max_total_chunks,
            )
            warnings.append(f"Corpus limited to {self.max_total_chunks} of {len(chunks)} chunks")
            chunks = select_top_chunks(chunks, self.max_total_chunks)

        self.stats["chunks_created"] = len(chunks)

        if not chunks:
            logger.warning("no_chunks_created", document_count=len(documents))

        result = await self.embedder.embed_chunks(chunks)
        self.stats["embeddings_generated"] = len(result.chunks)

        engine = SearchEngine(result.chunks)

        stats = dict(self.stats)
        stats["chunking"] = get_chunking_stats(chunks)

        logger.info("index_build_completed", stats=self.stats, warnings=len(warnings))

        return IndexBuild(
            engine=engine,
            chunks=result.chunks,
            warnings=warnings,
            stats=stats,
            embedding_stats=result.stats,
        )

    async def build_from_directory(self, directory: Path, site_type: str = "local") -> IndexBuild:
        """Build an index from every markdown file under a directory."""
        return await self.build_index(self.load_documents(directory, site_type=site_type))


# Convenience function for quick indexing
async def build_index_from_directory(directory: Path) -> IndexBuild:
    """Index a documentation directory with default settings (convenience function).

    Args:
        directory: Directory containing markdown files

    Returns:
        IndexBuild for the directory
    """
    pipeline = IndexPipeline()
    return await pipeline.build_from_directory(directory)
