"""File snapshot of an embedded corpus in the interchange format.

Writes two files into a directory:
- chunks.json: array of {id, markdown, metadata, embedding: number[]}
- metadata.json: embedding model, dimension and chunk count
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from docvec import config
from docvec.rag.embedder import EmbeddedChunk
from docvec.rag.search import RelevanceBoosts, SearchEngine

logger = structlog.get_logger()


class CorpusStore:
    """Saves and loads embedded corpora as JSON."""

    def __init__(self, directory: Path, embedding_model: str = None):
        """Initialize the corpus store.

        Args:
            directory: Directory holding chunks.json and metadata.json
            embedding_model: Model recorded in the metadata (default from config)
        """
        self.directory = Path(directory)
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL

        self.chunks_path = self.directory / "chunks.json"
        self.metadata_path = self.directory / "metadata.json"

    def exists(self) -> bool:
        return self.chunks_path.exists() and self.metadata_path.exists()

    def save(self, chunks: List[EmbeddedChunk]) -> Dict[str, Any]:
        """Write the corpus and its metadata.

        Returns:
            The metadata that was written

        Raises:
            ValueError: If the embeddings differ in length
            RuntimeError: If writing fails
        """
        records = [chunk.to_record() for chunk in chunks]
        dimensions = {len(r["embedding"]) for r in records}
        if len(dimensions) > 1:
            raise ValueError(f"Cannot save a corpus with mixed dimensions: {sorted(dimensions)}")

        metadata = {
            "embedding_model": self.embedding_model,
            "embedding_dimension": dimensions.pop() if dimensions else None,
            "chunk_count": len(records),
        }

        self.directory.mkdir(parents=True, exist_ok=True)

        try:
            with open(self.chunks_path, "w", encoding="utf-8") as f:
                json.dump(records, f)
            with open(self.metadata_path, "w", encoding="utf-8") as f:
                json.dump(metadata, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save corpus: {e}") from e

        logger.info(
            "corpus_saved",
            path=str(self.chunks_path),
            chunk_count=len(records),
            dimension=metadata["embedding_dimension"],
        )

        return metadata

    def load(self, boosts: Optional[RelevanceBoosts] = None) -> SearchEngine:
        """Load the corpus into a new search snapshot.

        Raises:
            FileNotFoundError: If the corpus files don't exist
            ValueError: If the files disagree with each other or the configured model
            RuntimeError: If the files cannot be read
        """
        if not self.chunks_path.exists():
            raise FileNotFoundError(f"Corpus not found: {self.chunks_path}")
        if not self.metadata_path.exists():
            raise FileNotFoundError(f"Metadata not found: {self.metadata_path}")

        try:
            with open(self.metadata_path, "r", encoding="utf-8") as f:
                metadata = json.load(f)
            with open(self.chunks_path, "r", encoding="utf-8") as f:
                records = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Failed to load corpus: {e}") from e

        stored_model = metadata.get("embedding_model")
        if stored_model and stored_model != self.embedding_model:
            raise ValueError(
                f"Model mismatch: corpus was built with {stored_model}, "
                f"but the configured model is {self.embedding_model}. Please rebuild the index."
            )

        if len(records) != metadata.get("chunk_count", len(records)):
            raise ValueError(
                f"Corpus holds {len(records)} chunks but metadata records {metadata.get('chunk_count')}"
            )

        engine = SearchEngine.from_records(records, boosts=boosts)

        stored_dim = metadata.get("embedding_dimension")
        if records and engine.dimension != stored_dim:
            raise ValueError(
                f"Dimension mismatch: metadata records {stored_dim}, chunks have {engine.dimension}"
            )

        logger.info(
            "corpus_loaded",
            path=str(self.chunks_path),
            chunk_count=len(engine),
            dimension=engine.dimension,
            model=stored_model,
        )

        return engine
