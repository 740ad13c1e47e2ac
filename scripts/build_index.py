#!/usr/bin/env python
"""Build a searchable corpus from a directory of markdown documentation.

Usage:
    python scripts/build_index.py docs/                    # Index docs/ into the default index dir
    python scripts/build_index.py docs/ --max-chunks 500   # Cap the corpus size
    python scripts/build_index.py docs/ --query "create a client"
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from docvec import config
from docvec.errors import DocVecError
from docvec.logging_config import configure_logging
from docvec.rag.ingest import IndexPipeline
from docvec.rag.retriever import DocumentationRetriever
from docvec.rag.store import CorpusStore

logger = structlog.get_logger()


def print_summary(build, elapsed_seconds: float, output_dir: Path):
    stats = build.stats
    embedding = build.embedding_stats

    print(f"\n{'=' * 60}")
    print("  Indexing Complete!")
    print(f"{'=' * 60}\n")
    print(f"  Documents processed:  {stats['documents_processed']}")
    print(f"  Documents failed:     {stats['documents_failed']}")
    print(f"  Chunks created:       {stats['chunks_created']}")
    print(f"  Tokens used:          {embedding.total_tokens}")
    print(f"  Estimated cost:       ${embedding.estimated_cost:.6f}")
    print(f"  Time elapsed:         {elapsed_seconds:.1f}s")
    print(f"\n{'=' * 60}\n")

    for warning in build.warnings:
        print(f"  Warning: {warning}")

    if stats["chunks_created"] > 0:
        print(f"\nIndex ready at: {output_dir}\n")


async def main():
    """Main entry point for the index build script."""
    parser = argparse.ArgumentParser(
        description="Build a semantic search index from markdown documentation",
    )
    parser.add_argument("docs_dir", type=Path, help="Directory containing markdown files")
    parser.add_argument(
        "--output",
        type=Path,
        default=config.INDEX_DIR,
        help=f"Index directory (default: {config.INDEX_DIR})",
    )
    parser.add_argument(
        "--max-chunks",
        type=int,
        default=None,
        help="Limit the corpus to this many chunks",
    )
    parser.add_argument(
        "--query",
        default=None,
        help="Run a test query against the new index",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else config.LOG_LEVEL)

    try:
        pipeline = IndexPipeline(max_total_chunks=args.max_chunks)

        dimension = await pipeline.embedder.check_connection()
        print(f"\nEmbedding model: {pipeline.embedder.model} ({dimension} dimensions)")

        start = datetime.now()
        build = await pipeline.build_from_directory(args.docs_dir)
        elapsed = (datetime.now() - start).total_seconds()

        CorpusStore(args.output, embedding_model=pipeline.embedder.model).save(build.chunks)
        print_summary(build, elapsed, args.output)

        if args.query:
            retriever = DocumentationRetriever(build.engine, embedder=pipeline.embedder)
            for result in await retriever.search(args.query):
                metadata = result.chunk.metadata
                print(f"  {result.relevance_score:.3f}  [{metadata.type}] {metadata.title}")

        if build.stats["documents_failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\nError: {e}\n")
        sys.exit(1)

    except DocVecError as e:
        print(f"\nError: {e.message}\n")
        for suggestion in e.suggestions:
            print(f"  - {suggestion}")
        logger.error("build_index_failed", **e.to_dict())
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
