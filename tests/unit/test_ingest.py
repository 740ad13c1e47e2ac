"""Tests for the index pipeline."""
import pytest

from docvec.errors import NetworkError
from docvec.rag.chunker import ChunkBuilder
from docvec.rag.embedder import Embedder
from docvec.rag.ingest import IndexPipeline
from docvec.rag.md_parser import RawDocument
from tests.unit.conftest import FakeProvider


PAGE = """# Client

The client keeps a pool of connections open and retries failed requests automatically.

## Getting Started Guide

Install the package with your package manager and import the client module before use.
"""


def _pipeline(provider: FakeProvider, **kwargs) -> IndexPipeline:
    embedder = Embedder(provider=provider, model="m", retry_base_delay=0, inter_batch_delay=0, max_retries=2)
    return IndexPipeline(
        chunker=ChunkBuilder(min_chunk_size=20, max_chunk_size=500),
        embedder=embedder,
        **kwargs,
    )


@pytest.fixture
def docs_dir(tmp_path):
    (tmp_path / "guide").mkdir()
    (tmp_path / "index.md").write_text(PAGE, encoding="utf-8")
    (tmp_path / "guide" / "setup.md").write_text(PAGE.replace("Client", "Setup"), encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not markdown", encoding="utf-8")
    return tmp_path


def test_discover_markdown_files(docs_dir):
    files = _pipeline(FakeProvider()).discover_markdown_files(docs_dir)

    assert [f.relative_to(docs_dir).as_posix() for f in files] == ["guide/setup.md", "index.md"]


def test_discover_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        _pipeline(FakeProvider()).discover_markdown_files(tmp_path / "nope")


def test_load_documents_uses_relative_urls(docs_dir):
    documents = _pipeline(FakeProvider()).load_documents(docs_dir)

    assert [d.url for d in documents] == ["guide/setup.md", "index.md"]
    assert all(d.site_type == "local" for d in documents)


@pytest.mark.asyncio
async def test_build_from_directory(docs_dir):
    provider = FakeProvider()

    build = await _pipeline(provider).build_from_directory(docs_dir)

    assert build.stats["documents_processed"] == 2
    assert build.stats["documents_failed"] == 0
    assert build.stats["chunks_created"] == 4
    assert build.stats["embeddings_generated"] == 4
    assert len(build.engine) == 4
    assert len({c.id for c in build.chunks}) == 4
    assert build.embedding_stats.total_tokens == 40
    assert build.stats["chunking"]["total_chunks"] == 4


@pytest.mark.asyncio
async def test_unparseable_documents_are_skipped():
    documents = [RawDocument(text=None, url="broken.md"), RawDocument(text=PAGE, url="ok.md")]

    build = await _pipeline(FakeProvider()).build_index(documents)

    assert build.stats["documents_processed"] == 1
    assert build.stats["documents_failed"] == 1
    assert any(w.startswith("Failed to parse broken.md") for w in build.warnings)
    assert len(build.engine) == 2


@pytest.mark.asyncio
async def test_corpus_budget_is_applied():
    documents = [RawDocument(text=PAGE, url=f"page-{i}.md") for i in range(3)]

    build = await _pipeline(FakeProvider(), max_total_chunks=2).build_index(documents)

    assert len(build.chunks) == 2
    assert build.stats["chunks_created"] == 2
    assert "Corpus limited to 2 of 6 chunks" in build.warnings


@pytest.mark.asyncio
async def test_embedding_failure_produces_no_index():
    with pytest.raises(NetworkError):
        await _pipeline(FakeProvider(failures=5)).build_index([RawDocument(text=PAGE, url="a.md")])


@pytest.mark.asyncio
async def test_no_documents_builds_empty_engine():
    provider = FakeProvider()

    build = await _pipeline(provider).build_index([])

    assert len(build.engine) == 0
    assert provider.calls == []
