"""Pytest configuration and fixtures for unit tests."""
from typing import List, Optional

import numpy as np
import pytest

from docvec.embedding_client import EmbeddingProvider, ProviderResponse
from docvec.rag.chunker import Chunk, ChunkMetadata
from docvec.rag.embedder import EmbeddedChunk, Embedder


class FakeProvider(EmbeddingProvider):
    """In-memory provider returning deterministic vectors.

    Each text gets [len(text), 1.0, position-in-call + 1]. Every call
    reports 10 tokens per input unless usage_per_call is given.
    """

    def __init__(self, failures: int = 0, dimension: int = 3, usage_per_call: Optional[List[int]] = None):
        self.failures = failures
        self.dimension = dimension
        self.usage_per_call = list(usage_per_call or [])
        self.calls: List[List[str]] = []
        self.models: List[str] = []

    async def embed(self, texts: List[str], model: str) -> ProviderResponse:
        self.calls.append(list(texts))
        self.models.append(model)

        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("provider unavailable")

        vectors = [
            ([float(len(text)), 1.0, float(i + 1)] + [0.5] * (self.dimension - 3))[: self.dimension]
            for i, text in enumerate(texts)
        ]
        tokens = self.usage_per_call.pop(0) if self.usage_per_call else 10 * len(texts)
        return ProviderResponse(vectors=vectors, tokens_used=tokens)


def make_chunk(
    chunk_id: str,
    chunk_type: str = "guide",
    priority: float = 0.5,
    markdown: str = "Some documentation text.",
    title: str = None,
    category: str = None,
    function_name: str = None,
    parameters: List[str] = None,
    has_code_example: bool = False,
) -> Chunk:
    return Chunk(
        id=chunk_id,
        markdown=markdown,
        metadata=ChunkMetadata(
            type=chunk_type,
            title=title or chunk_id,
            category=category,
            function_name=function_name,
            parameters=parameters or [],
            priority=priority,
            has_code_example=has_code_example,
            word_count=len(markdown.split()),
            source_section_id="section-1",
        ),
    )


def make_embedded(chunk_id: str, embedding: List[float], **kwargs) -> EmbeddedChunk:
    chunk = make_chunk(chunk_id, **kwargs)
    return EmbeddedChunk(
        id=chunk.id,
        markdown=chunk.markdown,
        metadata=chunk.metadata,
        embedding=np.asarray(embedding, dtype=np.float32),
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def embedder(fake_provider: FakeProvider) -> Embedder:
    """Embedder over the fake provider with no waiting between calls."""
    return Embedder(
        provider=fake_provider,
        model="test-embedding-model",
        batch_size=100,
        max_retries=3,
        retry_base_delay=0,
        inter_batch_delay=0,
    )


@pytest.fixture
def threshold_corpus() -> List[EmbeddedChunk]:
    """Three chunks: function [1,0,0], guide [0,1,0], example [0.9,0.1,0]."""
    return [
        make_embedded("fn", [1.0, 0.0, 0.0], chunk_type="function", priority=0.5),
        make_embedded("guide", [0.0, 1.0, 0.0], chunk_type="guide", priority=0.5),
        make_embedded(
            "example",
            [0.9, 0.1, 0.0],
            chunk_type="example",
            priority=0.5,
            has_code_example=True,
        ),
    ]


@pytest.fixture
def api_markdown() -> str:
    return """---
title: Client Library
---

The client library talks to the service over HTTP and keeps a pool of connections open.

## API Reference

### createClient(options)

Creates a new client instance. @param options Connection settings for the client.
Returns a configured client that can be reused across requests.

### close()

Closes every open connection held by the client and releases its resources.
Returns nothing once all pending requests have finished.

## Examples

Create a client and close it when done:

```js
const client = createClient({ retries: 2 });
```

Then shut it down:

```js
client.close();
```

## Getting Started Guide

Install the package with your package manager, then import the client module.
Read the configuration section before connecting to a production service.

## Notes

Short.
"""
