"""Tests for the OpenAI-compatible embedding client."""
import json

import httpx
import pytest

from docvec.embedding_client import OpenAIEmbeddingClient


def _client(handler, api_key: str = "sk-test") -> OpenAIEmbeddingClient:
    return OpenAIEmbeddingClient(
        base_url="https://embeddings.test/v1/",
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_embed_posts_batch_and_orders_by_index():
    """Test the request shape and that vectors follow the response index."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [0.0, 1.0]},
                    {"index": 0, "embedding": [1.0, 0.0]},
                ],
                "usage": {"prompt_tokens": 6, "total_tokens": 6},
            },
        )

    response = await _client(handler).embed(["first", "second"], model="text-embedding-3-small")

    assert response.vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert response.tokens_used == 6

    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://embeddings.test/v1/embeddings"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert json.loads(request.content) == {
        "model": "text-embedding-3-small",
        "input": ["first", "second"],
        "encoding_format": "float",
    }


@pytest.mark.asyncio
async def test_no_authorization_header_without_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})

    response = await _client(handler, api_key="").embed(["text"], model="local-model")

    assert seen["auth"] is None
    assert response.tokens_used == 0


@pytest.mark.asyncio
async def test_http_errors_propagate():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "rate limited"}})

    with pytest.raises(httpx.HTTPStatusError):
        await _client(handler).embed(["text"], model="m")


@pytest.mark.asyncio
async def test_connection_errors_propagate():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(httpx.ConnectError):
        await _client(handler).embed(["text"], model="m")


@pytest.mark.asyncio
async def test_vector_count_mismatch_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})

    with pytest.raises(ValueError):
        await _client(handler).embed(["a", "b"], model="m")
