"""
Tests for the Jina reranker, against a mocked HTTP transport.
"""

import json

import httpx
import pytest

from ragweave.core.rerank.jina import JinaReranker
from ragweave.utils.exceptions import ConfigurationError, RerankError


def reranker_with(handler) -> JinaReranker:
    reranker = JinaReranker(api_key="jina-test", model="jina-reranker-v2", base_url="https://rerank.test/v1/")
    reranker._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return reranker


@pytest.mark.unit
class TestJinaReranker:
    """Test Jina reranker."""

    async def test_scores_follow_document_order(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "results": [
                        {"index": 1, "relevance_score": 0.9},
                        {"index": 0, "relevance_score": 0.2},
                    ]
                },
            )

        reranker = reranker_with(handler)
        scores = await reranker.rerank("capital of Germany", ["Paris", "Berlin", "Madrid"])
        await reranker.close()

        assert scores == [0.2, 0.9, 0.0]
        assert str(requests[0].url) == "https://rerank.test/v1/rerank"
        body = json.loads(requests[0].content)
        assert body["top_n"] == 3
        assert body["model"] == "jina-reranker-v2"

    async def test_no_documents(self):
        reranker = reranker_with(lambda request: httpx.Response(500))

        assert await reranker.rerank("query", []) == []

    async def test_http_error(self):
        reranker = reranker_with(lambda request: httpx.Response(503))

        with pytest.raises(RerankError, match="Jina rerank API error"):
            await reranker.rerank("query", ["doc"])

    async def test_empty_results(self):
        reranker = reranker_with(lambda request: httpx.Response(200, json={"results": []}))

        with pytest.raises(RerankError, match="no results"):
            await reranker.rerank("query", ["doc"])

    def test_api_key_required(self):
        with pytest.raises(ConfigurationError):
            JinaReranker(api_key=None)
