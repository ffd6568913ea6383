"""
Jina AI reranker over the `/rerank` HTTP endpoint.
"""

import httpx

from ragweave.core.rerank.base import Reranker
from ragweave.utils.exceptions import ConfigurationError, RerankError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class JinaReranker(Reranker):
    """
    Jina AI reranker (jina-reranker-v2-base-multilingual, jina-reranker-v3, ...).

    Scores are returned aligned to the input documents regardless of the
    order of the `results` list in the response.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "jina-reranker-v2-base-multilingual",
        base_url: str = "https://api.jina.ai/v1",
        timeout: float = 30.0,
    ):
        """
        Initialize Jina reranker.

        Args:
            api_key: Jina API key
            model: Rerank model name
            base_url: API base URL
            timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not api_key:
            raise ConfigurationError("Jina API key is required for reranking")

        self.model = model
        self.base_url = base_url.rstrip("/")
        self.reference = f"{model}@Jina"
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def rerank(self, query: str, documents: list[str]) -> list[float]:
        if not documents:
            return []

        try:
            response = await self._client.post(
                f"{self.base_url}/rerank",
                json={
                    "model": self.model,
                    "query": query,
                    "documents": documents,
                    "top_n": len(documents),
                },
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.error(
                f"Jina rerank API error: {e}",
                extra={"model": self.model, "num_documents": len(documents), "error": str(e)},
            )
            raise RerankError(f"Jina rerank API error: {e}") from e

        return self._parse_scores(payload, len(documents))

    def _parse_scores(self, payload: dict, expected_len: int) -> list[float]:
        """Map `results[].index / relevance_score` back onto document order."""
        results = payload.get("results") if isinstance(payload, dict) else None
        if not results:
            raise RerankError("Jina rerank response has no results")

        scores = [0.0] * expected_len
        for item in results:
            try:
                idx = int(item["index"])
                score = float(item["relevance_score"])
            except (KeyError, TypeError, ValueError):
                continue
            if 0 <= idx < expected_len:
                scores[idx] = score
        return scores

    async def close(self):
        if not self._client.is_closed:
            await self._client.aclose()
