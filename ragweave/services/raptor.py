"""
Hierarchical summarizer (RAPTOR).

Builds a tree of summaries over a document's chunks. Each layer reduces the
vectors with UMAP, picks the number of Gaussian mixture components by BIC,
assigns nodes to every cluster whose membership probability exceeds the
threshold and summarizes each cluster with the LLM. The summaries become the
nodes of the next layer until a single root remains or a layer no longer
reduces the node count.
"""

import numpy as np
from pydantic import BaseModel, Field

from ragweave.config import RaptorConfig
from ragweave.core.embeddings.base import Embedder
from ragweave.core.llm.base import LLMProvider
from ragweave.core.tokenizer import Tokenizer
from ragweave.models.parser_config import RaptorSettings
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class SummaryNode(BaseModel):
    """A summary produced by one cluster."""

    content: str
    embedding: list[float]
    layer: int = Field(..., ge=1, description="1 for summaries of base chunks")
    children: list[int] = Field(
        default_factory=list, description="Indices of the summarized nodes in the previous layer"
    )


class RaptorSummarizer:
    """
    Recursive cluster-and-summarize over (content, vector) pairs.

    Usage:
        summarizer = RaptorSummarizer(llm, embedder, tokenizer)
        nodes = await summarizer.build([(chunk.content, chunk.embedding), ...], settings)
    """

    def __init__(
        self,
        llm: LLMProvider,
        embedder: Embedder,
        tokenizer: Tokenizer,
        config: RaptorConfig | None = None,
    ):
        self.llm = llm
        self.embedder = embedder
        self.tokenizer = tokenizer
        self.config = config or RaptorConfig()

    async def build(
        self,
        chunks: list[tuple[str, list[float]]],
        settings: RaptorSettings,
        ctx=None,
    ) -> list[SummaryNode]:
        """
        Summarize chunks layer by layer.

        Args:
            chunks: (content, vector) of the base chunks, in document order
            settings: Cluster and summary settings
            ctx: Optional TaskContext for progress and cancellation

        Returns:
            Summary nodes of every layer, layer by layer

        Raises:
            TaskCancelledError: If cancelled between clusters
            LLMError, EmbeddingError: If a summary cannot be produced
        """
        layer_nodes = [(content, list(vector)) for content, vector in chunks]
        summaries: list[SummaryNode] = []
        layer = 1

        while len(layer_nodes) > 1 and layer <= self.config.max_layers:
            if ctx:
                ctx.check_cancelled()

            if len(layer_nodes) == 2:
                clusters = [[0, 1]]
            else:
                clusters = self.cluster([vector for _, vector in layer_nodes], settings)

            if len(clusters) >= len(layer_nodes):
                logger.debug(
                    f"Layer {layer} brings no reduction, stopping",
                    extra={"nodes": len(layer_nodes), "clusters": len(clusters)},
                )
                break

            new_nodes = []
            for members in clusters:
                if ctx:
                    ctx.check_cancelled()
                node = await self._summarize(layer_nodes, members, layer, settings)
                new_nodes.append(node)

            summaries.extend(new_nodes)
            logger.info(
                f"RAPTOR layer {layer}: {len(layer_nodes)} nodes -> {len(new_nodes)} summaries",
                extra={"layer": layer},
            )
            if ctx:
                await ctx.progress(
                    message=f"RAPTOR layer {layer}: {len(layer_nodes)} -> {len(new_nodes)} nodes."
                )

            layer_nodes = [(node.content, node.embedding) for node in new_nodes]
            layer += 1

        return summaries

    def cluster(self, vectors: list[list[float]], settings: RaptorSettings) -> list[list[int]]:
        """
        Soft-cluster vectors.

        Returns:
            Member indices per cluster, each at most `max_cluster` long
        """
        features = self._reduce(np.asarray(vectors, dtype=np.float64), settings.random_seed)
        n_samples = features.shape[0]
        max_k = max(1, min(settings.max_cluster, n_samples - 1))

        gmm = self._best_mixture(features, max_k, settings.random_seed)
        probabilities = gmm.predict_proba(features)

        clusters: dict[int, list[int]] = {}
        for i, probs in enumerate(probabilities):
            assigned = [c for c, p in enumerate(probs) if p > settings.threshold]
            if not assigned:
                assigned = [int(np.argmax(probs))]
            for c in assigned:
                clusters.setdefault(c, []).append(i)

        result = []
        for c in sorted(clusters):
            members = clusters[c]
            for start in range(0, len(members), settings.max_cluster):
                result.append(members[start : start + settings.max_cluster])
        return result

    def _reduce(self, features: np.ndarray, seed: int) -> np.ndarray:
        n_samples, dim = features.shape
        n_components = self.config.umap_n_components
        if dim <= n_components or n_samples <= n_components + 1:
            return features

        from umap import UMAP

        n_neighbors = max(2, min(int((n_samples - 1) ** 0.5), n_samples - 1))
        reducer = UMAP(
            n_neighbors=n_neighbors,
            n_components=n_components,
            metric=self.config.umap_metric,
            random_state=seed,
            init="random" if n_samples < 15 else "spectral",
        )
        return reducer.fit_transform(features)

    def _best_mixture(self, features: np.ndarray, max_k: int, seed: int):
        from sklearn.mixture import GaussianMixture

        best, best_bic = None, float("inf")
        for k in range(1, max_k + 1):
            try:
                gmm = GaussianMixture(n_components=k, random_state=seed)
                gmm.fit(features)
            except (ValueError, np.linalg.LinAlgError) as e:
                logger.warning(f"GMM failed for K={k}: {e}")
                continue
            bic = gmm.bic(features)
            if bic < best_bic:
                best, best_bic = gmm, bic

        if best is None:
            best = GaussianMixture(n_components=1, random_state=seed).fit(features)
        return best

    async def _summarize(
        self,
        layer_nodes: list[tuple[str, list[float]]],
        members: list[int],
        layer: int,
        settings: RaptorSettings,
    ) -> SummaryNode:
        content = "\n".join(layer_nodes[i][0] for i in members)
        prompt = settings.prompt.replace("{cluster_content}", content)

        summary = self.tokenizer.truncate(
            await self.llm.generate(prompt, max_tokens=settings.max_token), settings.max_token
        )

        embedding = await self.embedder.embed(summary)
        return SummaryNode(content=summary, embedding=embedding, layer=layer, children=members)
