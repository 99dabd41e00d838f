"""
Embedding-based semantic scoring.

The query is embedded once per search; documents without a vector, or
with a vector of another dimension, are skipped (similarity 0).
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..domain.repositories import IEmbeddingProvider
from ..domain.value_objects import Retrievable, ScoredDocument
from ..exceptions import ProviderError
from .vector_math import cosine_similarities

logger = logging.getLogger(__name__)


class SemanticScorer:
    """Cosine-similarity ranking against precomputed document embeddings."""

    def __init__(self, embedder: Optional[IEmbeddingProvider], floor: float = 0.20):
        self.embedder = embedder
        self.floor = floor

    async def embed_query(self, query: str) -> List[float]:
        """
        Embed the query, degrading to an empty vector on provider failure.

        An unconfigured embedder also yields an empty vector.
        """
        if self.embedder is None or not query.strip():
            return []
        try:
            return list(await self.embedder.embed(query))
        except ProviderError as e:
            logger.warning(f"Query embedding failed, semantic ranking skipped: {e}")
            return []

    def rank(
        self,
        query_vector: Sequence[float],
        documents: Sequence[Retrievable],
        max_results: int = 20,
        floor: Optional[float] = None,
    ) -> List[ScoredDocument]:
        """
        Rank documents against an already computed query vector.

        Returns:
            Hits with similarity >= floor, best first, ranked 1..N.
        """
        floor = self.floor if floor is None else floor
        dim = len(query_vector)
        if dim == 0 or max_results <= 0:
            return []

        candidates = [d for d in documents if len(d.embedding) == dim]
        if not candidates:
            return []

        matrix = np.asarray([d.embedding for d in candidates], dtype=np.float64)
        sims = cosine_similarities(query_vector, matrix)

        order = np.argsort(-sims, kind="stable")
        results: List[ScoredDocument] = []
        for idx in order:
            sim = float(sims[idx])
            if sim < floor:
                break
            rank = len(results) + 1
            results.append(
                ScoredDocument(
                    item=candidates[idx],
                    score=sim,
                    rank=rank,
                    semantic_score=sim,
                    semantic_rank=rank,
                )
            )
            if len(results) >= max_results:
                break
        return results

    async def search(
        self,
        query: str,
        documents: Sequence[Retrievable],
        max_results: int = 20,
        floor: Optional[float] = None,
    ) -> List[ScoredDocument]:
        """Embed the query and rank documents against it."""
        vector = await self.embed_query(query)
        return self.rank(vector, documents, max_results=max_results, floor=floor)
