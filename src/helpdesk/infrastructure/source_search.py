"""
Per-source hybrid search.

Each knowledge source is searched with its own lexical profile, semantic
floor and relevance scale; the two rankings are merged with RRF.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from ..config import get_config
from ..domain.repositories import IEmbeddingProvider
from ..domain.value_objects import Retrievable, ScoredDocument
from .lexical_scorer import REFERENCE_PROFILE, SOLUTION_PROFILE, LexicalProfile, LexicalScorer
from .rank_fusion import RankFusion
from .semantic_scorer import SemanticScorer

logger = logging.getLogger(__name__)


class HybridSourceSearcher:
    """
    Lexical + semantic search over one collection, fused with RRF.

    Args:
        embedder: Embedding provider (None means lexical-only).
        profile: Lexical tier weights for this source.
        semantic_floor: Minimum cosine similarity kept by the semantic list.
        relevance_scale: Multiplier applied to the normalised fused score.
        rrf_k: RRF constant.
        retrieve_count: Candidates taken from each list before fusion.
        name: Source name for logs.
    """

    def __init__(
        self,
        embedder: Optional[IEmbeddingProvider],
        profile: LexicalProfile = REFERENCE_PROFILE,
        semantic_floor: float = 0.15,
        relevance_scale: float = 1.0,
        rrf_k: int = 60,
        retrieve_count: int = 20,
        name: str = "source",
    ):
        self.lexical = LexicalScorer(profile)
        self.semantic = SemanticScorer(embedder, floor=semantic_floor)
        self.fusion = RankFusion(rrf_k=rrf_k, relevance_scale=relevance_scale)
        self.retrieve_count = retrieve_count
        self.name = name

    async def embed_query(self, query: str) -> List[float]:
        return await self.semantic.embed_query(query)

    def rank(
        self,
        query: str,
        documents: Sequence[Retrievable],
        query_vector: Sequence[float] = (),
        top_k: int = 10,
    ) -> List[ScoredDocument]:
        """Fuse lexical and semantic rankings for an already embedded query."""
        if not documents or not query.strip():
            return []
        lexical = self.lexical.search(query, documents, max_results=self.retrieve_count)
        semantic = self.semantic.rank(query_vector, documents, max_results=self.retrieve_count)
        results = self.fusion.fuse_results(lexical, semantic, top_k=top_k)
        for hit in results:
            hit.item.search_score = hit.score
        logger.debug(
            f"[{self.name}] '{query[:40]}': lexical={len(lexical)} semantic={len(semantic)} "
            f"fused={len(results)}"
        )
        return results

    async def search(
        self,
        query: str,
        documents: Sequence[Retrievable],
        top_k: int = 10,
        query_vector: Optional[Sequence[float]] = None,
    ) -> List[ScoredDocument]:
        """
        Search one collection.

        Args:
            query: User query.
            documents: Collection snapshot.
            top_k: Maximum fused results.
            query_vector: Precomputed query embedding; embedded here if None.
        """
        if query_vector is None:
            query_vector = await self.embed_query(query)
        return self.rank(query, documents, query_vector, top_k)

    async def search_many(
        self,
        queries: Sequence[str],
        documents: Sequence[Retrievable],
        top_k: int = 10,
    ) -> List[ScoredDocument]:
        """
        Search several sub-queries concurrently and merge by best score.

        A document hit by more than one sub-query keeps its highest score.
        """
        batches = await asyncio.gather(*(self.search(q, documents, top_k) for q in queries))
        best = {}
        for batch in batches:
            for hit in batch:
                current = best.get(hit.doc_id)
                if current is None or hit.score > current.score:
                    best[hit.doc_id] = hit
        merged = sorted(best.values(), key=lambda h: h.score, reverse=True)[:top_k]
        for rank, hit in enumerate(merged, start=1):
            hit.rank = rank
        return merged

    async def best_document_for_keyword(
        self, keyword: str, documents: Sequence[Retrievable]
    ) -> Optional[Retrievable]:
        """Highest-ranked document for a single keyword, if any matches."""
        results = await self.search(keyword, documents, top_k=1)
        return results[0].item if results else None


def reference_searcher(embedder: Optional[IEmbeddingProvider], config=None) -> HybridSourceSearcher:
    """Searcher for reference data, ticket forms and articles."""
    config = config or get_config()
    return HybridSourceSearcher(
        embedder,
        profile=REFERENCE_PROFILE,
        semantic_floor=config.reference_semantic_floor,
        relevance_scale=1.0,
        rrf_k=config.rrf_k,
        retrieve_count=config.reference_retrieve_count,
        name="reference",
    )


def solution_searcher(embedder: Optional[IEmbeddingProvider], config=None) -> HybridSourceSearcher:
    """Searcher for harvested ticket solutions."""
    config = config or get_config()
    return HybridSourceSearcher(
        embedder,
        profile=SOLUTION_PROFILE,
        semantic_floor=config.solution_semantic_floor,
        relevance_scale=config.solution_relevance_scale,
        rrf_k=config.rrf_k,
        retrieve_count=config.solution_retrieve_count,
        name="solutions",
    )
