"""
Reciprocal Rank Fusion of lexical and semantic rankings.

RRF combines rank positions rather than raw scores, so the keyword-tier
points and cosine similarities never need to share a scale.
"""

from collections import defaultdict
from typing import Dict, List, Sequence

from ..domain.value_objects import ScoredDocument

DEFAULT_RRF_K = 60


def rrf_term(rank: int, k: int = DEFAULT_RRF_K) -> float:
    """Contribution of one list in which a document holds `rank` (1-based)."""
    return 1.0 / (k + rank)


def max_rrf_score(k: int = DEFAULT_RRF_K, lists: int = 2) -> float:
    """Theoretical maximum: the document is ranked #1 in every list."""
    return lists / (k + 1)


class RankFusion:
    """
    Merges a lexical and a semantic ranking into one relevance order.

    The fused score of a document is the sum of 1/(K + rank) over the
    lists it appears in. The reported relevance is that sum normalised by
    2/(K+1), capped at 1.0, and multiplied by an optional per-source scale.
    """

    def __init__(self, rrf_k: int = DEFAULT_RRF_K, relevance_scale: float = 1.0):
        if rrf_k <= 0:
            raise ValueError("rrf_k must be positive")
        self.rrf_k = rrf_k
        self.relevance_scale = relevance_scale

    def fuse_results(
        self,
        lexical_results: Sequence[ScoredDocument],
        semantic_results: Sequence[ScoredDocument],
        top_k: int = 10,
    ) -> List[ScoredDocument]:
        """
        Fuse two rankings using RRF.

        Args:
            lexical_results: Keyword ranking, best first.
            semantic_results: Embedding ranking, best first.
            top_k: Maximum number of results.

        Returns:
            Fused results sorted by fused score, ranked 1..N, each keeping
            its component lexical/semantic scores and ranks.
        """
        scores: Dict[str, float] = defaultdict(float)
        fused: Dict[str, ScoredDocument] = {}

        for position, doc in enumerate(lexical_results, start=1):
            rank = doc.rank or position
            scores[doc.doc_id] += rrf_term(rank, self.rrf_k)
            entry = fused.setdefault(doc.doc_id, ScoredDocument(item=doc.item, score=0.0))
            entry.lexical_score = doc.lexical_score or doc.score
            entry.lexical_rank = rank

        for position, doc in enumerate(semantic_results, start=1):
            rank = doc.rank or position
            scores[doc.doc_id] += rrf_term(rank, self.rrf_k)
            entry = fused.setdefault(doc.doc_id, ScoredDocument(item=doc.item, score=0.0))
            entry.semantic_score = doc.semantic_score or doc.score
            entry.semantic_rank = rank

        ceiling = max_rrf_score(self.rrf_k)
        ordered = sorted(scores.items(), key=lambda x: x[1], reverse=True)[:top_k]

        results = []
        for rank, (doc_id, raw) in enumerate(ordered, start=1):
            entry = fused[doc_id]
            entry.fused_score = raw
            entry.score = self.normalize(raw, ceiling)
            entry.rank = rank
            results.append(entry)
        return results

    def normalize(self, raw: float, ceiling: float = 0.0) -> float:
        """Map a raw fused score to a [0, 1] relevance, scaled per source."""
        ceiling = ceiling or max_rrf_score(self.rrf_k)
        return min(raw / ceiling, 1.0) * self.relevance_scale
