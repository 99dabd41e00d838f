"""
Two-tier response cache for single-turn questions.

- Exact tier: normalised query -> answer, O(1), expires after a TTL.
- Semantic tier: query embedding -> nearest cached answer with cosine
  similarity >= threshold; bounded, evicting least-used then oldest.

Multi-turn conversations are never cached; callers skip both tiers when
history is present.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..domain.entities import CachedResponse, utcnow
from ..domain.repositories import IEmbeddingProvider
from ..exceptions import ProviderError
from .text_analysis import normalize_query
from .vector_math import cosine_similarity

logger = logging.getLogger(__name__)


def _preview(text: str, length: int = 50) -> str:
    return text if len(text) <= length else text[:length] + "..."


@dataclass
class CacheStats:
    """Cache statistics."""

    exact_hits: int = 0
    semantic_hits: int = 0
    misses: int = 0
    exact_entries: int = 0
    semantic_entries: int = 0
    evictions: int = 0

    @property
    def hits(self) -> int:
        return self.exact_hits + self.semantic_hits

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class ResponseCache:
    """
    Exact + semantic cache over (query, answer) pairs.

    Args:
        embedder: Embedding provider for the semantic tier (None disables it).
        ttl_seconds: Lifetime of entries in both tiers.
        similarity_threshold: Minimum cosine similarity for a semantic hit.
        max_semantic_entries: Semantic tier capacity.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        embedder: Optional[IEmbeddingProvider] = None,
        ttl_seconds: int = 1800,
        similarity_threshold: float = 0.95,
        max_semantic_entries: int = 500,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.embedder = embedder
        self.ttl_seconds = ttl_seconds
        self.similarity_threshold = similarity_threshold
        self.max_semantic_entries = max_semantic_entries
        self._clock = clock
        self._exact: Dict[str, CachedResponse] = {}
        self._semantic: List[CachedResponse] = []
        self._stats = CacheStats()

    # ---- keys ----------------------------------------------------------------

    @staticmethod
    def cache_key(query: str) -> str:
        """sha256 of the normalised query, first 16 hex chars."""
        normalized = normalize_query(query)
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]

    def _is_expired(self, entry: CachedResponse) -> bool:
        if self.ttl_seconds <= 0:
            return False
        return entry.age_seconds(self._clock()) > self.ttl_seconds

    # ---- exact tier ----------------------------------------------------------

    def get_exact(self, query: str) -> Optional[CachedResponse]:
        key = self.cache_key(query)
        entry = self._exact.get(key)
        if entry is not None and self._is_expired(entry):
            del self._exact[key]
            entry = None
        if entry is None:
            return None
        entry.touch()
        self._stats.exact_hits += 1
        logger.info(f"Cache HIT (exact) for '{_preview(query)}' (key {key[-8:]})")
        return entry

    def put_exact(self, query: str, answer: str, sources: Sequence[str] = ()) -> CachedResponse:
        entry = CachedResponse(
            query=query, answer=answer, sources=list(sources), cached_at=self._clock()
        )
        self._exact[self.cache_key(query)] = entry
        return entry

    # ---- semantic tier -------------------------------------------------------

    async def _embed(self, text: str) -> List[float]:
        if self.embedder is None:
            return []
        try:
            return list(await self.embedder.embed(text))
        except ProviderError as e:
            logger.warning(f"Semantic cache embedding failed: {e}")
            return []

    def _nearest(self, vector: Sequence[float]) -> Tuple[Optional[CachedResponse], float]:
        best, best_sim = None, 0.0
        for entry in self._semantic:
            if self._is_expired(entry):
                continue
            sim = cosine_similarity(vector, entry.query_embedding)
            if sim > best_sim:
                best, best_sim = entry, sim
        return best, best_sim

    async def get_semantic(
        self, query: str, query_vector: Optional[Sequence[float]] = None
    ) -> Optional[CachedResponse]:
        """Nearest cached answer whose query is similar enough, if any."""
        if self.embedder is None and query_vector is None:
            return None
        vector = list(query_vector) if query_vector is not None else await self._embed(query)
        if not vector:
            return None
        best, sim = self._nearest(vector)
        if best is None or sim < self.similarity_threshold:
            return None
        best.touch()
        self._stats.semantic_hits += 1
        logger.info(
            f"Cache HIT (semantic) '{_preview(query, 40)}' ~ "
            f"'{_preview(best.query, 40)}' (similarity {sim:.4f})"
        )
        return best

    async def put_semantic(
        self,
        query: str,
        answer: str,
        sources: Sequence[str] = (),
        query_vector: Optional[Sequence[float]] = None,
    ) -> bool:
        """
        Add an entry to the semantic tier.

        Returns:
            True if stored; False when no embedding is available or a
            near-identical query is already cached.
        """
        vector = list(query_vector) if query_vector is not None else await self._embed(query)
        if not vector:
            return False

        self._semantic = [e for e in self._semantic if not self._is_expired(e)]
        _, sim = self._nearest(vector)
        if sim > self.similarity_threshold:
            return False

        self._semantic.append(
            CachedResponse(
                query=query,
                answer=answer,
                sources=list(sources),
                query_embedding=vector,
                cached_at=self._clock(),
            )
        )
        self._evict_semantic()
        logger.info(
            f"Added to semantic cache: '{_preview(query, 40)}' (size {len(self._semantic)})"
        )
        return True

    def _evict_semantic(self) -> None:
        overflow = len(self._semantic) - self.max_semantic_entries
        if overflow <= 0:
            return
        victims = sorted(self._semantic, key=lambda e: e.eviction_key())[:overflow]
        victim_ids = {e.id for e in victims}
        self._semantic = [e for e in self._semantic if e.id not in victim_ids]
        self._stats.evictions += overflow

    # ---- combined ------------------------------------------------------------

    async def lookup(
        self, query: str, query_vector: Optional[Sequence[float]] = None
    ) -> Optional[CachedResponse]:
        """Exact tier first, then semantic; counts a miss when both fail."""
        entry = self.get_exact(query)
        if entry is None:
            entry = await self.get_semantic(query, query_vector)
        if entry is None:
            self._stats.misses += 1
        return entry

    def purge_expired(self) -> int:
        before = len(self._exact) + len(self._semantic)
        self._exact = {k: v for k, v in self._exact.items() if not self._is_expired(v)}
        self._semantic = [e for e in self._semantic if not self._is_expired(e)]
        return before - len(self._exact) - len(self._semantic)

    def clear(self) -> None:
        self._exact.clear()
        self._semantic.clear()
        self._stats = CacheStats()
        logger.info("Response cache cleared")

    def stats(self) -> CacheStats:
        self._stats.exact_entries = len(self._exact)
        self._stats.semantic_entries = len(self._semantic)
        return self._stats
