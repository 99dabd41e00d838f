"""
Keyword-tier lexical scoring over an in-memory document collection.

Each query term earns points in the first field tier it matches
(primary > keywords > body), so a term never scores twice. The sum is
then scaled by query coverage and by how often the item was validated.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from ..domain.value_objects import Retrievable, ScoredDocument
from .text_analysis import extract_search_terms, normalize_for_search

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LexicalProfile:
    """Points awarded per matched term in each field tier."""

    primary_weight: float = 2.5
    keyword_weight: float = 2.0
    body_weight: float = 1.0
    usage_boost_step: float = 0.1
    usage_boost_cap: float = 0.5


# Harvested ticket solutions: system/category field is the strongest signal
SOLUTION_PROFILE = LexicalProfile()

# Reference entries, ticket forms and articles: the name is the strongest signal
REFERENCE_PROFILE = LexicalProfile(primary_weight=2.0, keyword_weight=1.5, body_weight=1.0)


class LexicalScorer:
    """
    Scores documents by keyword overlap with the query.

    Matching is done on accent-folded lowercase text on both sides, so
    "conexión" and "conexion" are the same term.
    """

    def __init__(self, profile: LexicalProfile = SOLUTION_PROFILE):
        self.profile = profile

    def score(self, terms: Sequence[str], item: Retrievable) -> float:
        """Score a single item against pre-extracted search terms."""
        if not terms:
            return 0.0

        primary, keywords, body = (normalize_for_search(f) for f in item.lexical_fields())
        keyword_items = [k.strip() for k in keywords.split(",") if k.strip()]

        score = 0.0
        matched = 0
        for term in terms:
            if term in primary:
                score += self.profile.primary_weight
            elif any(term in k for k in keyword_items):
                score += self.profile.keyword_weight
            elif term in body:
                score += self.profile.body_weight
            else:
                continue
            matched += 1

        if matched == 0:
            return 0.0

        score *= 1.0 + matched / len(terms)

        usage = item.usage_count
        if usage > 0:
            score *= 1.0 + min(usage * self.profile.usage_boost_step, self.profile.usage_boost_cap)
        return score

    def search(
        self,
        query: str,
        documents: Sequence[Retrievable],
        max_results: int = 20,
    ) -> List[ScoredDocument]:
        """
        Rank documents for a query.

        Args:
            query: Raw user query.
            documents: Collection to score.
            max_results: Truncation limit.

        Returns:
            Hits with score > 0, best first, ranked 1..N.
        """
        terms = [normalize_for_search(t) for t in extract_search_terms(query)]
        if not terms or max_results <= 0:
            return []

        scored = []
        for item in documents:
            value = self.score(terms, item)
            if value > 0:
                scored.append((item, value))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        results = [
            ScoredDocument(item=item, score=value, rank=rank, lexical_score=value, lexical_rank=rank)
            for rank, (item, value) in enumerate(scored[:max_results], start=1)
        ]
        logger.debug(f"Lexical search '{query}': {len(scored)} matches, kept {len(results)}")
        return results
