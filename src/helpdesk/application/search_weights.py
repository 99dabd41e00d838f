"""
Per-intent search weights.

Maps an intent to source multipliers and per-source result budgets used
when merging and assembling context.
"""

from typing import Dict, List, Sequence

from ..domain.entities import SourceKind
from ..domain.value_objects import IntentCategory, ScoredDocument, SearchWeights

DEFAULT_WEIGHTS = SearchWeights(
    ticket_forms=1.0,
    documentation=1.0,
    articles=1.0,
    reference=1.0,
    solutions=1.0,
    ticket_form_top_n=5,
    documentation_top_n=5,
)

INTENT_WEIGHTS: Dict[IntentCategory, SearchWeights] = {
    IntentCategory.TICKET_LOOKUP: SearchWeights(0.5, 2.0, 1.5, 0.3, 1.5, 3, 5),
    IntentCategory.TICKET_REQUEST: SearchWeights(2.5, 0.5, 0.3, 0.2, 0.5, 10, 3),
    IntentCategory.HOW_TO: SearchWeights(0.5, 2.5, 1.5, 0.3, 1.0, 3, 8),
    IntentCategory.LOOKUP: SearchWeights(0.2, 0.5, 0.3, 3.0, 0.3, 2, 2),
    IntentCategory.TROUBLESHOOTING: SearchWeights(1.5, 2.0, 1.5, 0.3, 2.0, 5, 6),
    IntentCategory.NETWORK: SearchWeights(1.5, 2.0, 1.5, 0.3, 2.0, 5, 6),
    IntentCategory.SAP: SearchWeights(1.0, 1.5, 1.0, 2.0, 1.5, 5, 5),
    IntentCategory.GENERAL: DEFAULT_WEIGHTS,
}


def weights_for(intent: IntentCategory) -> SearchWeights:
    """Weights for an intent; unknown intents get the neutral profile."""
    return INTENT_WEIGHTS.get(intent, DEFAULT_WEIGHTS)


def apply_weights(
    hits: Sequence[ScoredDocument],
    kind: SourceKind,
    weights: SearchWeights,
) -> List[ScoredDocument]:
    """Scale the scores of one source's hits by that source's weight."""
    factor = weights.weight_for(kind)
    return [hit.scaled(factor) for hit in hits]


def merge_weighted(
    weighted_lists: Sequence[Sequence[ScoredDocument]],
    max_results: int = 15,
) -> List[ScoredDocument]:
    """
    Merge weighted hit lists, keep the best score per document id and
    return the top `max_results` by weighted score.
    """
    best: Dict[str, ScoredDocument] = {}
    for hits in weighted_lists:
        for hit in hits:
            current = best.get(hit.doc_id)
            if current is None or hit.score > current.score:
                best[hit.doc_id] = hit
    ordered = sorted(best.values(), key=lambda h: h.score, reverse=True)
    return ordered[:max_results]
