"""
Confidence gate.

Decides whether retrieval found enough to justify calling the generator.
When it did not, a fixed answer pointing at a ticket form is returned
instead of a generated one.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..domain.value_objects import DocumentationPage, ScoredDocument

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_TEXT = (
    "No encuentro información específica sobre este tema en mi base de conocimientos. "
    "Te recomiendo abrir un ticket de soporte para que el equipo de IT pueda ayudarte "
    "con tu consulta."
)
DEFAULT_LINK_LABEL = "Abrir ticket de soporte general"


@dataclass
class GateDecision:
    """Outcome of the confidence check."""

    best_score: float
    passed: bool
    answer: Optional[str] = None


def _top(hits: Sequence[ScoredDocument]) -> float:
    return max((h.score for h in hits), default=0.0)


class ConfidenceGate:
    """
    Args:
        threshold: Minimum best score for generation.
        documentation_score: Score credited when any documentation page was found.
        fallback_link: Ticket link used when no ticket form was retrieved.
        form_marker: Link fragment identifying ticket forms.
    """

    def __init__(
        self,
        threshold: float = 0.65,
        documentation_score: float = 0.7,
        fallback_link: str = "",
        form_marker: str = "/servicedesk",
    ):
        self.threshold = threshold
        self.documentation_score = documentation_score
        self.fallback_link = fallback_link
        self.form_marker = form_marker

    def best_score(
        self,
        articles: Sequence[ScoredDocument],
        context_docs: Sequence[ScoredDocument],
        documentation: Sequence[DocumentationPage],
        solutions: Sequence[ScoredDocument],
    ) -> float:
        return max(
            _top(articles),
            _top(context_docs),
            _top(solutions),
            self.documentation_score if documentation else 0.0,
        )

    def low_confidence_answer(self, context_docs: Sequence[ScoredDocument]) -> str:
        forms = sorted(
            (h for h in context_docs if h.item.is_ticket_form(self.form_marker)),
            key=lambda h: h.score,
            reverse=True,
        )
        if forms:
            best = forms[0].item
            link = f"[{best.name}]({best.link})"
        else:
            link = f"[{DEFAULT_LINK_LABEL}]({self.fallback_link})"
        return f"{LOW_CONFIDENCE_TEXT}\n\n{link}"

    def evaluate(
        self,
        articles: Sequence[ScoredDocument] = (),
        context_docs: Sequence[ScoredDocument] = (),
        documentation: Sequence[DocumentationPage] = (),
        solutions: Sequence[ScoredDocument] = (),
    ) -> GateDecision:
        """
        Generation is blocked only when the best score is under the
        threshold and neither articles nor documentation pages were found.
        """
        best = self.best_score(articles, context_docs, documentation, solutions)
        if best < self.threshold and not articles and not documentation:
            logger.warning(
                f"Low confidence: best score {best:.3f} < {self.threshold}, "
                f"no articles or documentation; skipping generation"
            )
            return GateDecision(best, False, self.low_confidence_answer(context_docs))
        return GateDecision(best, True)
