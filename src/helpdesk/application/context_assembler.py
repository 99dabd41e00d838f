"""
Context assembly for answer generation.

Renders retrieved material into labelled sections, ordered by the intent's
source weights, and keeps the result inside the context token budget.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..domain.entities import SourceDocument, TicketSolution
from ..domain.value_objects import (
    ChatMessage,
    DocumentationPage,
    ScoredDocument,
    SearchWeights,
    TicketDetails,
)

logger = logging.getLogger(__name__)

NO_CONTEXT_TEXT = "No relevant information found in the Knowledge Base or reference data."
TRIM_MARKER = "\n\n[Context trimmed - token budget reached]"
MESSAGE_OVERHEAD_TOKENS = 4

SOLUTIONS_HEADER = "=== PROVEN SOLUTIONS FROM SIMILAR TICKETS ==="
TICKETS_HEADER = "=== TICKET DETAILS ==="
FORMS_HEADER = "=== JIRA TICKET FORMS - USE THESE FOR SUPPORT REQUESTS ==="
DOCS_HEADER = "=== CONFLUENCE DOCUMENTATION (How-To Guides & Procedures) ==="
REFERENCE_HEADER = "=== REFERENCE DATA (Centres, Companies, etc.) ==="
ARTICLES_HEADER = "=== KNOWLEDGE BASE ARTICLES (Internal Procedures) ==="

MAX_SOLUTIONS = 3
MAX_SOLUTION_STEPS = 3
MAX_FORMS = 8
MAX_DOCS = 6
MAX_REFERENCE = 12
MAX_ARTICLES = 4
MAX_DOC_CHARS = 8000
MAX_ARTICLE_CHARS = 1500
MAX_SOLUTION_CHARS = 1000
MAX_STEP_CHARS = 300
MAX_FORM_DESCRIPTION_CHARS = 400
MAX_REFERENCE_CHARS = 600
MAX_FIELD_CHARS = 200


def _clip(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    return len(text) // chars_per_token if text else 0


class ContextAssembler:
    """
    Builds the prompt context from every retrieval source.

    Args:
        token_budget: Maximum context size in tokens.
        chars_per_token: Characters per token used for estimation.
        form_marker: Link fragment identifying ticket forms.
    """

    def __init__(
        self,
        token_budget: int = 24000,
        chars_per_token: int = 4,
        form_marker: str = "/servicedesk",
    ):
        self.token_budget = token_budget
        self.chars_per_token = chars_per_token
        self.form_marker = form_marker

    # ---- sections -----------------------------------------------------------

    def _solutions_section(self, solutions: Sequence[TicketSolution]) -> List[str]:
        lines = [
            SOLUTIONS_HEADER,
            "PRIORITY: These are VALIDATED solutions from real resolved incidents.",
            "Use these FIRST before other documentation when applicable.",
            "",
        ]
        for s in solutions[:MAX_SOLUTIONS]:
            lines.append(f"[{s.ticket_id}] System: {s.system or 'General'}")
            lines.append(f"- Problem: {_clip(s.problem, MAX_SOLUTION_CHARS)}")
            lines.append(f"- Solution: {_clip(s.solution, MAX_SOLUTION_CHARS)}")
            if s.steps:
                lines.append("- Steps:")
                lines.extend(
                    f"  - {_clip(step, MAX_STEP_CHARS)}" for step in s.steps[:MAX_SOLUTION_STEPS]
                )
            if s.validation_count > 0:
                lines.append(f"- Validated {s.validation_count} times by users")
            lines.append("")
        return lines

    def _tickets_section(self, tickets: Sequence[TicketDetails]) -> List[str]:
        lines = [TICKETS_HEADER, ""]
        for ticket in tickets:
            lines.append(ticket.render())
            lines.append("")
        return lines

    def _forms_section(self, forms: Sequence[SourceDocument]) -> List[str]:
        lines = [
            FORMS_HEADER,
            "When the user needs help, provide the SPECIFIC ticket link that matches their problem.",
            "CRITICAL: Copy the exact markdown link below - do not use generic portal links!",
            "",
        ]
        for doc in forms[:MAX_FORMS]:
            lines.append(f"TICKET: {doc.name}")
            if doc.description.strip():
                lines.append(f"  Use for: {_clip(doc.description, MAX_FORM_DESCRIPTION_CHARS)}")
            if doc.keywords.strip():
                lines.append(f"  Keywords: {_clip(doc.keywords, MAX_FIELD_CHARS)}")
            lines.append(f"  COPY THIS LINK: [{doc.name}]({doc.link})")
            lines.append("")
        return lines

    def _docs_section(self, pages: Sequence[DocumentationPage]) -> List[str]:
        lines = [
            DOCS_HEADER,
            "Use this documentation to answer user questions. INCLUDE the link in your response!",
            "",
        ]
        for page in pages[:MAX_DOCS]:
            lines.append(f"DOCUMENT: {page.title}")
            if page.url:
                lines.append(f"COPY THIS LINK: [{page.title}]({page.url})")
            else:
                logger.warning(f"Documentation page '{page.title}' has no URL")
            if page.body_excerpt.strip():
                lines.append(f"Content: {_clip(page.body_excerpt, MAX_DOC_CHARS)}")
            lines.append("")
        return lines

    def _reference_section(self, entries: Sequence[SourceDocument]) -> List[str]:
        lines = [
            REFERENCE_HEADER,
            "Use this data to answer questions about company codes, plant names, locations, etc.",
            "",
        ]
        for doc in entries[:MAX_REFERENCE]:
            lines.append(f"ENTRY: {doc.name}")
            if doc.description.strip():
                lines.append(f"  Details: {_clip(doc.description, MAX_REFERENCE_CHARS)}")
            if doc.keywords.strip():
                lines.append(f"  Keywords: {_clip(doc.keywords, MAX_FIELD_CHARS)}")
            for key, value in (doc.additional_data or {}).items():
                lines.append(f"  {key}: {_clip(value, MAX_FIELD_CHARS)}")
            if doc.link:
                lines.append(f"  Link: {doc.link}")
            lines.append(f"  Source: {doc.source_file}")
            lines.append("")
        return lines

    def _articles_section(self, articles: Sequence[SourceDocument]) -> List[str]:
        lines = [ARTICLES_HEADER]
        for article in articles[:MAX_ARTICLES]:
            lines.append(f"--- Article: {article.id} - {article.name} ---")
            if article.description.strip():
                lines.append(f"Summary: {_clip(article.description, MAX_REFERENCE_CHARS)}")
            lines.append(f"Content: {_clip(article.content or '', MAX_ARTICLE_CHARS)}")
            lines.append("")
        return lines

    # ---- assembly -----------------------------------------------------------

    def assemble(
        self,
        weights: SearchWeights,
        articles: Sequence[ScoredDocument] = (),
        context_docs: Sequence[ScoredDocument] = (),
        documentation: Sequence[DocumentationPage] = (),
        solutions: Sequence[ScoredDocument] = (),
        tickets: Sequence[TicketDetails] = (),
    ) -> str:
        """
        Render the context text.

        Args:
            weights: Source weights of the query intent; sections are
                written in descending weight order (stable on ties).
            articles: Knowledge-base article hits.
            context_docs: Reference-data and ticket-form hits.
            documentation: Documentation pages.
            solutions: Ticket-solution hits, rendered first.
            tickets: Fetched ticket details, rendered after solutions.

        Returns:
            The context, or a fixed text when nothing was retrieved.
        """
        seen: Set[str] = set()

        def first_seen(ids_items: List[Tuple[str, object]]) -> list:
            kept = []
            for item_id, item in ids_items:
                if item_id in seen:
                    continue
                seen.add(item_id)
                kept.append(item)
            return kept

        solution_items = first_seen([(h.doc_id, h.item) for h in solutions])
        ranked_docs = sorted(context_docs, key=lambda h: h.score, reverse=True)
        forms = first_seen(
            [(h.doc_id, h.item) for h in ranked_docs if h.item.is_ticket_form(self.form_marker)]
        )
        pages = first_seen([(p.id, p) for p in documentation])
        reference = first_seen(
            [(h.doc_id, h.item) for h in ranked_docs if not h.item.is_ticket_form(self.form_marker)]
        )
        article_items = first_seen([(h.doc_id, h.item) for h in articles])

        if not (solution_items or tickets or forms or pages or reference or article_items):
            return NO_CONTEXT_TEXT

        logger.info(
            f"Assembling context: {len(solution_items)} solutions, {len(tickets)} tickets, "
            f"{len(forms)} forms, {len(pages)} docs, {len(reference)} reference, "
            f"{len(article_items)} articles"
        )

        sections: List[Tuple[float, Callable[[], List[str]], bool]] = [
            (weights.ticket_forms, lambda: self._forms_section(forms), bool(forms)),
            (weights.documentation, lambda: self._docs_section(pages), bool(pages)),
            (weights.reference, lambda: self._reference_section(reference), bool(reference)),
            (weights.articles, lambda: self._articles_section(article_items), bool(article_items)),
        ]

        lines: List[str] = []
        if solution_items:
            lines.extend(self._solutions_section(solution_items))
        if tickets:
            lines.extend(self._tickets_section(tickets))
        for _, render, present in sorted(sections, key=lambda s: s[0], reverse=True):
            if present:
                lines.extend(render())

        return self.trim_to_budget("\n".join(lines))

    # ---- budgets ------------------------------------------------------------

    def trim_to_budget(self, context: str, max_tokens: Optional[int] = None) -> str:
        """
        Cut over-budget context at the last section boundary that fits.

        Falls back to a hard cut when no boundary lies in the second half of
        the allowed length. A trim marker is appended whenever text is cut.
        """
        max_tokens = self.token_budget if max_tokens is None else max_tokens
        max_chars = max_tokens * self.chars_per_token
        if len(context) <= max_chars:
            return context

        logger.warning(
            f"Token budget exceeded: context ~{estimate_tokens(context, self.chars_per_token)} "
            f"tokens, budget {max_tokens} tokens. Trimming."
        )
        cut = context.rfind("\n===", 0, max_chars)
        if cut < 0:
            cut = context.rfind("\n---", 0, max_chars)
        if cut < max_chars // 2:
            cut = max_chars
        return context[:cut] + TRIM_MARKER

    def trim_history(
        self, history: Sequence[ChatMessage], max_tokens: int = 6000
    ) -> List[ChatMessage]:
        """Drop the oldest turns until the history fits, keeping at least two."""
        trimmed = list(history)

        def total(messages: Sequence[ChatMessage]) -> int:
            return sum(
                MESSAGE_OVERHEAD_TOKENS + estimate_tokens(m.text, self.chars_per_token)
                for m in messages
            )

        while len(trimmed) > 2 and total(trimmed) > max_tokens:
            trimmed.pop(0)
        if len(trimmed) < len(history):
            logger.info(f"Conversation history trimmed from {len(history)} to {len(trimmed)} messages")
        return trimmed

    @staticmethod
    def section_order(weights: SearchWeights) -> List[str]:
        """Section names in the order assemble() writes them."""
        named: Dict[str, float] = {
            "ticket_forms": weights.ticket_forms,
            "documentation": weights.documentation,
            "reference": weights.reference,
            "articles": weights.articles,
        }
        return sorted(named, key=lambda name: named[name], reverse=True)
