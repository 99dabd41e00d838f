"""
Auto Learning for the Helpdesk Knowledge Agent.

Turns user feedback into retrieval improvements: unhelpful answers are
grouped into failure patterns and keyword suggestions (frequent keywords
are appended to the best matching reference document), helpful answers
become few-shot exemplars and boost matching documents on later queries.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..config import get_config
from ..domain.entities import (
    CachedResponse,
    FailurePattern,
    FeedbackRecord,
    KeywordSuggestion,
    SourceDocument,
    utcnow,
)
from ..domain.repositories import IEmbeddingProvider, IGenerationProvider
from ..domain.value_objects import ChatMessage, GenerationOptions, Retrievable, ScoredDocument
from ..exceptions import BlobStoreError, DocumentNotFoundError, ProviderError
from ..infrastructure.background import BackgroundQueue
from ..infrastructure.document_store import DocumentStore
from ..infrastructure.feedback import FeedbackRepository
from ..infrastructure.source_search import HybridSourceSearcher
from ..infrastructure.text_analysis import detect_system, extract_feedback_keywords, remove_accents

logger = logging.getLogger(__name__)

SUGGESTION_SEARCH_RESULTS = 5
SUGGESTION_MIN_SCORE = 0.5
MAX_RELATED_QUERIES = 5
MAX_TOP_SUGGESTIONS = 20
BOOST_MIN_MATCHES = 2
BOOST_STEP = 0.15
BOOST_CAP = 1.45

FEW_SHOT_TEMPLATE = (
    "\n\n## EJEMPLO DE RESPUESTA EXITOSA (usa este estilo y formato):\n"
    "**Pregunta anterior similar:** {query}\n"
    "**Respuesta que fue útil (👍):** {answer}\n"
    "---\n"
    "Usa el ejemplo anterior como guía para el tono, formato y nivel de detalle."
)

LLM_SYSTEM_PROMPT = "You improve the knowledge base of an IT help desk search system."

LLM_PROMPT = """Users marked the answer to the following help desk question as NOT helpful.
Which keywords or documentation would let the search find the right answer?

Question: "{query}"

## Answer format (JSON)
{{
  "keywords": ["keyword1", "keyword2"],
  "documentation": "document or article that should cover it (or null)",
  "reason": "why"
}}"""


@dataclass
class ImprovementSuggestion:
    """A suggested improvement based on feedback analysis."""

    type: str  # "pattern", "keyword", "coverage", "llm_expert", "llm_raw"
    priority: str  # "high", "medium", "low"
    description: str
    suggested_value: Dict[str, Any] = field(default_factory=dict)
    affected_queries: List[str] = field(default_factory=list)


@dataclass
class AnalysisResult:
    """Result of feedback analysis."""

    total_negative_feedback: int
    unique_problematic_queries: int
    suggestions: List[ImprovementSuggestion] = field(default_factory=list)


@dataclass
class FeedbackStats:
    """Dashboard numbers of the feedback loop."""

    total: int = 0
    positive: int = 0
    negative: int = 0
    satisfaction_rate: float = 0.0  # percent
    unreviewed: int = 0
    low_confidence: int = 0
    top_suggestions: List[KeywordSuggestion] = field(default_factory=list)
    failure_patterns: List[FailurePattern] = field(default_factory=list)
    auto_enriched: int = 0
    exemplars: int = 0


def _item_text(item: Retrievable) -> str:
    if isinstance(item, SourceDocument):
        return f"{item.name} {item.description} {item.keywords}".lower()
    return item.searchable_text().lower()


class AutoLearnUseCase:
    """
    Use case for learning from user feedback.

    Args:
        repository: Feedback, pattern, suggestion and exemplar state.
        reference_store: Store whose keywords are enriched.
        searcher: Hybrid searcher used to pick enrichment targets.
        embedder: Embeds queries for exemplars (exemplars disabled if None).
        generator: Optional LLM for phrased recommendations in analyze().
        background: Queue for reference-store saves after enrichment; saved
            inline (failures logged) if None.
        config: Thresholds; the global configuration if None.
    """

    def __init__(
        self,
        repository: FeedbackRepository,
        reference_store: Optional[DocumentStore] = None,
        searcher: Optional[HybridSourceSearcher] = None,
        embedder: Optional[IEmbeddingProvider] = None,
        generator: Optional[IGenerationProvider] = None,
        background: Optional[BackgroundQueue] = None,
        config=None,
    ):
        self.repository = repository
        self.reference_store = reference_store
        self.searcher = searcher
        self.embedder = embedder
        self.generator = generator
        self.background = background
        config = config or get_config()
        self.enrichment_threshold = config.keyword_enrichment_threshold
        self.alert_threshold = config.failure_alert_threshold
        self.exemplar_threshold = config.exemplar_similarity_threshold
        self.retention_days = config.feedback_retention_days

    # ---- submission -------------------------------------------------------

    async def submit_feedback(
        self,
        query: str,
        answer: str,
        is_helpful: bool,
        comment: Optional[str] = None,
        user_correction: Optional[str] = None,
        sources_used: Sequence[str] = (),
        agent_type: str = "General",
        best_search_score: float = 0.0,
        was_low_confidence: bool = False,
        context_document_ids: Sequence[str] = (),
        user_id: Optional[str] = None,
    ) -> FeedbackRecord:
        """
        Record feedback on an answer and learn from it.

        Unhelpful feedback updates the failure pattern and keyword
        suggestions (possibly enriching a reference document); helpful
        feedback stores the answer as an exemplar.
        """
        await self.repository.ensure_initialized()
        record = FeedbackRecord(
            query=query,
            answer=answer,
            is_helpful=is_helpful,
            comment=comment,
            user_correction=user_correction,
            sources_used=list(sources_used),
            agent_type=agent_type,
            best_search_score=best_search_score,
            was_low_confidence=was_low_confidence,
            context_document_ids=list(context_document_ids),
            user_id=user_id,
            extracted_keywords=extract_feedback_keywords(query),
        )

        await self.repository.add_record(record)

        if is_helpful:
            await self.store_exemplar(record)
        else:
            record.suggested_keywords = await self.suggest_keywords(
                query, record.extracted_keywords
            )
            self.record_failure(record)
            await self.track_keywords(record)

        try:
            await self.repository.save()
        except BlobStoreError as e:
            logger.warning(f"Feedback kept in memory, save failed: {e}")
        logger.info(
            f"Feedback recorded: {'helpful' if is_helpful else 'not helpful'} "
            f"for '{query[:50]}' (keywords: {record.extracted_keywords})"
        )
        return record

    async def suggest_keywords(self, query: str, keywords: List[str]) -> List[str]:
        """
        Keywords that would help the reference search find this query.

        Without a good hit every keyword (plus its accent-free variant) is
        suggested; otherwise only keywords the found documents lack.
        """
        if not keywords:
            return []
        hits: List[ScoredDocument] = []
        if self.reference_store is not None and self.searcher is not None:
            try:
                await self.reference_store.ensure_initialized()
                hits = await self.searcher.search(
                    query, self.reference_store.all(), top_k=SUGGESTION_SEARCH_RESULTS
                )
            except ProviderError as e:
                logger.warning(f"Keyword suggestion search failed: {e}")
                return []

        if not hits or all(h.score < SUGGESTION_MIN_SCORE for h in hits):
            suggested = list(keywords)
            for keyword in keywords:
                variant = remove_accents(keyword)
                if variant != keyword and variant not in suggested:
                    suggested.append(variant)
            return suggested

        known = set()
        for hit in hits:
            if isinstance(hit.item, SourceDocument):
                known.update(k.lower() for k in hit.item.keyword_list())
        return [k for k in keywords if k not in known]

    # ---- failure patterns -------------------------------------------------

    @staticmethod
    def suggest_action(pattern: FailurePattern) -> str:
        keywords = pattern.keywords
        if not keywords:
            return "Review general answer quality: unhelpful answers without recognisable keywords"
        system = detect_system(" ".join(keywords))
        joined = ", ".join(keywords)
        if system == "General":
            return f"Add knowledge base content or keywords covering: {joined}"
        return f"Review {system} documentation and keywords for: {joined}"

    def record_failure(self, record: FeedbackRecord) -> FailurePattern:
        """Count an unhelpful answer in its pattern; alert once at the threshold."""
        signature = FailurePattern.signature_for(record.extracted_keywords)
        pattern = self.repository.get_or_create_pattern(signature, record.timestamp)
        count = pattern.record(record.query, record.timestamp)
        if count >= self.alert_threshold and not pattern.is_alerted:
            pattern.is_alerted = True
            pattern.suggested_action = self.suggest_action(pattern)
            logger.warning(
                f"Failure pattern '{signature}' reached {count} unhelpful answers. "
                f"Suggested action: {pattern.suggested_action}"
            )
        return pattern

    async def reset_pattern_alert(self, signature: str) -> FailurePattern:
        await self.repository.ensure_initialized()
        pattern = self.repository.pattern(signature)
        if pattern is None:
            raise DocumentNotFoundError(signature)
        pattern.is_alerted = False
        pattern.failure_count = 0
        await self.repository.save()
        return pattern

    # ---- keyword enrichment -----------------------------------------------

    async def track_keywords(self, record: FeedbackRecord) -> List[str]:
        """
        Bump keyword frequencies; enrich the reference store for keywords
        that reached the threshold.

        Returns:
            Keywords applied to a document by this call.
        """
        applied = []
        for keyword in record.extracted_keywords:
            suggestion = self.repository.get_or_create_suggestion(keyword)
            suggestion.frequency += 1
            if record.query not in suggestion.related_queries:
                suggestion.related_queries.append(record.query)
                del suggestion.related_queries[:-MAX_RELATED_QUERIES]
            if suggestion.frequency >= self.enrichment_threshold and not suggestion.was_auto_applied:
                if await self.enrich(suggestion):
                    applied.append(suggestion.keyword)
        return applied

    async def enrich(self, suggestion: KeywordSuggestion) -> bool:
        """Append the keyword to the best matching reference document."""
        if self.reference_store is None or self.searcher is None:
            return False
        await self.reference_store.ensure_initialized()
        try:
            target = await self.searcher.best_document_for_keyword(
                suggestion.keyword, self.reference_store.all()
            )
        except ProviderError as e:
            logger.warning(f"Enrichment search failed for '{suggestion.keyword}': {e}")
            return False
        if target is None:
            logger.debug(f"No document found to enrich with '{suggestion.keyword}'")
            return False

        await self.reference_store.add_keyword(target.id, suggestion.keyword, persist=False)
        suggestion.was_auto_applied = True
        suggestion.applied_at = utcnow()
        suggestion.suggested_for_document = target.id
        logger.info(
            f"Auto-enriched '{target.id}' with keyword '{suggestion.keyword}' "
            f"(frequency {suggestion.frequency})"
        )
        await self.persist_reference_store()
        return True

    async def persist_reference_store(self) -> None:
        """Save enriched keywords; queued when a background queue is set."""
        if self.background is not None:
            self.background.submit(self.reference_store.save, name="enrichment-save")
            return
        try:
            await self.reference_store.save()
        except BlobStoreError as e:
            logger.warning(f"Enriched keywords kept in memory, save failed: {e}")

    # ---- exemplars ----------------------------------------------------------

    async def _embed(self, text: str) -> List[float]:
        if self.embedder is None:
            return []
        try:
            return list(await self.embedder.embed(text))
        except ProviderError as e:
            logger.warning(f"Exemplar embedding failed: {e}")
            return []

    async def store_exemplar(self, record: FeedbackRecord) -> Optional[CachedResponse]:
        """Keep a helpful answer unless a near-identical query is stored."""
        vector = await self._embed(record.query)
        if not vector:
            return None
        existing, sim = self.repository.nearest_exemplar(vector)
        if existing is not None and sim >= self.exemplar_threshold:
            logger.debug(f"Exemplar for '{record.query[:40]}' already stored (similarity {sim:.3f})")
            return None
        exemplar = CachedResponse(
            query=record.query,
            answer=record.answer,
            sources=list(record.sources_used),
            query_embedding=vector,
            agent_type=record.agent_type,
        )
        evicted = self.repository.add_exemplar(exemplar)
        if evicted:
            logger.info(f"Evicted {evicted} exemplars")
        return exemplar

    async def find_exemplar(self, query: str) -> Optional[CachedResponse]:
        """Most similar helpful answer above the exemplar threshold."""
        await self.repository.ensure_initialized()
        if not self.repository.exemplars():
            return None
        vector = await self._embed(query)
        if not vector:
            return None
        exemplar, sim = self.repository.nearest_exemplar(vector)
        if exemplar is None or sim < self.exemplar_threshold:
            return None
        exemplar.touch()
        logger.info(f"Few-shot exemplar found for '{query[:40]}' (similarity {sim:.3f})")
        return exemplar

    async def few_shot_block(self, query: str) -> str:
        """System-prompt addition showing a previously helpful answer, or ""."""
        exemplar = await self.find_exemplar(query)
        if exemplar is None:
            return ""
        return FEW_SHOT_TEMPLATE.format(query=exemplar.query, answer=exemplar.answer)

    # ---- feedback boost -----------------------------------------------------

    def apply_feedback_boost(
        self, query: str, hits: Sequence[ScoredDocument]
    ) -> List[ScoredDocument]:
        """
        Boost hits that match earlier helpful feedback on similar queries.

        A hit whose text contains at least two keywords of a relevant
        helpful record is scaled by min(1.45, 1 + 0.15 * matches), once.
        """
        query_keywords = set(extract_feedback_keywords(query))
        if not hits or not query_keywords:
            return list(hits)
        relevant = [
            r
            for r in self.repository.records(helpful=True)
            if query_keywords.intersection(r.extracted_keywords)
        ]
        if not relevant:
            return list(hits)

        boosted = []
        for hit in hits:
            text = _item_text(hit.item)
            best_matches = max(
                sum(1 for k in r.extracted_keywords if k in text) for r in relevant
            )
            if best_matches >= BOOST_MIN_MATCHES:
                factor = min(BOOST_CAP, 1.0 + BOOST_STEP * best_matches)
                logger.debug(f"Feedback boost x{factor:.2f} for '{hit.doc_id}'")
                hit = hit.scaled(factor)
            boosted.append(hit)
        return sorted(boosted, key=lambda h: h.score, reverse=True)

    # ---- review workflow ------------------------------------------------------

    async def mark_reviewed(self, feedback_id: str) -> FeedbackRecord:
        return await self.repository.update_record(feedback_id, is_reviewed=True)

    async def mark_applied(self, feedback_id: str) -> FeedbackRecord:
        return await self.repository.update_record(
            feedback_id, is_applied=True, is_reviewed=True
        )

    async def dismiss(self, feedback_id: str) -> FeedbackRecord:
        return await self.repository.update_record(
            feedback_id, is_dismissed=True, is_reviewed=True
        )

    async def cleanup_old_feedback(self, days: Optional[int] = None) -> int:
        """Delete reviewed feedback older than `days` (retention default)."""
        return await self.repository.remove_older_than(days or self.retention_days)

    async def stats(self) -> FeedbackStats:
        await self.repository.ensure_initialized()
        records = self.repository.records()
        positive = sum(1 for r in records if r.is_helpful)
        suggestions = self.repository.suggestions()
        return FeedbackStats(
            total=len(records),
            positive=positive,
            negative=len(records) - positive,
            satisfaction_rate=(positive / len(records) * 100) if records else 0.0,
            unreviewed=sum(1 for r in records if not r.is_reviewed),
            low_confidence=sum(1 for r in records if r.was_low_confidence),
            top_suggestions=suggestions[:MAX_TOP_SUGGESTIONS],
            failure_patterns=self.repository.patterns(),
            auto_enriched=sum(1 for s in suggestions if s.was_auto_applied),
            exemplars=len(self.repository.exemplars()),
        )

    # ---- analysis -------------------------------------------------------------

    async def analyze(self, use_llm: bool = True) -> AnalysisResult:
        """
        Summarise negative feedback into improvement suggestions.

        Returns:
            AnalysisResult with suggestions.
        """
        await self.repository.ensure_initialized()
        negative = [r for r in self.repository.records(helpful=False) if not r.is_dismissed]
        if not negative:
            return AnalysisResult(total_negative_feedback=0, unique_problematic_queries=0)

        queries = {r.query for r in negative}
        suggestions: List[ImprovementSuggestion] = []

        patterns = [p for p in self.repository.patterns() if p.failure_count >= 2]
        for pattern in patterns:
            suggestions.append(
                ImprovementSuggestion(
                    type="pattern",
                    priority="high" if pattern.is_alerted else "medium",
                    description=(
                        f"Recurring unhelpful answers for '{pattern.signature}' "
                        f"({pattern.failure_count} times)"
                    ),
                    suggested_value={
                        "action": pattern.suggested_action or self.suggest_action(pattern),
                        "signature": pattern.signature,
                    },
                    affected_queries=list(pattern.sample_queries),
                )
            )

        pending = [
            s for s in self.repository.suggestions() if s.frequency >= 2 and not s.was_auto_applied
        ]
        for suggestion in pending[:5]:
            suggestions.append(
                ImprovementSuggestion(
                    type="keyword",
                    priority="medium",
                    description=(
                        f"Keyword '{suggestion.keyword}' appears in {suggestion.frequency} "
                        f"unhelpful queries but is not indexed"
                    ),
                    suggested_value={"action": "add_keyword", "keyword": suggestion.keyword},
                    affected_queries=list(suggestion.related_queries),
                )
            )

        gated = [r.query for r in negative if r.was_low_confidence]
        if gated:
            suggestions.append(
                ImprovementSuggestion(
                    type="coverage",
                    priority="low",
                    description=f"{len(gated)} unhelpful answers were low-confidence fallbacks",
                    suggested_value={"action": "add_content"},
                    affected_queries=gated[:5],
                )
            )

        if use_llm and self.generator is not None:
            for pattern in patterns[:5]:
                if not pattern.sample_queries:
                    continue
                llm_suggestion = await self.suggest_with_llm(pattern.sample_queries[-1])
                if llm_suggestion:
                    suggestions.append(llm_suggestion)

        return AnalysisResult(
            total_negative_feedback=len(negative),
            unique_problematic_queries=len(queries),
            suggestions=suggestions,
        )

    async def suggest_with_llm(self, query: str) -> Optional[ImprovementSuggestion]:
        """
        Ask the generator how to fix a problematic query.

        Returns:
            ImprovementSuggestion, or None when no generator is configured
            or the call failed.
        """
        if self.generator is None:
            return None
        messages = [
            ChatMessage("system", LLM_SYSTEM_PROMPT),
            ChatMessage("user", LLM_PROMPT.format(query=query)),
        ]
        try:
            response = await self.generator.generate(
                messages, GenerationOptions(max_tokens=500, temperature=0.3)
            )
        except ProviderError as e:
            logger.warning(f"LLM suggestion failed for '{query[:40]}': {e}")
            return None

        json_match = re.search(r"\{.*\}", response, re.DOTALL)
        data = None
        if json_match:
            try:
                data = json.loads(json_match.group())
            except json.JSONDecodeError:
                data = None
        if not isinstance(data, dict):
            return ImprovementSuggestion(
                type="llm_raw",
                priority="high",
                description=f"LLM analysis: {query}",
                suggested_value={"llm_response": response},
                affected_queries=[query],
            )
        return ImprovementSuggestion(
            type="llm_expert",
            priority="high",
            description=f"LLM suggestion - {data.get('reason') or 'improve search coverage'}",
            suggested_value=data,
            affected_queries=[query],
        )

    def format_suggestions(self, result: AnalysisResult) -> str:
        """Format analysis result as readable string."""
        lines = [
            "=" * 60,
            "Auto-learning analysis",
            "=" * 60,
            f"Negative feedback: {result.total_negative_feedback}",
            f"Problematic queries: {result.unique_problematic_queries}",
            f"Suggestions: {len(result.suggestions)}",
            "-" * 60,
        ]

        if not result.suggestions:
            lines.append("\n✅ No improvements to suggest right now.")
        else:
            for i, s in enumerate(result.suggestions, 1):
                priority_icon = {
                    "high": "🔴",
                    "medium": "🟡",
                    "low": "🟢",
                }.get(s.priority, "⚪")
                lines.append(f"\n{priority_icon} [{i}] {s.type.upper()}")
                lines.append(f"   {s.description}")
                if s.affected_queries:
                    lines.append(f"   Affected queries: {s.affected_queries[:3]}")

        lines.append("\n" + "=" * 60)
        return "\n".join(lines)
