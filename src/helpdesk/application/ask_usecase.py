"""
Ask Use Case for the Helpdesk Knowledge Agent.

Orchestrates one question end to end: clarification triage, cache, intent,
ticket lookup, query expansion, parallel retrieval, confidence gate,
context assembly and generation. Answers come back whole from ask() or
as text chunks from ask_stream().
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    AsyncIterator,
    Awaitable,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from ..config import get_config
from ..domain.entities import SourceKind
from ..domain.repositories import (
    IDocumentationClient,
    IEmbeddingProvider,
    IGenerationProvider,
    ITicketClient,
)
from ..domain.value_objects import (
    AgentResponse,
    ChatMessage,
    DocumentationPage,
    GenerationOptions,
    IntentCategory,
    ScoredDocument,
    SearchWeights,
    TicketDetails,
)
from ..exceptions import ProviderError, ValidationFailureError
from ..infrastructure.background import BackgroundQueue
from ..infrastructure.document_store import DocumentStore, KnowledgeStore, TicketSolutionStore
from ..infrastructure.response_cache import ResponseCache
from ..infrastructure.source_search import reference_searcher, solution_searcher
from ..infrastructure.ticket_patterns import refers_to_previous_ticket
from .auto_learn import AutoLearnUseCase
from .clarification import ClarificationTriage
from .confidence_gate import ConfidenceGate
from .context_assembler import ContextAssembler
from .intent_classifier import IntentClassificationResult, IntentClassifier
from .query_expansion import QueryExpander
from .search_weights import apply_weights, merge_weighted, weights_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_TEXT = (
    "I'm sorry, I encountered an error while processing your question. "
    "Please try again or contact the IT Help Desk."
)

SYSTEM_PROMPT = """You are the IT Help Desk assistant of the company.
Answer the user's question using ONLY the information in the context below.

## Rules
- Answer in the language of the question (usually Spanish).
- When the context contains a ticket form that matches the problem, give its exact markdown link.
- When a documentation page is used, include its link.
- Prefer proven solutions from resolved tickets when they apply.
- If the context does not contain the answer, say so and recommend opening a ticket.
- Use markdown (numbered steps, bold) for readability.

## Context
{context}"""

ARTICLE_SOURCE_MIN_SCORE = 0.5
SOLUTION_SOURCE_MIN_SCORE = 0.15
MAX_SOURCES_PER_KIND = 3
ARTICLE_RESULTS = 5
SOLUTION_RESULTS = 5
TICKET_QUERY_DESCRIPTION_CHARS = 300


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


@dataclass
class PendingAnswer:
    """A planned generation: the prompt plus the response it will fill."""

    messages: List[ChatMessage]
    options: GenerationOptions
    response: AgentResponse
    cacheable: bool = False


class AskUseCase:
    """
    Answer pipeline.

    Every collaborator except the classifier is optional; a missing store
    or client contributes empty results and a missing generator means the
    gate's fallback text is the best possible answer.

    Args:
        classifier: Intent classifier (owns the ticket matcher).
        generator: Generation provider.
        embedder: Embedding provider for semantic ranking.
        reference_store: Reference entries and ticket forms.
        article_store: Knowledge-base articles.
        solution_store: Solutions harvested from resolved tickets.
        ticket_client: Ticket system (synchronous, run in the executor).
        docs_client: Documentation system (synchronous, run in the executor).
        cache: Response cache; skipped for multi-turn questions.
        auto_learn: Feedback loop (boost and few-shot exemplars).
        expander: Query rewriting.
        assembler: Context renderer.
        gate: Confidence gate.
        background: Queue for best-effort work.
        triage: Clarification triage for vague first questions.
        config: Tunables; the global configuration if None.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        generator: Optional[IGenerationProvider] = None,
        embedder: Optional[IEmbeddingProvider] = None,
        reference_store: Optional[DocumentStore] = None,
        article_store: Optional[DocumentStore] = None,
        solution_store: Optional[TicketSolutionStore] = None,
        ticket_client: Optional[ITicketClient] = None,
        docs_client: Optional[IDocumentationClient] = None,
        cache: Optional[ResponseCache] = None,
        auto_learn: Optional[AutoLearnUseCase] = None,
        expander: Optional[QueryExpander] = None,
        assembler: Optional[ContextAssembler] = None,
        gate: Optional[ConfidenceGate] = None,
        background: Optional[BackgroundQueue] = None,
        triage: Optional[ClarificationTriage] = None,
        config=None,
    ):
        self.config = config or get_config()
        self.classifier = classifier
        self.ticket_matcher = classifier.ticket_matcher
        self.generator = generator
        self.reference_store = reference_store
        self.article_store = article_store
        self.solution_store = solution_store
        self.ticket_client = ticket_client
        self.docs_client = docs_client
        self.cache = cache
        self.auto_learn = auto_learn
        self.expander = expander or QueryExpander(ticket_matcher=self.ticket_matcher)
        self.assembler = assembler or ContextAssembler(
            token_budget=self.config.context_token_budget,
            chars_per_token=self.config.chars_per_token,
            form_marker=self.config.service_desk_marker,
        )
        self.gate = gate or ConfidenceGate(
            threshold=self.config.relevance_threshold,
            documentation_score=self.config.documentation_placeholder_score,
            fallback_link=self.config.fallback_ticket_link,
            form_marker=self.config.service_desk_marker,
        )
        self.background = background or BackgroundQueue(self.config.background_queue_size)
        self.triage = triage or ClarificationTriage(
            ticket_matcher=self.ticket_matcher,
            min_words=self.config.clarification_min_words,
            vague_max_words=self.config.clarification_vague_max_words,
        )
        self.reference_searcher = reference_searcher(embedder, self.config)
        self.solution_searcher = solution_searcher(embedder, self.config)

    # ---- entry point --------------------------------------------------------

    async def ask(
        self,
        question: str,
        history: Optional[Sequence[ChatMessage]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AgentResponse:
        """
        Answer a question.

        Args:
            question: User question.
            history: Prior turns, oldest first.
            cancel_event: Set by the caller to abort retrieval.

        Returns:
            AgentResponse; failures are reported with success=False.

        Raises:
            asyncio.CancelledError: The caller cancelled the request.
        """
        try:
            plan = await self._plan(question, list(history or []), cancel_event)
            if isinstance(plan, AgentResponse):
                return plan
            answer = await self.generator.generate(plan.messages, plan.options)
            return self._complete(question, plan, answer)
        except asyncio.CancelledError:
            logger.info(f"Request cancelled: '{question[:50]}'")
            raise
        except Exception as e:
            logger.error(f"Error processing question '{question[:50]}': {e}", exc_info=True)
            return AgentResponse(answer=ERROR_TEXT, success=False, error=str(e))

    async def ask_stream(
        self,
        question: str,
        history: Optional[Sequence[ChatMessage]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        """
        Answer a question as a stream of text chunks.

        Clarifications, cached answers and low-confidence fallbacks arrive
        as a single chunk. Generated answers are cached once the stream
        completes. A failure yields the error text as the final chunk.

        Raises:
            asyncio.CancelledError: The caller cancelled the request.
        """
        try:
            plan = await self._plan(question, list(history or []), cancel_event)
            if isinstance(plan, AgentResponse):
                yield plan.answer
                return
            parts: List[str] = []
            async for chunk in self.generator.stream(plan.messages, plan.options):
                if cancel_event is not None and cancel_event.is_set():
                    raise asyncio.CancelledError("Request cancelled by caller")
                parts.append(chunk)
                yield chunk
            self._complete(question, plan, "".join(parts))
        except asyncio.CancelledError:
            logger.info(f"Streaming request cancelled: '{question[:50]}'")
            raise
        except Exception as e:
            logger.error(f"Error streaming answer to '{question[:50]}': {e}", exc_info=True)
            yield ERROR_TEXT

    def _complete(self, question: str, plan: PendingAnswer, answer: str) -> AgentResponse:
        response = plan.response
        response.answer = answer
        if plan.cacheable and self.cache is not None:
            sources = response.sources
            self.cache.put_exact(question, answer, sources)
            self.background.submit(
                lambda: self.cache.put_semantic(question, answer, sources),
                name="semantic-cache",
            )
        return response

    async def _plan(
        self,
        question: str,
        history: List[ChatMessage],
        cancel_event: Optional[asyncio.Event],
    ) -> Union[AgentResponse, PendingAnswer]:
        """Everything up to generation; returns a final response when no generation is needed."""
        single_turn = not history

        if single_turn and self.triage.is_vague(question):
            return AgentResponse(
                answer=self.triage.clarifying_question(question),
                low_confidence=True,
                metadata={"rule": "clarification"},
            )

        if single_turn and self.cache is not None:
            cached = await self.cache.lookup(question)
            if cached is not None:
                return AgentResponse(
                    answer=cached.answer,
                    from_cache=True,
                    sources=list(cached.sources),
                )

        intent = await self.classifier.classify(question, history)
        ticket_ids = self.ticket_matcher.extract_ticket_ids(question)
        if not ticket_ids and history and refers_to_previous_ticket(question):
            previous = self.ticket_matcher.extract_from_history(history)
            if previous:
                logger.info(f"Question refers to ticket from history: {previous[-1]}")
                ticket_ids = previous[-1:]
                intent = IntentClassificationResult(
                    IntentCategory.TICKET_LOOKUP, 1.0, ticket_ids, "history_ticket"
                )
        weights = weights_for(intent.category)
        logger.info(
            f"Query analysis: intent={intent.category.value} ({intent.rule}, "
            f"{intent.confidence:.2f}), tickets={ticket_ids}"
        )

        if intent.category == IntentCategory.TICKET_LOOKUP and ticket_ids:
            tickets = await self.fetch_tickets(ticket_ids)
            if tickets:
                return await self._answer_tickets(
                    question, history, tickets, intent, weights, cancel_event
                )

        expanded = self.expander.expand(question, history)
        queries = _dedupe(expanded.search_queries + [expanded.expanded_query])

        articles, context_docs, documentation, solutions = await self._gather(
            [
                self.search_articles(queries),
                self.search_context(queries),
                self.search_documentation(
                    [expanded.context_query, expanded.expanded_query], weights
                ),
                self.search_solutions(queries),
            ],
            cancel_event,
        )

        if self.auto_learn is not None:
            await self.auto_learn.repository.ensure_initialized()
            context_docs = self.auto_learn.apply_feedback_boost(question, context_docs)

        decision = self.gate.evaluate(articles, context_docs, documentation, solutions)
        if not decision.passed or self.generator is None:
            return AgentResponse(
                answer=decision.answer or self.gate.low_confidence_answer(context_docs),
                low_confidence=True,
                intent=intent.category,
                best_score=decision.best_score,
                context_document_ids=[h.doc_id for h in context_docs],
            )

        merged_context = self.weighted_context(context_docs, weights)
        context = self.assembler.assemble(
            weights,
            articles=apply_weights(articles, SourceKind.ARTICLE, weights),
            context_docs=merged_context,
            documentation=documentation[: weights.documentation_top_n],
            solutions=apply_weights(solutions, SourceKind.SOLUTION, weights),
        )
        messages, options = await self._prompt(question, history, context)
        response = AgentResponse(
            answer="",
            intent=intent.category,
            best_score=decision.best_score,
            sources=self.collect_sources(articles, documentation, solutions),
            context_document_ids=[h.doc_id for h in merged_context],
            metadata={
                "rule": intent.rule,
                "sub_queries": expanded.sub_queries,
                "expanded_query": expanded.expanded_query,
            },
        )
        return PendingAnswer(messages, options, response, cacheable=single_turn)

    # ---- ticket path ----------------------------------------------------------

    async def fetch_tickets(self, ticket_ids: Sequence[str]) -> List[TicketDetails]:
        """Fetch tickets concurrently; invalid, unknown or failed IDs are skipped."""
        if self.ticket_client is None:
            return []
        loop = asyncio.get_running_loop()

        async def fetch(ticket_id: str) -> Optional[TicketDetails]:
            try:
                valid_id = self.ticket_matcher.require_valid(ticket_id)
                return await loop.run_in_executor(None, self.ticket_client.get_ticket, valid_id)
            except (ProviderError, ValidationFailureError) as e:
                logger.warning(f"Ticket lookup failed for {ticket_id}: {e}")
                return None

        results = await asyncio.gather(*(fetch(t) for t in ticket_ids))
        return [t for t in results if t is not None]

    async def _answer_tickets(
        self,
        question: str,
        history: List[ChatMessage],
        tickets: List[TicketDetails],
        intent: IntentClassificationResult,
        weights: SearchWeights,
        cancel_event: Optional[asyncio.Event],
    ) -> Union[AgentResponse, PendingAnswer]:
        """Answer about live tickets with material related to the first one."""
        first = tickets[0]
        search_query = f"{first.summary} {first.description[:TICKET_QUERY_DESCRIPTION_CHARS]}".strip()
        articles, documentation, solutions = await self._gather(
            [
                self.search_articles([search_query]),
                self.search_documentation([search_query], weights),
                self.search_solutions([search_query]),
            ],
            cancel_event,
        )
        context = self.assembler.assemble(
            weights,
            articles=articles,
            documentation=documentation[: weights.documentation_top_n],
            solutions=solutions,
            tickets=tickets,
        )
        response = AgentResponse(
            answer="\n\n".join(t.render() for t in tickets),
            intent=intent.category,
            sources=self.collect_sources(articles, documentation, solutions),
            ticket_ids=[t.ticket_id for t in tickets],
            metadata={"rule": intent.rule},
        )
        if self.generator is None:
            return response
        messages, options = await self._prompt(question, history, context)
        return PendingAnswer(messages, options, response)

    # ---- retrieval ------------------------------------------------------------

    async def _gather(
        self,
        coros: Sequence[Awaitable[T]],
        cancel_event: Optional[asyncio.Event],
    ) -> List[T]:
        """
        Run retrieval coroutines concurrently.

        Raises:
            asyncio.CancelledError: cancel_event was set before they finished.
        """
        if cancel_event is None:
            return list(await asyncio.gather(*coros))
        if cancel_event.is_set():
            for coro in coros:
                coro.close()
            raise asyncio.CancelledError("Request cancelled by caller")

        gathered = asyncio.gather(*coros)
        waiter = asyncio.ensure_future(cancel_event.wait())
        done, _ = await asyncio.wait({gathered, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if gathered in done:
            waiter.cancel()
            return list(gathered.result())

        gathered.cancel()
        try:
            await gathered
        except asyncio.CancelledError:
            pass
        raise asyncio.CancelledError("Request cancelled by caller")

    @staticmethod
    async def _snapshot(store: Optional[KnowledgeStore]) -> list:
        if store is None:
            return []
        await store.ensure_initialized()
        return store.all()

    async def search_articles(self, queries: Sequence[str]) -> List[ScoredDocument]:
        documents = await self._snapshot(self.article_store)
        if not documents:
            return []
        return await self.reference_searcher.search_many(queries, documents, top_k=ARTICLE_RESULTS)

    async def search_context(self, queries: Sequence[str]) -> List[ScoredDocument]:
        documents = await self._snapshot(self.reference_store)
        if not documents:
            return []
        return await self.reference_searcher.search_many(
            queries, documents, top_k=self.config.reference_retrieve_count
        )

    async def search_solutions(self, queries: Sequence[str]) -> List[ScoredDocument]:
        documents = await self._snapshot(self.solution_store)
        if not documents:
            return []
        return await self.solution_searcher.search_many(queries, documents, top_k=SOLUTION_RESULTS)

    async def search_documentation(
        self, queries: Sequence[str], weights: SearchWeights
    ) -> List[DocumentationPage]:
        """Query the documentation system once per distinct query, merged by URL."""
        if self.docs_client is None:
            return []
        loop = asyncio.get_running_loop()

        async def search(query: str) -> List[DocumentationPage]:
            try:
                return await loop.run_in_executor(
                    None, self.docs_client.search, query, weights.documentation_top_n
                )
            except ProviderError as e:
                logger.warning(f"Documentation search failed: {e}")
                return []

        batches = await asyncio.gather(*(search(q) for q in _dedupe(queries)))
        pages: List[DocumentationPage] = []
        seen = set()
        for batch in batches:
            for page in batch:
                if page.id not in seen:
                    seen.add(page.id)
                    pages.append(page)
        return pages

    def weighted_context(
        self, context_docs: Sequence[ScoredDocument], weights: SearchWeights
    ) -> List[ScoredDocument]:
        """Weight forms and reference entries separately, then keep the best overall."""
        marker = self.config.service_desk_marker
        forms = [h for h in context_docs if h.item.is_ticket_form(marker)]
        reference = [h for h in context_docs if not h.item.is_ticket_form(marker)]
        forms = sorted(forms, key=lambda h: h.score, reverse=True)[: weights.ticket_form_top_n]
        return merge_weighted(
            [
                apply_weights(forms, SourceKind.TICKET_FORM, weights),
                apply_weights(reference, SourceKind.REFERENCE, weights),
            ],
            max_results=self.config.max_weighted_context_docs,
        )

    # ---- generation -------------------------------------------------------------

    async def _prompt(
        self, question: str, history: List[ChatMessage], context: str
    ) -> Tuple[List[ChatMessage], GenerationOptions]:
        system_prompt = SYSTEM_PROMPT.format(context=context)
        if self.auto_learn is not None:
            system_prompt += await self.auto_learn.few_shot_block(question)

        trimmed = self.assembler.trim_history(history, self.config.history_token_budget)
        messages = [ChatMessage("system", system_prompt)]
        messages.extend(m for m in trimmed if m.role in ("user", "assistant"))
        messages.append(ChatMessage("user", question))

        options = GenerationOptions(
            max_tokens=self.config.generation_max_tokens,
            temperature=self.config.generation_temperature,
        )
        return messages, options

    @staticmethod
    def collect_sources(
        articles: Sequence[ScoredDocument],
        documentation: Sequence[DocumentationPage],
        solutions: Sequence[ScoredDocument],
    ) -> List[str]:
        """Citable sources: strong articles, documentation pages, relevant solutions."""
        sources = []
        strong = [h for h in articles if h.score >= ARTICLE_SOURCE_MIN_SCORE]
        for hit in strong[:MAX_SOURCES_PER_KIND]:
            item = hit.item
            sources.append(f"[{item.name}]({item.link})" if item.link else item.name)
        for page in documentation[:MAX_SOURCES_PER_KIND]:
            sources.append(f"[{page.title}]({page.url})" if page.url else page.title)
        relevant = [h for h in solutions if h.score >= SOLUTION_SOURCE_MIN_SCORE]
        for hit in relevant[:MAX_SOURCES_PER_KIND]:
            sources.append(f"{hit.item.ticket_id}: {hit.item.title}")
        return _dedupe(sources)
