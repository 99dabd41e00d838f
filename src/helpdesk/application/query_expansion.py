"""
Query Expansion for the Helpdesk Knowledge Agent.

Three rewrites run before retrieval:
- decomposition of compound questions into sub-queries,
- conversation-context expansion of follow-ups ("tell me more"),
- rule-based synonym expansion loaded from resources/synonyms.json.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import regex

from ..domain.value_objects import ChatMessage
from ..infrastructure.text_analysis import contains_term, word_count
from ..infrastructure.ticket_patterns import TicketPatternMatcher

logger = logging.getLogger(__name__)

DEFAULT_SYNONYMS_PATH = Path(__file__).resolve().parent.parent / "resources" / "synonyms.json"

CONJUNCTION_SPLIT = regex.compile(r"\s+(?:y|and)\s+", regex.IGNORECASE)
WORD_SPLIT = regex.compile(r"[\s?¿!¡,.]+")
HISTORY_WINDOW = 6


@dataclass
class ExpansionRule:
    """Adds `expansions` when a trigger (and any required term) occurs."""

    triggers: List[str]
    expansions: List[str]
    requires_any: List[str] = field(default_factory=list)
    include_codes: bool = False

    def matches(self, lower_query: str) -> bool:
        if not any(contains_term(lower_query, t) for t in self.triggers):
            return False
        if self.requires_any and not any(contains_term(lower_query, t) for t in self.requires_any):
            return False
        return True


@dataclass
class ExpandedQuery:
    """
    All rewrites of one user query.

    Attributes:
        original: The query as typed.
        sub_queries: Original first, then decomposed parts, deduplicated.
        context_query: Original plus conversation topics when it is a follow-up.
        expanded_query: context_query plus synonym expansions.
    """

    original: str
    sub_queries: List[str]
    context_query: str
    expanded_query: str

    @property
    def search_queries(self) -> List[str]:
        """Sub-queries, with the context-aware query replacing the original."""
        return _dedupe([self.context_query] + self.sub_queries[1:])


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        key = item.strip()
        if key and key not in seen:
            seen.add(key)
            result.append(key)
    return result


class QueryExpander:
    """
    Rule-driven query rewriting.

    Args:
        config: Parsed synonyms.json; loaded from resources when None.
        ticket_matcher: Ticket-ID detector used for history topics.
        timeout: Execution-time bound for history pattern scans, in seconds.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        ticket_matcher: Optional[TicketPatternMatcher] = None,
        timeout: float = 0.1,
    ):
        if config is None:
            with open(DEFAULT_SYNONYMS_PATH, "r", encoding="utf-8") as f:
                config = json.load(f)
        self.rules = [
            ExpansionRule(
                triggers=[t.lower() for t in r.get("triggers", [])],
                expansions=list(r.get("expansions", [])),
                requires_any=[t.lower() for t in r.get("requires_any", [])],
                include_codes=bool(r.get("include_codes", False)),
            )
            for r in config.get("rules", [])
        ]
        self.known_entities = [e.lower() for e in config.get("known_entities", [])]
        self.reference_patterns = [p.lower() for p in config.get("reference_patterns", [])]
        self.follow_up_prefixes = [p.lower() for p in config.get("follow_up_prefixes", [])]
        self.topic_keywords = list(config.get("topic_keywords", []))
        self.topic_patterns = [
            regex.compile(p, regex.IGNORECASE) for p in config.get("topic_patterns", [])
        ]
        centre = config.get("centre_code_pattern")
        self.centre_pattern = regex.compile(centre) if centre else None
        self.max_topics = int(config.get("max_topics", 5))
        self.ticket_matcher = ticket_matcher or TicketPatternMatcher(timeout=timeout)
        self.timeout = timeout

    # ---- decomposition ------------------------------------------------------

    def extract_entities(self, query: str) -> List[str]:
        """Known systems (uppercased) and all-caps 2-4 letter words such as plant codes."""
        lower = query.lower()
        entities = [e.upper() for e in self.known_entities if contains_term(lower, e)]
        for word in WORD_SPLIT.split(query):
            if 2 <= len(word) <= 4 and word.isalpha() and word.isupper():
                entities.append(word)
        return _dedupe(entities)

    def decompose(self, query: str) -> List[str]:
        """
        Split a compound question into sub-queries.

        The original query always comes first. Parts joined by " y " /
        " and " and multiple questions separated by "?" are added, then one
        entity sub-query ("ticket X" / "how to X") for each known entity
        no derived part already mentions.
        """
        if not query or not query.strip():
            return []
        lower = query.lower()
        derived: List[str] = []

        parts = [p.strip() for p in CONJUNCTION_SPLIT.split(query) if p.strip()]
        if len(parts) > 1:
            derived.extend(parts)

        if query.count("?") > 1:
            derived.extend(p.strip() + "?" for p in query.split("?") if p.strip())

        for entity in self.extract_entities(query):
            if any(entity.lower() in d.lower() for d in derived):
                continue
            if "ticket" in lower:
                derived.append(f"ticket {entity}")
            if "cómo" in lower or "como" in lower or "how" in lower:
                derived.append(f"how to {entity}")

        sub_queries = _dedupe([query] + derived)
        if len(sub_queries) > 1:
            logger.info(f"Query decomposition: '{query}' -> {sub_queries}")
        return sub_queries

    # ---- conversation context ----------------------------------------------

    def is_follow_up(self, query: str) -> bool:
        lower = query.lower().strip()
        if any(p in lower for p in self.reference_patterns):
            return True
        if word_count(lower) > 4:
            return False
        return "?" in lower or any(lower.startswith(p) for p in self.follow_up_prefixes)

    def _pattern_topics(self, text: str) -> List[str]:
        found: List[str] = []
        patterns = list(self.topic_patterns)
        if self.centre_pattern is not None:
            patterns.append(self.centre_pattern)
        for pattern in patterns:
            try:
                found.extend(m.group(0) for m in pattern.finditer(text, timeout=self.timeout))
            except TimeoutError:
                logger.warning("Topic pattern timed out while scanning history")
        return found

    def extract_topics(self, history: Sequence[ChatMessage]) -> List[str]:
        """Ticket IDs, codes and known system names from the recent turns."""
        recent = [m for m in history if m.role in ("user", "assistant")][-HISTORY_WINDOW:]
        topics: List[str] = []
        seen = set()

        def add(topic: str) -> None:
            if topic.lower() not in seen:
                seen.add(topic.lower())
                topics.append(topic)

        for ticket_id in self.ticket_matcher.extract_from_history(recent):
            add(ticket_id)
        for message in recent:
            if not message.text.strip():
                continue
            for topic in self._pattern_topics(message.text):
                add(topic)
            lower = message.text.lower()
            for keyword in self.topic_keywords:
                if contains_term(lower, keyword.lower()):
                    add(keyword)
        return topics

    def expand_with_context(self, query: str, history: Optional[Sequence[ChatMessage]]) -> str:
        """Append recent conversation topics to follow-up questions."""
        if not history or not self.is_follow_up(query):
            return query
        topics = self.extract_topics(history)
        if not topics:
            return query
        expanded = f"{query} [Contexto conversación: {', '.join(topics[: self.max_topics])}]"
        logger.info(f"Expanded query with conversation context: '{query}' -> '{expanded}'")
        return expanded

    # ---- synonyms -----------------------------------------------------------

    def expand_with_synonyms(self, query: str) -> str:
        lower = query.lower()
        expansions = [query]
        for rule in self.rules:
            if not rule.matches(lower):
                continue
            if rule.include_codes:
                expansions.extend(
                    w for w in WORD_SPLIT.split(query) if 2 <= len(w) <= 5 and w.isupper()
                )
            expansions.extend(rule.expansions)
        return " ".join(expansions)

    # ---- all ----------------------------------------------------------------

    def expand(self, query: str, history: Optional[Sequence[ChatMessage]] = None) -> ExpandedQuery:
        sub_queries = self.decompose(query)
        context_query = self.expand_with_context(query, history)
        return ExpandedQuery(
            original=query,
            sub_queries=sub_queries,
            context_query=context_query,
            expanded_query=self.expand_with_synonyms(context_query),
        )
